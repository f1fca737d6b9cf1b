"""
Default logger initializer for pyirecv
"""

import logging

__all__ = ('logger', 'set_verbose')


formatter = logging.Formatter("%(levelname)s:%(name)s:%(message)s")
stream_handler = logging.StreamHandler()
stream_handler.setFormatter(formatter)
logger = logging.getLogger('pyirecv')
logger.setLevel(logging.INFO)
logger.addHandler(stream_handler)


def set_verbose(verbose: bool) -> None:
    """
    Switches pyirecv and pyusb loggers between INFO and DEBUG
    :param verbose: enable debug output
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    usb_logger = logging.getLogger('usb')
    if verbose:
        usb_logger.setLevel(logging.DEBUG)
        usb_logger.addHandler(stream_handler)
    else:
        usb_logger.removeHandler(stream_handler)
