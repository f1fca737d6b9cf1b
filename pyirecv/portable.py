"""
Timing helpers
(C) 2023 Yaroshenko Dmytro (https://github.com/o-murphy)
"""

from time import monotonic, sleep


def milli_sleep(msec: int) -> None:
    """
    :param msec: sleep timeout in milliseconds
    :return: None
    """
    if msec > 0:
        sleep(msec / 1000)


def elapsed_ms(start: float) -> int:
    """
    :param start: value of time.monotonic() taken earlier
    :return: milliseconds passed since start
    """
    return int((monotonic() - start) * 1000)
