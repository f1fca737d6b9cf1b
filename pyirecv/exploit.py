"""
USB exploit trigger and raw control requests
(C) 2023 Yaroshenko Dmytro (https://github.com/o-murphy)

This program is free software; you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation; either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program; if not, write to the Free Software
Foundation, Inc., 59 Temple Place, Suite 330, Boston, MA  02111-1307  USA
"""
import re
from enum import IntEnum

from usb.core import USBError

from pyirecv.device import DeviceSession, RequestType, Request, SHORT_TIMEOUT
from pyirecv.exceptions import ExploitError, ProtocolError, UsageError
from pyirecv.logger import logger
from pyirecv.transfer import do_upload

_logger = logger.getChild(__name__.rsplit('.', maxsplit=1)[-1])


class RawEndpoint(IntEnum):
    """bmRequestType accepted by raw_control_transfer"""
    CLASS_IN = RequestType.CLASS_IN  # 0xA1
    VENDOR_OUT = RequestType.VENDOR_OUT  # 0x40
    CLASS_OUT = RequestType.CLASS_OUT  # 0x21


def atoi(s: str) -> int:
    """
    Leading decimal integer of the string, "0x10" gives 0 as C atoi does
    :param s: input
    :return: Return 0 if no integer is found
    """
    match = re.match(r'^\s*([-+]?\d+)', s)
    if match:
        return int(match.group(1))

    return 0


def exploit(session: DeviceSession, payload: str = None) -> None:
    """
    Optionally uploads a payload, then sends the exploit request
    :param session: DeviceSession
    :param payload: path to payload file
    :raises ExploitError: payload or trigger failed, trigger not sent on payload failure
    """
    if payload is not None:
        try:
            do_upload(session, payload)
        except ProtocolError as e:
            raise ExploitError(f"Error uploading payload: {e}") from e

    _logger.info("Sending exploit.")
    # zero-length request, 0 bytes written is a delivered trigger
    try:
        session.ctrl_transfer(RequestType.CLASS_OUT, Request.EXPLOIT,
                              0, 0, None, SHORT_TIMEOUT)
    except USBError as e:
        raise ExploitError(f"Error sending exploit: {e}") from e


def raw_control_transfer(session: DeviceSession,
                         endpoint: int,
                         argument: [str, int]) -> [int, bytes]:
    """
    Zero length control transfer with bRequest taken from argument.
    Nothing is interpreted, USB errors come back as their errno
    :param session: DeviceSession
    :param endpoint: one of RawEndpoint
    :param argument: request number, parsed as atoi does
    :return: transfer result
    """
    try:
        endpoint = RawEndpoint(endpoint)
    except ValueError as e:
        raise UsageError(f"Unsupported raw endpoint 0x{endpoint:02X}") from e
    request = argument if isinstance(argument, int) else atoi(argument)

    _logger.info(f"Sending raw command to 0x{endpoint.value:02X}, {request}, 0, 0, 0, "
                 f"{SHORT_TIMEOUT}.")
    data_or_length = 0 if endpoint == RawEndpoint.CLASS_IN else None
    try:
        result = session.ctrl_transfer(endpoint, request, 0, 0, data_or_length, SHORT_TIMEOUT)
    except USBError as e:
        _logger.info(f"Raw command result: {e}")
        return e.errno if e.errno is not None else -1
    if not isinstance(result, int):
        result = bytes(result)
    _logger.info(f"Raw command result: {result!r}")
    return result


__all__ = (
    'RawEndpoint',
    'atoi',
    'exploit',
    'raw_control_transfer',
)
