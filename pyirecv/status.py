"""
Bootloader status polling
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
from dataclasses import dataclass
from enum import IntEnum

from usb.core import USBError

from pyirecv.device import DeviceSession, RequestType, Request, USB_TIMEOUT
from pyirecv.exceptions import StatusReadFailure, StatusValueMismatch
from pyirecv.logger import logger
from pyirecv.portable import milli_sleep

_logger = logger.getChild(__name__.rsplit('.', maxsplit=1)[-1])

STATUS_LENGTH = 6
STATUS_RETRY_ATTEMPTS = 20
STATUS_RETRY_INTERVAL = 1000  # milliseconds


class StatusCode(IntEnum):
    """Status codes reported in byte 4 of the status response"""
    UNKNOWN = 0
    PACKET_ACCEPTED = 5
    EXECUTION_SYNC = 6
    EXECUTION = 7
    EXECUTION_DONE = 8

    def to_string(self):
        """
        :return: StatusCode description
        """
        return _STATUS_NAMES.get(self, 'unknown')


# The order the device reports after the upload finished
EXECUTION_SEQUENCE = (StatusCode.EXECUTION_SYNC,
                      StatusCode.EXECUTION,
                      StatusCode.EXECUTION_DONE)

_STATUS_NAMES = {
    StatusCode.PACKET_ACCEPTED: "packet accepted, ready for next",
    StatusCode.EXECUTION_SYNC: "upload complete",
    StatusCode.EXECUTION: "executing",
    StatusCode.EXECUTION_DONE: "executed",
}


@dataclass
class DeviceStatus:
    """
    Converts status response bytes to applicable dataclass
    """
    raw: bytes = bytes(STATUS_LENGTH)

    @classmethod
    def from_bytes(cls, data: [bytes, bytearray]):
        """Creates DeviceStatus instance from bytes sequence"""
        if len(data) < STATUS_LENGTH:
            raise StatusReadFailure(
                f"Status response too short: {len(data)} of {STATUS_LENGTH} bytes"
            )
        return cls(bytes(data[:STATUS_LENGTH]))

    @property
    def code(self) -> int:
        """Status byte"""
        return self.raw[4]

    def __int__(self):
        return self.code

    def __bytes__(self) -> bytes:
        return self.raw


def read_status(session: DeviceSession, timeout: int = USB_TIMEOUT) -> DeviceStatus:
    """
    GET_STATUS request, 6 bytes from the device
    :param session: DeviceSession
    :param timeout: in milliseconds
    :return: DeviceStatus
    """
    try:
        result = session.ctrl_transfer(RequestType.CLASS_IN, Request.GET_STATUS,
                                       0, 0, STATUS_LENGTH, timeout)
    except USBError as e:
        raise StatusReadFailure(f"Error receiving status: {e}") from e
    status = DeviceStatus.from_bytes(bytes(result))
    _logger.debug(f"GET_STATUS {status.code}")
    return status


def check_status(session: DeviceSession,
                 expected: int = StatusCode.PACKET_ACCEPTED,
                 timeout: int = USB_TIMEOUT) -> DeviceStatus:
    """
    Single status read that has to report expected code
    :raises StatusReadFailure: short read
    :raises StatusValueMismatch: other code reported
    """
    status = read_status(session, timeout)
    if status.code != expected:
        raise StatusValueMismatch(
            f"Invalid status {status.code}, expected {int(expected)}",
            expected=int(expected), actual=status.code
        )
    return status


def wait_status(session: DeviceSession,
                expected: int = StatusCode.PACKET_ACCEPTED,
                attempts: int = STATUS_RETRY_ATTEMPTS,
                interval: int = STATUS_RETRY_INTERVAL,
                timeout: int = USB_TIMEOUT) -> DeviceStatus:
    """
    Polls status until the device reports expected code.
    The device may be busy erasing flash, reads that fail
    count as not ready
    :param session: DeviceSession
    :param expected: status code to wait for
    :param attempts: polls at most
    :param interval: pause between polls in milliseconds
    :param timeout: in milliseconds
    :raises StatusValueMismatch: budget exhausted
    """
    status = None
    for attempt in range(1, attempts + 1):
        try:
            status = read_status(session, timeout)
        except StatusReadFailure as e:
            _logger.debug(f"Status poll {attempt}/{attempts} failed: {e}")
            status = None
        if status is not None and status.code == expected:
            return status
        if attempt < attempts:
            milli_sleep(interval)

    actual = status.code if status is not None else None
    raise StatusValueMismatch(
        f"Invalid status error during file upload: {actual} after {attempts} polls",
        expected=int(expected), actual=actual
    )


__all__ = (
    'StatusCode',
    'DeviceStatus',
    'EXECUTION_SEQUENCE',
    'STATUS_LENGTH',
    'STATUS_RETRY_ATTEMPTS',
    'STATUS_RETRY_INTERVAL',
    'read_status',
    'check_status',
    'wait_status',
)
