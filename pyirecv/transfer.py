"""
Payload transfer routines
(C) 2023 Yaroshenko Dmytro (https://github.com/o-murphy)

Recovery mode takes a file over the bulk endpoint in 0x8000 bytes
packets. DFU and WTF modes take it over control transfers in 0x800
bytes packets, each one acknowledged with status 5, the last one
carries the DFU suffix with a CRC of the whole file.

The upload protocol is used to run payloads: 0x800 bytes control
packets in every mode, followed by an empty packet and three status
reads reporting 6, 7 and 8.

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
import errno
from dataclasses import dataclass
from enum import IntEnum
from time import monotonic
from typing import Generator

from usb.core import USBError

from pyirecv.checksum import DfuChecksum
from pyirecv.device import (DeviceSession, RequestType, Request,
                            USB_TIMEOUT, SHORT_TIMEOUT)
from pyirecv.exceptions import (AllocationFailure, NoInputError,
                                StatusValueMismatch, TransferSizeMismatch, _IOError)
from pyirecv.logger import logger
from pyirecv.portable import elapsed_ms
from pyirecv.progress import Progress
from pyirecv.status import (EXECUTION_SEQUENCE, STATUS_RETRY_ATTEMPTS, StatusCode,
                            check_status, read_status, wait_status)

_logger = logger.getChild(__name__.rsplit('.', maxsplit=1)[-1])

PACKET_SIZE_BULK = 0x8000
PACKET_SIZE_CONTROL = 0x800


class Finalize(IntEnum):
    """What happens after the last DFU packet"""
    NONE = 0
    NOTIFY = 1  # empty packet, two status reads, reset
    NOTIFY_ZLP = 2  # same with one more empty packet before reset


@dataclass(frozen=True)
class TransferPlan:
    """Splits payload of given length into packets"""
    length: int
    packet_size: int

    def __post_init__(self):
        if self.length < 0:
            raise ValueError(f"Invalid payload length {self.length}")
        if self.packet_size <= 0:
            raise ValueError(f"Invalid packet size {self.packet_size}")

    @classmethod
    def for_session(cls, session: DeviceSession, length: int) -> 'TransferPlan':
        """Plan for a file-send in the session's mode"""
        packet_size = PACKET_SIZE_BULK if session.is_bulk_mode else PACKET_SIZE_CONTROL
        return cls(length, packet_size)

    @property
    def packets(self) -> int:
        """Number of packets"""
        return -(-self.length // self.packet_size)

    @property
    def last(self) -> int:
        """Size of the last packet, full packet when length is a multiple"""
        return self.length % self.packet_size or self.packet_size

    def packet_length(self, index: int) -> int:
        """Size of packet at index"""
        if not 0 <= index < self.packets:
            raise IndexError(f"Packet {index} out of range")
        return self.packet_size if index + 1 < self.packets else self.last

    def is_last(self, index: int) -> bool:
        """True for the final packet"""
        return index + 1 == self.packets

    def chunks(self, data: [bytes, bytearray]) -> Generator[tuple[int, memoryview], None, None]:
        """
        Iterates over packets
        :param data: payload, len(data) must be the planned length
        :return: (index, chunk) pairs
        """
        if len(data) != self.length:
            raise ValueError(f"Payload is {len(data)} bytes, planned {self.length}")
        view = memoryview(data)
        for index in range(self.packets):
            offset = index * self.packet_size
            yield index, view[offset:offset + self.packet_length(index)]


def load_payload(path: str) -> bytes:
    """
    Reads a payload file into memory
    :param path: file name
    :return: file content
    """
    try:
        with open(path, 'rb') as fp:
            data = fp.read()
    except MemoryError as e:
        raise AllocationFailure(f"Error allocating memory for {path}") from e
    except IOError as e:
        if e.errno == errno.ENOENT:
            raise NoInputError(f"Unable to find file. ({path})") from e
        if e.errno == errno.EACCES:
            raise _IOError(f"Permission denied: {path}") from e
        raise _IOError(f"Error reading file {path}: {e}") from e
    _logger.debug(f"Read {len(data)} bytes from {path}")
    return data


def _send_packet(session: DeviceSession,
                 index: int,
                 data: [bytes, memoryview, None],
                 timeout: int) -> int:
    """Control packet tagged with its index"""
    expected = len(data) if data else 0
    try:
        written = session.ctrl_transfer(RequestType.CLASS_OUT, Request.SEND,
                                        index, 0, bytes(data) if expected else None, timeout)
    except USBError as e:
        raise TransferSizeMismatch(f"Error sending packet {index}: {e}",
                                   expected=expected, actual=0) from e
    if written != expected:
        raise TransferSizeMismatch(f"Error sending packet {index}: "
                                   f"{written} of {expected} bytes",
                                   expected=expected, actual=written)
    return written


def _send_bulk(session: DeviceSession, data: bytes, progress: Progress) -> int:
    plan = TransferPlan(len(data), PACKET_SIZE_BULK)
    _logger.debug(f"Bulk transfer of {plan.packets} packets")

    try:
        session.ctrl_transfer(RequestType.VENDOR_OUT_INTERFACE, Request.VENDOR,
                              0, 0, None, USB_TIMEOUT)
    except USBError as e:
        raise _IOError(f"Error initializing transfer: {e}") from e

    sent = 0
    for index, chunk in plan.chunks(data):
        try:
            written = session.bulk_write(bytes(chunk), timeout=USB_TIMEOUT)
        except USBError as e:
            raise TransferSizeMismatch(f"Error sending packet {index}: {e}",
                                       expected=len(chunk), actual=0) from e
        if written != len(chunk):
            raise TransferSizeMismatch(f"Error sending packet {index}: "
                                       f"{written} of {len(chunk)} bytes",
                                       expected=len(chunk), actual=written)
        sent += written
        progress.update(advance=written)
    return sent


def _send_control(session: DeviceSession,
                  data: bytes,
                  finalize: Finalize,
                  progress: Progress) -> int:
    plan = TransferPlan(len(data), PACKET_SIZE_CONTROL)
    _logger.debug(f"DFU transfer of {plan.packets} packets")

    try:
        ack = session.ctrl_transfer(RequestType.CLASS_IN, Request.GET_STATE,
                                    0, 0, 1, USB_TIMEOUT)
    except USBError as e:
        raise _IOError(f"Error initializing transfer: {e}") from e
    if len(ack) != 1:
        raise TransferSizeMismatch("Error initializing transfer", expected=1, actual=len(ack))

    checksum = DfuChecksum()
    sent = 0
    for index, chunk in plan.chunks(data):
        checksum.update(chunk)
        payload_length = len(chunk)
        if plan.is_last(index):
            trailer = checksum.trailer()
            _logger.debug(f"DFU suffix CRC 0x{trailer.dwCRC:08x}")
            chunk = bytes(chunk) + bytes(trailer)
        _send_packet(session, index, chunk, USB_TIMEOUT)

        # first poll decides, busy device gets the rest of the budget
        status = read_status(session, USB_TIMEOUT)
        if status.code != StatusCode.PACKET_ACCEPTED:
            _logger.debug(f"Device busy (status {status.code}), waiting")
            wait_status(session, StatusCode.PACKET_ACCEPTED,
                        attempts=STATUS_RETRY_ATTEMPTS - 1)

        sent += len(chunk)
        # total counts payload bytes only
        progress.update(advance=payload_length)

    if finalize == Finalize.NONE:
        return sent

    _send_packet(session, plan.packets, None, USB_TIMEOUT)
    for _ in range(2):
        read_status(session, USB_TIMEOUT)

    if finalize == Finalize.NOTIFY_ZLP:
        try:
            session.ctrl_transfer(RequestType.CLASS_OUT, Request.SEND, 0, 0, None, USB_TIMEOUT)
        except USBError as e:
            _logger.debug(f"Pseudo ZLP not accepted: {e}")

    session.reset()
    return sent


def do_send(session: DeviceSession,
            data: [bytes, bytearray],
            finalize: Finalize = Finalize.NONE) -> int:
    """
    Sends a file in the protocol of the session's mode
    :param session: DeviceSession
    :param data: payload
    :param finalize: DFU/WTF only, Finalize mode
    :return: bytes sent, DFU suffix included
    """
    data = bytes(data)
    start = monotonic()
    _logger.info(f"Sending {len(data)} bytes in {session.mode.to_string()} mode")

    with Progress() as progress:
        progress.start_task(description="Sending", total=len(data))
        if session.is_bulk_mode:
            sent = _send_bulk(session, data, progress)
        else:
            sent = _send_control(session, data, Finalize(finalize), progress)
        progress.update(description="Send finished!")

    _logger.info(f"Successfully uploaded file ({sent} bytes, {elapsed_ms(start)} ms)")
    return sent


def send_file(session: DeviceSession, path: str, finalize: Finalize = Finalize.NONE) -> int:
    """Reads and sends a file"""
    return do_send(session, load_payload(path), finalize)


def do_upload_buffer(session: DeviceSession, data: [bytes, bytearray]) -> int:
    """
    Uploads a payload and has the device execute it.
    :param session: DeviceSession
    :param data: payload
    :return: bytes sent
    :raises TransferSizeMismatch: packet was not sent
    :raises StatusReadFailure: short status read
    :raises StatusValueMismatch: device rejected packet or execution
    """
    data = bytes(data)
    plan = TransferPlan(len(data), PACKET_SIZE_CONTROL)
    sent = 0

    with Progress() as progress:
        progress.start_task(description="Uploading", total=len(data))
        for index, chunk in plan.chunks(data):
            _logger.debug(f"Sending packet {index + 1} of {plan.packets} "
                          f"(0x{sent + len(chunk):08x} of 0x{len(data):08x} bytes)")
            sent += _send_packet(session, index, chunk, SHORT_TIMEOUT)
            check_status(session, StatusCode.PACKET_ACCEPTED, SHORT_TIMEOUT)
            progress.update(advance=len(chunk))
        progress.update(description="Upload finished!")

    _logger.info("Executing file.")
    _send_packet(session, plan.packets, None, SHORT_TIMEOUT)

    for expected in EXECUTION_SEQUENCE:
        try:
            check_status(session, expected, SHORT_TIMEOUT)
        except StatusValueMismatch as e:
            raise StatusValueMismatch(f"Invalid execution status {e.actual}, "
                                      f"expected {int(expected)}",
                                      expected=e.expected, actual=e.actual) from e

    _logger.info("Successfully executed file.")
    return sent


def do_upload(session: DeviceSession, path: str) -> int:
    """Reads a file and runs the upload protocol with it"""
    return do_upload_buffer(session, load_payload(path))


__all__ = (
    'PACKET_SIZE_BULK',
    'PACKET_SIZE_CONTROL',
    'Finalize',
    'TransferPlan',
    'load_payload',
    'do_send',
    'send_file',
    'do_upload',
    'do_upload_buffer',
)
