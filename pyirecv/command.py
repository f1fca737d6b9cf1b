"""
Recovery mode command channel
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
from usb.core import USBError

from pyirecv.device import DeviceSession, RequestType, Request, SHORT_TIMEOUT
from pyirecv.exceptions import CommandSendError, CommandTooLong, Errx
from pyirecv.logger import logger

_logger = logger.getChild(__name__.rsplit('.', maxsplit=1)[-1])

# bootloader line buffer, NUL terminator included
MAX_COMMAND_LENGTH = 0x200
ENV_BUFFER_SIZE = 0x200

AUTOBOOT_COMMANDS = (
    "setenv auto-boot true",
    "saveenv",
    "reboot",
)


def encode_command(text: [str, bytes]) -> bytes:
    """
    NUL terminated command bytes
    :raises CommandTooLong: does not fit the bootloader's buffer
    """
    raw = text.encode('utf-8') if isinstance(text, str) else bytes(text)
    if len(raw) + 1 >= MAX_COMMAND_LENGTH:
        raise CommandTooLong(f"Failed to send command (too long): {len(raw)} bytes")
    return raw + b'\0'


def send_command(session: DeviceSession, text: [str, bytes]) -> int:
    """
    Sends a command to the bootloader shell
    :param session: DeviceSession
    :param text: command line without terminator
    :return: bytes sent
    :raises CommandTooLong: nothing is sent
    :raises CommandSendError: device did not take the whole command
    """
    data = encode_command(text)
    _logger.debug(f"Command: {data[:-1]!r}")
    try:
        written = session.ctrl_transfer(RequestType.VENDOR_OUT, Request.VENDOR,
                                        0, 0, data, SHORT_TIMEOUT)
    except USBError as e:
        raise CommandSendError(f"Failed to send command: {e}",
                               expected=len(data), actual=0) from e
    if written != len(data):
        raise CommandSendError(f"Failed to send command: {written} of {len(data)} bytes",
                               expected=len(data), actual=written)
    return written


def enable_autoboot(session: DeviceSession) -> list[str]:
    """
    Sets auto-boot, saves environment and reboots.
    Every command is sent even if the previous one failed
    :return: commands that failed
    """
    _logger.info("Enabling auto-boot.")
    failed = []
    for command in AUTOBOOT_COMMANDS:
        try:
            send_command(session, command)
        except Errx as e:
            _logger.warning(f"{command}: {e}")
            failed.append(command)
    return failed


def get_env(session: DeviceSession) -> str:
    """
    Reads the reply of the last getenv command
    :return: variable value
    """
    try:
        result = session.ctrl_transfer(RequestType.VENDOR_IN, Request.VENDOR,
                                       0, 0, ENV_BUFFER_SIZE, SHORT_TIMEOUT)
    except USBError as e:
        raise CommandSendError(f"Failed to read environment: {e}") from e
    raw = bytes(result)
    return raw.split(b'\0', 1)[0].decode('utf-8', errors='replace')


__all__ = (
    'MAX_COMMAND_LENGTH',
    'AUTOBOOT_COMMANDS',
    'encode_command',
    'send_command',
    'enable_autoboot',
    'get_env',
)
