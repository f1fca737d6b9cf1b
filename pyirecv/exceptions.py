"""
PyIRecv exceptions.
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
import logging
import sys
from enum import IntEnum
from functools import wraps


class SysExit(IntEnum):
    """sysexits.h exit codes"""
    EX_OK = 0
    OTHER = 1
    EX_USAGE = 64  # command line usage error
    EX_DATAERR = 65  # data format error
    EX_NOINPUT = 66  # cannot open input
    EX_UNAVAILABLE = 69  # service unavailable
    EX_SOFTWARE = 70  # internal software error
    EX_OSERR = 71  # system error (e.g., can't fork)
    EX_IOERR = 74  # input/output error
    EX_TEMPFAIL = 75  # temp failure; user is invited to retry
    EX_PROTOCOL = 76  # remote error in protocol
    EX_NOPERM = 77  # permission denied
    EX_CONFIG = 78  # configuration error


class Errx(Exception):
    """
    Usually indicates a general error.
    Base class of every error pyirecv surfaces to its caller,
    carries the process exit code the cli should use for it.
    """
    exit_code = SysExit.OTHER

    def __init__(self, message, exit_code: SysExit = None):
        super().__init__(message)
        if isinstance(exit_code, SysExit):
            self.exit_code = exit_code


class UsageError(Errx):
    """Misuse of the cli or of an operation argument"""
    exit_code = SysExit.EX_USAGE


class _IOError(Errx, IOError):
    """EX_IOERR"""
    exit_code = SysExit.EX_IOERR


class NoInputError(Errx, OSError):
    """Payload or batch file can't be found"""
    exit_code = SysExit.EX_NOINPUT


class AllocationFailure(Errx, MemoryError):
    """Payload does not fit in memory"""
    exit_code = SysExit.EX_OSERR


class NoDeviceFound(Errx):
    """No device in Recovery, WTF or DFU mode is attached"""
    exit_code = SysExit.EX_UNAVAILABLE


class ConnectionLost(_IOError):
    """The device handle became invalid in the middle of an operation"""


class ConfigurationClaimFailure(Errx):
    """Console configuration, interface or alt setting can't be claimed"""
    exit_code = SysExit.EX_CONFIG


class ProtocolError(Errx):
    """EX_PROTOCOL"""
    exit_code = SysExit.EX_PROTOCOL


class TransferSizeMismatch(ProtocolError):
    """Bytes sent or received differ from the expected amount"""

    def __init__(self, message, expected: int = None, actual: int = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class CommandSendError(TransferSizeMismatch):
    """Command was not accepted by the device"""


class ExploitError(TransferSizeMismatch):
    """Exploit payload or trigger was not delivered"""


class StatusReadFailure(ProtocolError):
    """Short read of the 6 bytes status response"""


class StatusValueMismatch(ProtocolError):
    """Device reported unexpected status code"""

    def __init__(self, message, expected: int = None, actual: int = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class CommandTooLong(Errx, ValueError):
    """Command exceeds the bootloader's line buffer, never sent"""
    exit_code = SysExit.EX_DATAERR


def except_and_safe_exit(_logger: logging.Logger = None):
    """decorator to handle exceptions and exit safely"""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Errx as e:
                if str(e) and _logger:
                    if _logger.getEffectiveLevel() <= logging.DEBUG:
                        _logger.exception(e)
                    else:
                        _logger.error(e)
                sys.exit(e.exit_code)
            # pylint: disable=broad-exception-caught
            except Exception as e:
                if _logger:
                    if _logger.getEffectiveLevel() <= logging.DEBUG:
                        _logger.exception(f"Unhandled exception occurred: {e}")
                    else:
                        _logger.error(f"Unhandled exception occurred: {e}")
                sys.exit(SysExit.OTHER)

        return wrapper

    return decorator


__all__ = (
    'SysExit',
    'Errx',
    'UsageError',
    '_IOError',
    'NoInputError',
    'AllocationFailure',
    'NoDeviceFound',
    'ConnectionLost',
    'ConfigurationClaimFailure',
    'ProtocolError',
    'TransferSizeMismatch',
    'CommandSendError',
    'ExploitError',
    'StatusReadFailure',
    'StatusValueMismatch',
    'CommandTooLong',
    'except_and_safe_exit',
)
