"""
Apple bootloader device session and raw USB routines
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
import errno
from dataclasses import dataclass
from enum import IntEnum

import usb.core
import usb.util
from usb.backend.libusb1 import LIBUSB_ERROR_NO_DEVICE

from pyirecv.checksum import APPLE_VENDOR_ID
from pyirecv.exceptions import (ConnectionLost, ConfigurationClaimFailure,
                                NoDeviceFound, _IOError)
from pyirecv.logger import logger

_logger = logger.getChild(__name__.rsplit('.', maxsplit=1)[-1])

VENDOR_ID = APPLE_VENDOR_ID

# timeouts in milliseconds
USB_TIMEOUT = 10000
SHORT_TIMEOUT = 1000
CONSOLE_TIMEOUT = 500

CONSOLE_BUFFER_SIZE = 0x10000
CONSOLE_CONFIGURATION = 1
CONSOLE_INTERFACE = 1
CONSOLE_ALTSETTING = 1


class DeviceMode(IntEnum):
    """Bootloader modes by USB product id"""
    NORMAL = 0x1290
    RECOVERY = 0x1281
    WTF = 0x1227
    DFU = 0x1222

    UNKNOWN = -1

    def to_string(self):
        """
        :return: human readable mode name
        """
        return _MODE_NAMES.get(self, 'Unknown')


# Connection priority
PROBE_ORDER = (DeviceMode.RECOVERY, DeviceMode.WTF, DeviceMode.DFU)

_MODE_NAMES = {
    DeviceMode.NORMAL: 'Normal',
    DeviceMode.RECOVERY: 'Recovery',
    DeviceMode.WTF: 'WTF',
    DeviceMode.DFU: 'DFU',
}


class RequestType(IntEnum):
    """bmRequestType values understood by the bootloader"""
    CLASS_OUT = (usb.util.ENDPOINT_OUT
                 | usb.util.CTRL_TYPE_CLASS
                 | usb.util.CTRL_RECIPIENT_INTERFACE)  # 0x21
    VENDOR_OUT = (usb.util.ENDPOINT_OUT
                  | usb.util.CTRL_TYPE_VENDOR
                  | usb.util.CTRL_RECIPIENT_DEVICE)  # 0x40
    VENDOR_OUT_INTERFACE = (usb.util.ENDPOINT_OUT
                            | usb.util.CTRL_TYPE_VENDOR
                            | usb.util.CTRL_RECIPIENT_INTERFACE)  # 0x41
    CLASS_IN = (usb.util.ENDPOINT_IN
                | usb.util.CTRL_TYPE_CLASS
                | usb.util.CTRL_RECIPIENT_INTERFACE)  # 0xA1
    VENDOR_IN = (usb.util.ENDPOINT_IN
                 | usb.util.CTRL_TYPE_VENDOR
                 | usb.util.CTRL_RECIPIENT_DEVICE)  # 0xC0


class Request(IntEnum):
    """bRequest values"""
    VENDOR = 0  # start of a bulk transfer, commands, env read
    SEND = 1  # payload data
    EXPLOIT = 2
    GET_STATUS = 3
    GET_STATE = 5  # DFU start acknowledge


class Endpoint(IntEnum):
    """Bulk endpoints"""
    PAYLOAD_OUT = 0x04
    CONSOLE_IN = 0x81


def _is_disconnect(err: usb.core.USBError) -> bool:
    return (err.errno == errno.ENODEV
            or getattr(err, 'backend_error_code', None) == LIBUSB_ERROR_NO_DEVICE)


@dataclass
class DeviceSession:
    """
    Connected bootloader.
    Owns the pyusb device handle, use connect() to get one
    """
    dev: usb.core.Device = None
    mode: DeviceMode = DeviceMode.UNKNOWN
    console_claimed: bool = False

    @property
    def is_connected(self) -> bool:
        """True while the handle is usable"""
        return self.dev is not None

    @property
    def is_bulk_mode(self) -> bool:
        """Recovery mode takes payloads over bulk endpoint, DFU and WTF over control"""
        return self.mode not in (DeviceMode.DFU, DeviceMode.WTF)

    def _device(self) -> usb.core.Device:
        if self.dev is None:
            raise ConnectionLost("No device connected")
        return self.dev

    def ctrl_transfer(self,
                      request_type: int,
                      request: int,
                      value: int = 0,
                      index: int = 0,
                      data_or_length: [bytes, int, None] = None,
                      timeout: int = USB_TIMEOUT) -> [int, 'array.array']:
        """
        Raw control transfer, results are returned unchanged
        :param request_type: bmRequestType
        :param request: bRequest
        :param value: wValue
        :param index: wIndex
        :param data_or_length: data to send or length to read
        :param timeout: in milliseconds
        :return: bytes written or array of bytes read
        """
        dev = self._device()
        try:
            return dev.ctrl_transfer(
                bmRequestType=request_type,
                bRequest=request,
                wValue=value,
                wIndex=index,
                data_or_wLength=data_or_length,
                timeout=timeout,
            )
        except usb.core.USBError as e:
            if _is_disconnect(e):
                self.dev = None
                raise ConnectionLost(f"Device disconnected: {e}") from e
            raise

    def bulk_write(self,
                   data: [bytes, bytearray, memoryview],
                   endpoint: int = Endpoint.PAYLOAD_OUT,
                   timeout: int = USB_TIMEOUT) -> int:
        """
        Raw bulk transfer to device
        :return: bytes written
        """
        dev = self._device()
        try:
            return dev.write(endpoint, data, timeout)
        except usb.core.USBError as e:
            if _is_disconnect(e):
                self.dev = None
                raise ConnectionLost(f"Device disconnected: {e}") from e
            raise

    def read_console(self,
                     size: int = CONSOLE_BUFFER_SIZE,
                     timeout: int = CONSOLE_TIMEOUT) -> bytes:
        """
        Reads pending console output
        :return: received bytes, empty on timeout
        """
        dev = self._device()
        try:
            return dev.read(Endpoint.CONSOLE_IN, size, timeout).tobytes()
        except usb.core.USBTimeoutError:
            return b''
        except usb.core.USBError as e:
            if _is_disconnect(e):
                self.dev = None
                raise ConnectionLost(f"Device disconnected: {e}") from e
            raise _IOError(f"Error reading console: {e}") from e

    def claim_console_interface(self) -> None:
        """Activates the interface recovery console is reachable on"""
        dev = self._device()
        _logger.debug(f"Setting Configuration {CONSOLE_CONFIGURATION}...")
        try:
            dev.set_configuration(CONSOLE_CONFIGURATION)
        except usb.core.USBError as e:
            raise ConfigurationClaimFailure(f"Error setting configuration: {e}") from e

        _logger.debug(f"Claiming interface {CONSOLE_INTERFACE}...")
        try:
            usb.util.claim_interface(dev, CONSOLE_INTERFACE)
        except usb.core.USBError as e:
            raise ConfigurationClaimFailure(f"Error claiming interface: {e}") from e

        try:
            dev.set_interface_altsetting(interface=CONSOLE_INTERFACE,
                                         alternate_setting=CONSOLE_ALTSETTING)
        except usb.core.USBError as e:
            usb.util.release_interface(dev, CONSOLE_INTERFACE)
            raise ConfigurationClaimFailure(f"Error claiming alt interface: {e}") from e
        self.console_claimed = True

    def release_console_interface(self) -> None:
        """Releases console interface if claimed, the device may be gone already"""
        try:
            if self.dev is not None and self.console_claimed:
                usb.util.release_interface(self.dev, CONSOLE_INTERFACE)
        except usb.core.USBError as e:
            _logger.debug(f"Console interface not released: {e}")
        finally:
            self.console_claimed = False

    def reset(self) -> None:
        """
        Resets the device, the handle is not usable after
        device reenumerates, connect() again to talk to it
        """
        if self.dev is None:
            return
        _logger.info("Resetting Connection.")
        dev, self.dev = self.dev, None
        self.console_claimed = False
        try:
            dev.reset()
        except usb.core.USBError as e:
            # the bootloader may leave the bus before reset completes
            if not _is_disconnect(e):
                raise _IOError(f"Error resetting device: {e}") from e
            _logger.debug(f"Device left during reset: {e}")
        finally:
            usb.util.dispose_resources(dev)

    def close(self) -> None:
        """Frees the handle, does nothing when not connected"""
        if self.dev is None:
            return
        _logger.info("Closing Connection.")
        try:
            self.release_console_interface()
        finally:
            usb.util.dispose_resources(self.dev)
            self.dev = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
        return False


def connect(backend=None) -> DeviceSession:
    """
    Finds a device in Recovery, WTF or DFU mode, in that order
    :param backend: optional pyusb backend
    :return: DeviceSession
    """
    for mode in PROBE_ORDER:
        try:
            dev = usb.core.find(idVendor=VENDOR_ID, idProduct=mode, backend=backend)
        except (usb.core.USBError, usb.core.NoBackendError) as e:
            raise _IOError(f"unable to initialize libusb: {e}") from e
        if dev is not None:
            _logger.info(f"Connected in {mode.to_string()} mode "
                         f"[{VENDOR_ID:04x}:{mode.value:04x}]")
            return DeviceSession(dev=dev, mode=mode)
    raise NoDeviceFound("Failed to connect, check the device is in DFU or WTF (Recovery) Mode")


__all__ = (
    'DeviceMode',
    'DeviceSession',
    'RequestType',
    'Request',
    'Endpoint',
    'PROBE_ORDER',
    'VENDOR_ID',
    'USB_TIMEOUT',
    'SHORT_TIMEOUT',
    'CONSOLE_TIMEOUT',
    'connect',
)
