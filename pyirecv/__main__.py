"""
pyirecv
iRecovery - Utility for DFU 2.0, WTF and Recovery Mode
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
import argparse
import signal
import sys
from enum import Enum

from pyirecv import __version__, __copyright__
from pyirecv.command import enable_autoboot, send_command
from pyirecv.console import Dispatcher, RecoveryConsole, run_batch
from pyirecv.device import DeviceSession, connect
from pyirecv.exceptions import except_and_safe_exit
from pyirecv.exploit import RawEndpoint, exploit, raw_control_transfer
from pyirecv.logger import logger, set_verbose
from pyirecv.transfer import Finalize, do_upload, send_file

_logger = logger.getChild(__name__.rsplit('.', maxsplit=1)[-1])

VERSION = (f"pyirecv {__version__}\n\n"
           f"{__copyright__[0]}\n"
           f"by westbaer. Thanks to pod2g, tom3q, planetbeing, geohot and posixninja.\n"
           f"Rewrite by GreySyntax.\n")

EPILOG = """== Console / Batch Commands ==

  /auto-boot        enables auto-boot and reboots the device (exit recovery loop).
  /exit             exit the recovery console.
  /send    <file>   send a file to the device.
  /upload  <file>   upload a file to the device.
  /exploit <file>   upload a file then execute a usb exploit.
  /batch   <file>   execute commands from a batch file.
"""


class Action(Enum):
    """cli action"""
    AUTOBOOT = '-a'
    SHELL = '-s'
    RESET = '-r'
    SEND = '-f'
    UPLOAD = '-u'
    UPLOAD_RESET = '-x'
    EXPLOIT = '-e'
    COMMAND = '-c'
    BATCH = '-b'
    RAW_21 = '-x21'
    RAW_40 = '-x40'
    RAW_A1 = '-xA1'


class ActionArgument(argparse.Action):
    """Stores the chosen action and its argument"""

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, 'action', Action(option_string))
        if isinstance(values, list):
            values = ' '.join(values)
        # '' is the const of options given without their optional value
        setattr(namespace, 'argument', values or None)


def add_cli_options(parser: argparse.ArgumentParser) -> None:
    """Add cli options"""
    parser.add_argument("-V", "--version", action="version", version=VERSION,
                        help="Print the version number")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Print verbose debug statements")
    parser.set_defaults(action=None, argument=None)

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("-a", nargs=0, action=ActionArgument,
                       help="enables auto-boot and reboots the device (exit recovery loop)")
    group.add_argument("-s", nargs='?', const='', metavar="<logfile>",
                       action=ActionArgument,
                       help="starts a shell")
    group.add_argument("-r", nargs=0, action=ActionArgument,
                       help="usb reset")
    group.add_argument("-f", metavar="<file>", action=ActionArgument,
                       help="sends a file")
    group.add_argument("-u", metavar="<file>", action=ActionArgument,
                       help="uploads a file")
    group.add_argument("-c", nargs='+', metavar='"command"', action=ActionArgument,
                       help="send a single command")
    group.add_argument("-b", metavar="<file>", action=ActionArgument,
                       help="runs batch commands from a file (one per line)")
    group.add_argument("-x", metavar="<file>", action=ActionArgument,
                       help="uploads a file then resets the usb connection")
    group.add_argument("-e", nargs='?', const='', metavar="<file>",
                       action=ActionArgument,
                       help="upload a file then run usb exploit")
    group.add_argument("-x21", metavar="<command>", action=ActionArgument,
                       help="send a raw command to 0x21")
    group.add_argument("-x40", metavar="<command>", action=ActionArgument,
                       help="send a raw command to 0x40")
    group.add_argument("-xA1", metavar="<command>", action=ActionArgument,
                       help="send a raw command to 0xA1")


def install_signal_handlers(session: DeviceSession) -> None:
    """Closes the session when the process is told to stop"""

    def handler(signum, _frame):
        _logger.debug(f"Signal {signum}")
        session.close()
        sys.exit(0)

    for name in ('SIGINT', 'SIGTERM', 'SIGQUIT'):
        if hasattr(signal, name):
            signal.signal(getattr(signal, name), handler)


def run_action(session: DeviceSession, action: Action, argument: [str, None]) -> None:
    """
    Runs one cli action against a connected device
    :param session: DeviceSession
    :param action: Action
    :param argument: option argument if any
    """
    if action == Action.AUTOBOOT:
        enable_autoboot(session)
    elif action == Action.SHELL:
        RecoveryConsole(session, argument).run()
    elif action == Action.RESET:
        session.reset()
    elif action == Action.SEND:
        send_file(session, argument, Finalize.NOTIFY)
    elif action in (Action.UPLOAD, Action.UPLOAD_RESET):
        do_upload(session, argument)
        if action == Action.UPLOAD_RESET:
            session.reset()
    elif action == Action.EXPLOIT:
        exploit(session, argument)
    elif action == Action.COMMAND:
        send_command(session, argument)
    elif action == Action.BATCH:
        run_batch(Dispatcher(session), argument)
    elif action == Action.RAW_21:
        raw_control_transfer(session, RawEndpoint.CLASS_OUT, argument)
    elif action == Action.RAW_40:
        raw_control_transfer(session, RawEndpoint.VENDOR_OUT, argument)
    elif action == Action.RAW_A1:
        raw_control_transfer(session, RawEndpoint.CLASS_IN, argument)
    else:
        raise ValueError(f"Unsupported action: {action}")


@except_and_safe_exit(logger)
def main(argv: list[str] = None) -> int:
    """Cli entry point"""
    parser = argparse.ArgumentParser(
        prog="pyirecv",
        description="Utility for DFU 2.0, WTF and Recovery Mode",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_cli_options(parser)
    args = parser.parse_args(argv)
    set_verbose(args.verbose)

    _logger.debug(f"pyirecv v{__version__}")

    with connect() as session:
        install_signal_handlers(session)
        run_action(session, args.action, args.argument)
    return 0


if __name__ == '__main__':
    sys.exit(main())
