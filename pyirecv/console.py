"""
Recovery console and batch scripts
(C) 2023 Yaroshenko Dmytro (https://github.com/o-murphy)

Lines starting with '/' are pyirecv commands, everything else goes
to the bootloader as is. In batch files lines starting with '//'
are comments.

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
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Callable, TextIO

from pyirecv.command import enable_autoboot, get_env, send_command
from pyirecv.device import DeviceSession
from pyirecv.exceptions import Errx, NoInputError, _IOError
from pyirecv.exploit import exploit
from pyirecv.logger import logger
from pyirecv.transfer import Finalize, do_upload, send_file

try:
    import readline
except ImportError:  # not shipped on windows
    readline = None

_logger = logger.getChild(__name__.rsplit('.', maxsplit=1)[-1])

PROMPT = "iRecovery> "
HISTORY_FILE = os.path.expanduser('~/.pyirecv_history')

HELP = """Commands:
\t/exit\t\t\texit from recovery console.
\t/send <file>\t\tsend file to device.
\t/upload <file>\t\tupload file to device.
\t/exploit [payload]\tsend usb exploit packet.
\t/batch <file>\t\texecute commands from a batch file.
\t/auto-boot\t\tenable auto-boot (exit recovery loop).
"""


class Command(Enum):
    """pyirecv console commands"""
    HELP = 'help'
    EXIT = 'exit'
    SEND = 'send'
    UPLOAD = 'upload'
    EXPLOIT = 'exploit'
    BATCH = 'batch'
    AUTOBOOT = 'auto-boot'

    UNKNOWN = None


@dataclass(frozen=True)
class ParsedCommand:
    """Command with its optional argument"""
    command: Command
    argument: str = None
    line: str = ''


def parse_command(line: str) -> ParsedCommand:
    """
    Parses a command line, leading '/' already stripped
    :param line: e.g. "send iBSS.img3"
    :return: ParsedCommand
    """
    words = line.split()
    if not words:
        return ParsedCommand(Command.UNKNOWN, None, line)
    try:
        command = Command(words[0])
    except ValueError:
        command = Command.UNKNOWN
    argument = words[1] if len(words) > 1 else None
    return ParsedCommand(command, argument, line)


class LineKind(Enum):
    """Batch line classification"""
    COMMENT = 0
    COMMAND = 1
    DEVICE = 2


def parse_batch_line(line: str) -> tuple[LineKind, str]:
    """
    :param line: raw line as read from the script
    :return: kind and text to run
    """
    if line.startswith('//'):
        return LineKind.COMMENT, line
    if line.startswith('/'):
        return LineKind.COMMAND, line[1:].rstrip('\r\n')
    return LineKind.DEVICE, line


class Dispatcher:
    """Runs parsed commands against a session"""

    def __init__(self, session: DeviceSession, output: TextIO = None):
        self.session = session
        self.output = output or sys.stdout
        self._handlers: dict[Command, Callable[[ParsedCommand], bool]] = {
            Command.HELP: self._help,
            Command.EXIT: self._exit,
            Command.SEND: self._send,
            Command.UPLOAD: self._upload,
            Command.EXPLOIT: self._exploit,
            Command.BATCH: self._batch,
            Command.AUTOBOOT: self._autoboot,
            Command.UNKNOWN: self._unknown,
        }

    @property
    def commands(self) -> frozenset:
        """Commands with a handler"""
        return frozenset(self._handlers)

    def dispatch(self, parsed: ParsedCommand) -> bool:
        """
        Runs a command, errors are logged
        :return: False when the caller should stop
        """
        try:
            return self._handlers[parsed.command](parsed)
        except Errx as e:
            _logger.error(e)
            return True

    def send_line(self, line: str) -> bool:
        """Sends a line to the bootloader, errors are logged"""
        try:
            send_command(self.session, line)
        except Errx as e:
            _logger.error(e)
            return False
        return True

    def _help(self, _parsed: ParsedCommand) -> bool:
        self.output.write(HELP)
        return True

    def _exit(self, _parsed: ParsedCommand) -> bool:
        return False

    def _send(self, parsed: ParsedCommand) -> bool:
        if parsed.argument is not None:
            send_file(self.session, parsed.argument, Finalize.NONE)
        return True

    def _upload(self, parsed: ParsedCommand) -> bool:
        if parsed.argument is not None:
            do_upload(self.session, parsed.argument)
        return True

    def _exploit(self, parsed: ParsedCommand) -> bool:
        exploit(self.session, parsed.argument)
        return True

    def _batch(self, parsed: ParsedCommand) -> bool:
        if parsed.argument is not None:
            return run_batch(self, parsed.argument)
        return True

    def _autoboot(self, _parsed: ParsedCommand) -> bool:
        enable_autoboot(self.session)
        return True

    def _unknown(self, parsed: ParsedCommand) -> bool:
        _logger.warning(f"Unknown command: /{parsed.line.strip()}")
        return True


def run_batch(dispatcher: Dispatcher, path: str) -> bool:
    """
    Executes a batch file line by line
    :param dispatcher: Dispatcher
    :param path: script file
    :return: False if the script ran /exit
    """
    try:
        script = open(path, 'r', encoding='utf-8', newline='')
    except IOError as e:
        if e.errno == errno.ENOENT:
            raise NoInputError(f"Unable to find batch file. ({path})") from e
        raise _IOError(f"Error opening batch file {path}: {e}") from e

    with script:
        for line in script:
            kind, text = parse_batch_line(line)
            if kind is LineKind.COMMENT:
                continue
            if kind is LineKind.COMMAND:
                _logger.info(f"Running command: {text}")
                if not dispatcher.dispatch(parse_command(text)):
                    return False
            else:
                dispatcher.send_line(text)
    return True


class RecoveryConsole:
    """Interactive shell attached to the bootloader console"""

    def __init__(self,
                 session: DeviceSession,
                 logfile: str = None,
                 input_func: Callable[[str], str] = input,
                 output: TextIO = None,
                 history_file: str = HISTORY_FILE):
        self.session = session
        self.logfile = logfile
        self.output = output or sys.stdout
        self.history_file = history_file
        self._input = input_func
        self._log: [TextIO, None] = None
        self.dispatcher = Dispatcher(session, self.output)

    def _write(self, text: str) -> None:
        self.output.write(text)
        self.output.flush()
        if self._log:
            self._log.write(text)

    def _load_history(self) -> None:
        if readline is not None and self.history_file and os.path.exists(self.history_file):
            readline.read_history_file(self.history_file)

    def _save_history(self) -> None:
        if readline is not None and self.history_file:
            try:
                readline.write_history_file(self.history_file)
            except OSError as e:
                _logger.debug(f"History not saved: {e}")

    def drain(self) -> None:
        """Prints what the device wrote to the console"""
        data = self.session.read_console()
        if data:
            self._write(data.decode('utf-8', errors='replace'))

    def handle_line(self, line: str) -> bool:
        """
        One line of user input
        :return: False when the console should close
        """
        if self._log:
            self._log.write(f">{line}\n")

        if line.startswith('/'):
            return self.dispatcher.dispatch(parse_command(line[1:]))

        if not self.dispatcher.send_line(line):
            return True

        words = line.split()
        action = words[0] if words else ''
        if action == 'getenv':
            try:
                self._write(f"Env: {get_env(self.session)}\r\n")
            except Errx as e:
                _logger.error(e)
        if action == 'reboot':
            return False
        return True

    def run(self) -> None:
        """Console loop, returns on /exit, reboot or end of input"""
        self.session.claim_console_interface()
        try:
            if self.logfile:
                try:
                    self._log = open(self.logfile, 'w', encoding='utf-8')
                except IOError as e:
                    raise _IOError(f"Unable to open log file: {e}") from e
            _logger.info("Attached to Recovery Console.")
            if self.logfile:
                _logger.info(f"Output being logged to: {self.logfile}.")
            self._load_history()

            while True:
                self.drain()
                try:
                    line = self._input(PROMPT)
                except EOFError:
                    break
                if not self.handle_line(line):
                    break
        finally:
            self._save_history()
            if self._log:
                self._log.close()
                self._log = None
            self.session.release_console_interface()


__all__ = (
    'Command',
    'ParsedCommand',
    'LineKind',
    'Dispatcher',
    'RecoveryConsole',
    'parse_command',
    'parse_batch_line',
    'run_batch',
)
