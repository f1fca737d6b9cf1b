import errno
import io
import os
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import usb.core

from pyirecv.console import *
from pyirecv.device import DeviceMode, DeviceSession
from pyirecv.exceptions import CommandSendError, NoInputError, StatusValueMismatch, _IOError
from pyirecv.transfer import Finalize


class TestParsing(unittest.TestCase):

    def test_parse_command(self):
        parsed = parse_command("send iBSS.img3")
        self.assertEqual(parsed.command, Command.SEND)
        self.assertEqual(parsed.argument, "iBSS.img3")

        self.assertEqual(parse_command("auto-boot").command, Command.AUTOBOOT)
        self.assertIsNone(parse_command("exit").argument)
        self.assertEqual(parse_command("frobnicate x").command, Command.UNKNOWN)
        self.assertEqual(parse_command("").command, Command.UNKNOWN)

    def test_parse_batch_line(self):
        self.assertEqual(parse_batch_line("// comment\n"), (LineKind.COMMENT, "// comment\n"))
        self.assertEqual(parse_batch_line("/send iBEC\r\n"), (LineKind.COMMAND, "send iBEC"))
        self.assertEqual(parse_batch_line("go\n"), (LineKind.DEVICE, "go\n"))


class TestDispatcher(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.output = io.StringIO()
        self.dispatcher = Dispatcher(self.session, self.output)

    def test_every_command_handled(self):
        self.assertEqual(self.dispatcher.commands, frozenset(Command))

    def test_help(self):
        self.assertTrue(self.dispatcher.dispatch(parse_command("help")))
        self.assertIn("/exit", self.output.getvalue())

    def test_exit(self):
        self.assertFalse(self.dispatcher.dispatch(parse_command("exit")))

    @patch("pyirecv.console.send_file")
    def test_send(self, send_file):
        self.assertTrue(self.dispatcher.dispatch(parse_command("send iBEC")))
        send_file.assert_called_once_with(self.session, "iBEC", Finalize.NONE)

    @patch("pyirecv.console.send_file")
    def test_send_without_argument(self, send_file):
        self.assertTrue(self.dispatcher.dispatch(parse_command("send")))
        send_file.assert_not_called()

    @patch("pyirecv.console.do_upload", side_effect=StatusValueMismatch("bad", 6, 0))
    def test_errors_are_logged(self, upload):
        with self.assertLogs("pyirecv", level="ERROR"):
            self.assertTrue(self.dispatcher.dispatch(parse_command("upload payload")))
        upload.assert_called_once_with(self.session, "payload")

    @patch("pyirecv.console.exploit")
    def test_exploit(self, exploit):
        self.dispatcher.dispatch(parse_command("exploit"))
        exploit.assert_called_once_with(self.session, None)

    @patch("pyirecv.console.enable_autoboot")
    def test_autoboot(self, autoboot):
        self.dispatcher.dispatch(parse_command("auto-boot"))
        autoboot.assert_called_once_with(self.session)

    def test_unknown(self):
        with self.assertLogs("pyirecv", level="WARNING"):
            self.assertTrue(self.dispatcher.dispatch(parse_command("nope")))


@patch("pyirecv.console.send_command")
class TestBatch(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.session = MagicMock()
        self.dispatcher = Dispatcher(self.session, io.StringIO())

    def _script(self, text):
        path = os.path.join(self.tmp.name, "script.txt")
        with open(path, "w", encoding="utf-8", newline="") as fp:
            fp.write(text)
        return path

    def test_lines(self, send_command):
        path = self._script("// setup\r\nsetenv auto-boot false\r\n/send iBEC\r\ngo\n")
        with patch("pyirecv.console.send_file") as send_file:
            self.assertTrue(run_batch(self.dispatcher, path))
        send_file.assert_called_once_with(self.session, "iBEC", Finalize.NONE)
        self.assertEqual([c.args[1] for c in send_command.call_args_list],
                         ["setenv auto-boot false\r\n", "go\n"])

    def test_exit_stops(self, send_command):
        path = self._script("first\n/exit\nsecond\n")
        self.assertFalse(run_batch(self.dispatcher, path))
        self.assertEqual([c.args[1] for c in send_command.call_args_list], ["first\n"])

    def test_failed_line_continues(self, send_command):
        send_command.side_effect = [CommandSendError("failed"), 5]
        path = self._script("one\ntwo\n")
        with self.assertLogs("pyirecv", level="ERROR"):
            self.assertTrue(run_batch(self.dispatcher, path))
        self.assertEqual(send_command.call_count, 2)

    def test_nested(self, send_command):
        inner = os.path.join(self.tmp.name, "inner.txt")
        with open(inner, "w", encoding="utf-8") as fp:
            fp.write("inner\n")
        path = self._script(f"/batch {inner}\nouter\n")
        self.assertTrue(run_batch(self.dispatcher, path))
        self.assertEqual([c.args[1] for c in send_command.call_args_list],
                         ["inner\n", "outer\n"])

    def test_missing(self, send_command):
        with self.assertRaises(NoInputError):
            run_batch(self.dispatcher, os.path.join(self.tmp.name, "missing.txt"))
        send_command.assert_not_called()


@patch("pyirecv.console.send_command")
class TestRecoveryConsole(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.session.read_console.return_value = b""
        self.output = io.StringIO()

    def _console(self, lines, logfile=None):
        replies = iter(lines)

        def fake_input(_prompt):
            try:
                return next(replies)
            except StopIteration:
                raise EOFError from None

        return RecoveryConsole(self.session, logfile, input_func=fake_input,
                               output=self.output, history_file=None)

    def test_session(self, send_command):
        self.session.read_console.side_effect = [b"iBoot for n90ap\n", b"", b""]
        self._console(["printenv", "/exit", "never"]).run()

        self.session.claim_console_interface.assert_called_once()
        self.session.release_console_interface.assert_called_once()
        send_command.assert_called_once_with(self.session, "printenv")
        self.assertIn("iBoot for n90ap", self.output.getvalue())

    def test_reboot_closes(self, send_command):
        self._console(["reboot", "never"]).run()
        send_command.assert_called_once_with(self.session, "reboot")

    def test_end_of_input(self, send_command):
        self._console([]).run()
        send_command.assert_not_called()
        self.session.release_console_interface.assert_called_once()

    @patch("pyirecv.console.get_env", return_value="n90ap")
    def test_getenv(self, get_env, _send_command):
        self._console(["getenv product"]).run()
        get_env.assert_called_once_with(self.session)
        self.assertIn("Env: n90ap", self.output.getvalue())

    def test_logfile(self, _send_command):
        with tempfile.TemporaryDirectory() as tmp:
            logfile = os.path.join(tmp, "console.log")
            self.session.read_console.side_effect = [b"] ", b""]
            self._console(["bgcolor 0 0 255"], logfile).run()
            with open(logfile, encoding="utf-8") as fp:
                self.assertEqual(fp.read(), "] >bgcolor 0 0 255\n")

    def test_released_on_error(self, _send_command):
        self.session.read_console.side_effect = KeyError("boom")
        with self.assertRaises(KeyError):
            self._console(["x"]).run()
        self.session.release_console_interface.assert_called_once()


@patch("pyirecv.console.send_command")
class TestConsoleDeviceGone(unittest.TestCase):

    def setUp(self):
        self.dev = MagicMock()
        self.dev.read.side_effect = usb.core.USBTimeoutError("timeout", errno=errno.ETIMEDOUT)
        self.session = DeviceSession(self.dev, DeviceMode.RECOVERY)
        for name in ("claim_interface", "dispose_resources"):
            patcher = patch(f"usb.util.{name}")
            patcher.start()
            self.addCleanup(patcher.stop)

    def _run(self, lines):
        replies = iter(lines)
        console = RecoveryConsole(self.session, input_func=lambda _prompt: next(replies),
                                  output=io.StringIO(), history_file=None)
        console.run()

    def test_reboot(self, send_command):
        gone = usb.core.USBError("No such device", errno=errno.ENODEV)
        with patch("usb.util.release_interface", side_effect=gone):
            self._run(["reboot"])
            self.assertFalse(self.session.console_claimed)
            self.session.close()
        send_command.assert_called_once_with(self.session, "reboot")
        self.assertFalse(self.session.is_connected)

    def test_console_read_failure(self, send_command):
        self.dev.read.side_effect = usb.core.USBError("Overflow", errno=errno.EOVERFLOW)
        with patch("usb.util.release_interface") as release:
            with self.assertRaises(_IOError):
                self._run(["never"])
        release.assert_called_once_with(self.dev, 1)
        send_command.assert_not_called()


if __name__ == '__main__':
    unittest.main()
