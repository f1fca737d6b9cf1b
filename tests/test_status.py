import unittest
from unittest.mock import patch

from usb.core import USBError

from fakes import FakeBootloader, make_session
from pyirecv.exceptions import StatusReadFailure, StatusValueMismatch
from pyirecv.status import *


class TestDeviceStatus(unittest.TestCase):

    def test_from_bytes(self):
        status = DeviceStatus.from_bytes(b"\x00\x00\x00\x00\x05\x00")
        self.assertEqual(status.code, StatusCode.PACKET_ACCEPTED)
        self.assertEqual(int(status), 5)
        self.assertEqual(bytes(status), b"\x00\x00\x00\x00\x05\x00")

    def test_short(self):
        for length in range(STATUS_LENGTH):
            with self.subTest(length=length):
                with self.assertRaises(StatusReadFailure):
                    DeviceStatus.from_bytes(bytes(length))

    def test_to_string(self):
        self.assertEqual(StatusCode.EXECUTION_DONE.to_string(), "executed")
        self.assertEqual(StatusCode.UNKNOWN.to_string(), "unknown")

    def test_execution_sequence(self):
        self.assertEqual([int(c) for c in EXECUTION_SEQUENCE], [6, 7, 8])


class TestReadStatus(unittest.TestCase):

    def test_request(self):
        fake = FakeBootloader(statuses=[7])
        session = make_session(fake)
        self.assertEqual(read_status(session).code, 7)
        self.assertEqual(fake.calls, [(0xA1, 3, 0, 6)])

    def test_usb_error(self):
        session = make_session(FakeBootloader())
        session.dev.ctrl_transfer.side_effect = USBError("timeout", errno=110)
        with self.assertRaises(StatusReadFailure):
            read_status(session)

    def test_check_status(self):
        session = make_session(FakeBootloader(statuses=[5, 6]))
        self.assertEqual(check_status(session).code, 5)
        with self.assertRaises(StatusValueMismatch) as ctx:
            check_status(session, StatusCode.PACKET_ACCEPTED)
        self.assertEqual(ctx.exception.expected, 5)
        self.assertEqual(ctx.exception.actual, 6)


@patch("pyirecv.status.milli_sleep")
class TestWaitStatus(unittest.TestCase):

    def test_ready_at_once(self, sleep):
        fake = FakeBootloader()
        wait_status(make_session(fake))
        self.assertEqual(fake.status_reads, 1)
        sleep.assert_not_called()

    def test_last_attempt(self, sleep):
        fake = FakeBootloader(statuses=[0] * (STATUS_RETRY_ATTEMPTS - 1))
        status = wait_status(make_session(fake))
        self.assertEqual(status.code, 5)
        self.assertEqual(fake.status_reads, STATUS_RETRY_ATTEMPTS)
        self.assertEqual(sleep.call_count, STATUS_RETRY_ATTEMPTS - 1)
        sleep.assert_called_with(STATUS_RETRY_INTERVAL)

    def test_budget_exhausted(self, sleep):
        fake = FakeBootloader(statuses=[0] * STATUS_RETRY_ATTEMPTS)
        with self.assertRaises(StatusValueMismatch):
            wait_status(make_session(fake))
        self.assertEqual(fake.status_reads, STATUS_RETRY_ATTEMPTS)
        self.assertEqual(sleep.call_count, STATUS_RETRY_ATTEMPTS - 1)

    def test_failed_reads_count_as_busy(self, sleep):
        fake = FakeBootloader(statuses=[0, 0, 8], status_length=6)
        session = make_session(fake)
        replies = iter([USBError("busy", errno=16), None, None, None])

        def flaky(**kwargs):
            error = next(replies)
            if error is not None:
                raise error
            return fake.ctrl_transfer(**kwargs)

        session.dev.ctrl_transfer.side_effect = flaky
        status = wait_status(session, StatusCode.EXECUTION_DONE, attempts=4, interval=10)
        self.assertEqual(status.code, 8)
        self.assertEqual(fake.status_reads, 3)
        self.assertEqual(sleep.call_count, 3)

    def test_all_reads_fail(self, sleep):
        session = make_session(FakeBootloader())
        session.dev.ctrl_transfer.side_effect = USBError("pipe", errno=32)
        with self.assertRaises(StatusValueMismatch) as ctx:
            wait_status(session, attempts=3)
        self.assertIsNone(ctx.exception.actual)
        self.assertEqual(sleep.call_count, 2)


if __name__ == '__main__':
    unittest.main()
