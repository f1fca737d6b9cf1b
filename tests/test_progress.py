import unittest
from unittest.mock import MagicMock

from pyirecv.progress import *

unittest.TestLoader.sortTestMethodsUsing = None


class TestProgress(unittest.TestCase):

    def _loop(self, backend=None, total=None):
        i = 10

        with Progress(backend) as prog:
            name = (backend.__name__
                    if backend
                    else f"Any")

            prog.start_task(description=f"{name}",
                            total=total)
            while i >= 1:
                prog.update(advance=0x800)
                i -= 1
            prog.update(description=f"{name} OK")

    @unittest.skipIf(not TQDM_PROGRESS,
                     "package not installed ImportError/UnboundLocalError/AttributeError")
    def test_tqdm(self):
        self._loop(TqdmBackend, 0x5000)

        with self.subTest("indeterminate"):
            self._loop(TqdmBackend, None)

    def test_rich(self):
        self._loop(RichBackend, 0x5000)

        with self.subTest("indeterminate"):
            self._loop(RichBackend, None)

    def test_no_progress(self):
        self._loop(NoProgressBarBackend)

    def test_default_backend(self):
        default = Progress.get_default_backend()
        try:
            Progress.set_default_backend(NoProgressBarBackend)
            self.assertIsInstance(Progress()._backend, NoProgressBarBackend)
        finally:
            Progress.set_default_backend(default)

    def test_invalid_backend(self):
        with self.assertRaises(TypeError):
            Progress.set_default_backend(object)

    def test_exception(self):
        backend = MagicMock()
        with self.assertRaises(KeyError):
            with Progress(lambda: backend) as prog:
                prog.start_task(description="OnError", total=10)
                raise KeyError("transfer failed")
        backend.fail.assert_called_once()
        backend.stop.assert_called_once()

    def test_not_started(self):
        backend = MagicMock()
        with Progress(lambda: backend):
            pass
        backend.fail.assert_not_called()
        backend.stop.assert_not_called()


if __name__ == '__main__':
    unittest.main()
