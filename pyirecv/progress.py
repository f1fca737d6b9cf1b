"""
Progress bar utilities
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

from abc import ABC, abstractmethod

from rich import progress as RICH_PROGRESS

try:
    from tqdm import tqdm as TQDM_PROGRESS
except ImportError:
    TQDM_PROGRESS = None


class AbstractProgressBackend(ABC):
    """Abstract class for progress bar backends"""

    @abstractmethod
    def start_task(self, *, description: str = None, total: int = None):
        """
        Start progress task
        :param description:
        :param total: bytes expected
        """

    @abstractmethod
    def update(self, *, description: str = None, advance: int = None):
        """
        Update progress task
        :param description:
        :param advance: bytes sent since last update
        """

    @abstractmethod
    def fail(self):
        """Runs on Progress.__exit__ if ctx raises exception"""

    @abstractmethod
    def stop(self):
        """Stop progressbar backend"""


class NoProgressBarBackend(AbstractProgressBackend):
    """progress bar backend that does nothing"""

    def start_task(self, *, description: str = None, total: int = None):
        pass

    def update(self, *, description: str = None, advance: int = None):
        pass

    def fail(self):
        pass

    def stop(self):
        pass


class TqdmBackend(AbstractProgressBackend):
    """tqdm based progress bar backend"""

    BAR_FORMAT = ("{desc} {bar:20} {percentage:3.0f}% "
                  "{remaining} {n_fmt}/{total_fmt} bytes {rate_fmt}")

    def __init__(self):
        self._progress = None

    def start_task(self, *, description: str = None, total: int = None):
        self._progress = TQDM_PROGRESS(
            total=total,
            unit=' bytes',
            desc=description,
            bar_format=TqdmBackend.BAR_FORMAT,
            ascii=' ━',
        )

    def update(self, *, description: str = None, advance: int = None):
        if description:
            self._progress.desc = description
        if advance:
            self._progress.update(advance)
        self._progress.refresh()

    def fail(self):
        pass

    def stop(self):
        if self._progress is not None:
            self._progress.close()
        self._progress = None


class RichBackend(AbstractProgressBackend):
    """Rich.progress based progress bar backend"""

    COLOR = "#F92672"
    DONE_COLOR = "#729C1F"

    def __init__(self):
        self._progress: [RICH_PROGRESS.Progress, None] = None
        self._task_id = None
        self._fail = False

    def start_task(self, *, description: str = None, total: int = None):
        self._progress = RICH_PROGRESS.Progress(
            RICH_PROGRESS.TextColumn(
                "[progress.description]{task.description}"),
            RICH_PROGRESS.BarColumn(20),
            RICH_PROGRESS.TaskProgressColumn(),
            RICH_PROGRESS.DownloadColumn(),
            RICH_PROGRESS.TransferSpeedColumn(),
        )
        self._progress.start()
        self._fail = False
        self._task_id = self._progress.add_task(
            f"[{self.COLOR}]{description or ''}", total=total
        )

    def _recolor(self, color: str, **kwargs):
        t = self._progress.tasks[self._task_id]
        desc = t.description.split(']')[-1]
        self._progress.update(self._task_id, description=f"[{color}]{desc}", **kwargs)

    def update(self, *, description: str = None, advance: int = None):
        kwargs = {}
        if description is not None:
            kwargs["description"] = f"[{self.COLOR}]{description}"
        if advance is not None:
            kwargs["advance"] = advance
        self._progress.update(self._task_id, **kwargs)

    def fail(self):
        self._fail = True
        self._recolor("red")

    def stop(self):
        if self._progress is None:
            return
        if not self._fail:
            t = self._progress.tasks[self._task_id]
            self._recolor(self.DONE_COLOR, total=t.completed)
        self._progress.stop()
        self._progress = None


class Progress:
    """
    High leveled progress bar class
    Use this as a context
    """

    __DEFAULT_BACKEND = RichBackend

    def __init__(self, backend=None):
        if backend is None:
            backend = Progress.__DEFAULT_BACKEND
        self._backend = backend()
        self._started = False

    @classmethod
    def set_default_backend(cls, backend: type[AbstractProgressBackend]):
        """
        Sets the default progressbar backend
        :param backend:
        :return:
        """
        if not issubclass(backend, AbstractProgressBackend):
            raise TypeError("Invalid backend")
        cls.__DEFAULT_BACKEND = backend

    @classmethod
    def get_default_backend(cls) -> type[AbstractProgressBackend]:
        """Currently used default backend"""
        return cls.__DEFAULT_BACKEND

    def start_task(self, *, description: str = None, total: int = None):
        """
        Start progress task
        :param description:
        :param total:
        """
        self._backend.start_task(description=description, total=total)
        self._started = True

    def update(self, *, description: str = None, advance: int = None):
        """
        Update progress task
        :param description:
        :param advance:
        """
        self._backend.update(description=description, advance=advance)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if self._started:
            if exc_type:
                self._backend.fail()
            self._backend.stop()
        return False


__all__ = (
    'Progress',
    'RichBackend',
    'TqdmBackend',
    'TQDM_PROGRESS',
    'AbstractProgressBackend',
    'NoProgressBarBackend',
)
