"""Small helpers shared across the bridge: callback lists and atomic writes."""

from __future__ import annotations

import asyncio
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

from loguru import logger  # type: ignore[import-untyped]


T = TypeVar('T')
Unsubscribe = Callable[[], None]

_background_tasks: set[asyncio.Task[Any]] = set()


def spawn(coro: Any) -> asyncio.Task[Any]:
    """Schedule a coroutine, keeping a reference until it finishes."""
    task = asyncio.create_task(coro)
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


class CallbackList(Generic[T]):
    """Ordered list of subscriber callbacks.

    Coroutine results are scheduled as tasks; callback errors are logged.
    """

    def __init__(self, name: str = 'callback') -> None:
        self._name = name
        self._callbacks: list[Callable[[T], Any]] = []

    def __len__(self) -> int:
        return len(self._callbacks)

    def add(self, callback: Callable[[T], Any]) -> Unsubscribe:
        """Register a callback.

        Returns:
            Function that removes the callback again.
        """
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, value: T) -> None:
        """Call every subscriber with ``value``."""
        for callback in list(self._callbacks):
            try:
                result = callback(value)
                if asyncio.iscoroutine(result):
                    spawn(result)
            except Exception as e:
                logger.error(f'Error in {self._name} callback: {e}')


def write_file_atomic(path: Path, content: str) -> None:
    """Write text to a file atomically (temp file in the same dir, then rename).

    Args:
        path: Destination path. Parent directories are created.
        content: Text to write.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    try:
        with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
            f.write(content)
        os.replace(temp_path, path)
    except BaseException:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
        raise
