"""
Pausable, lazily read source of numbered text lines.
"""

import asyncio
import logging
from collections import deque
from concurrent.futures import Executor
from pathlib import Path
from typing import Deque, Optional, TextIO, Tuple, Union

from ..core.errors import LineSourceError


logger = logging.getLogger(__name__)


class LineSource:
    """
    Async iterator over ``(line_number, raw_text)`` pairs of a text file.

    Lines are read in chunks on an executor so the event loop never blocks on
    disk. Pausing only stops delivery: lines already buffered are kept and
    delivered in order after ``resume()``.

    Usage:
        source = LineSource(path)
        source.open()
        async for line_number, text in source:
            ...
    """

    def __init__(
        self,
        path: Union[str, Path],
        executor: Optional[Executor] = None,
        chunk_size: int = 64 * 1024,
        encoding: str = "utf-8",
    ):
        """
        Initialize the line source.

        Args:
            path: Path of the file to read
            executor: Executor used for blocking reads (loop default if None)
            chunk_size: Approximate number of bytes read per chunk
            encoding: File encoding
        """
        self.path = Path(path)
        self.executor = executor
        self.chunk_size = chunk_size
        self.encoding = encoding

        self._file: Optional[TextIO] = None
        self._buffer: Deque[str] = deque()
        self._line_number = 0
        self._exhausted = False
        self._eof = False
        self._stopped = False
        self._paused = False
        self._resume_event = asyncio.Event()
        self._resume_event.set()

    def open(self) -> "LineSource":
        """
        Open the file for reading.

        Raises:
            FileNotFoundError: If the file does not exist
            OSError: If the file cannot be read
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Input file not found: {self.path}")
        # Split on "\n" only; a trailing "\r" is stripped per line
        self._file = open(self.path, "r", encoding=self.encoding, newline="\n")
        logger.debug(f"Opened line source: {self.path}")
        return self

    @property
    def eof(self) -> bool:
        """True once the final line has been delivered."""
        return self._eof

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def lines_delivered(self) -> int:
        return self._line_number

    def pause(self) -> None:
        """Stop delivering lines until resume() is called."""
        if not self._paused:
            logger.debug(f"Pausing line source after line {self._line_number}")
        self._paused = True
        self._resume_event.clear()

    def resume(self) -> None:
        """Continue delivering lines where the source left off."""
        if self._paused:
            logger.debug(f"Resuming line source after line {self._line_number}")
        self._paused = False
        self._resume_event.set()

    def stop(self) -> None:
        """End iteration early without reaching EOF."""
        self._stopped = True
        self._resume_event.set()

    def close(self) -> None:
        """Close the underlying file."""
        if self._file is not None:
            self._file.close()
            self._file = None

    def __aiter__(self) -> "LineSource":
        return self

    async def __anext__(self) -> Tuple[int, str]:
        while True:
            if self._stopped:
                self.close()
                raise StopAsyncIteration
            if self._paused:
                await self._resume_event.wait()
                continue
            if self._buffer:
                self._line_number += 1
                return self._line_number, self._buffer.popleft()
            if self._exhausted:
                self._eof = True
                self.close()
                logger.debug(f"Reached end of file after {self._line_number} lines: {self.path}")
                raise StopAsyncIteration
            await self._fill()

    async def _fill(self) -> None:
        """Read the next chunk of lines into the buffer."""
        if self._file is None:
            raise LineSourceError(f"Line source is not open: {self.path}", self._line_number)

        loop = asyncio.get_running_loop()
        try:
            lines = await loop.run_in_executor(
                self.executor, self._file.readlines, self.chunk_size
            )
        except (OSError, UnicodeDecodeError, ValueError) as e:
            if self._stopped:
                return
            raise LineSourceError(
                f"Error while reading {self.path}: {e}", self._line_number
            ) from e

        if not lines:
            self._exhausted = True
            return

        for line in lines:
            if line.endswith("\n"):
                line = line[:-1]
            if line.endswith("\r"):
                line = line[:-1]
            self._buffer.append(line)
