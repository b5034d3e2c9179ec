"""Wall-clock timing of named code sections."""

from __future__ import annotations

import contextlib
import sys
import time
from collections.abc import Callable, Iterator
from typing import Optional, TextIO


class Profiler:
    """Measures named sections and reports their duration in milliseconds."""

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._stream = stream
        self._clock = clock
        self._starts: dict[str, float] = {}

    def begin(self, section_name: str) -> None:
        """Start timing a section."""
        self._starts[section_name] = self._clock()

    def end(self, section_name: str) -> float:
        """Report and return the milliseconds since ``begin`` for the section."""
        try:
            start = self._starts[section_name]
        except KeyError:
            raise KeyError(f"Section {section_name!r} was never started") from None
        elapsed = (self._clock() - start) * 1000.0
        stream = self._stream if self._stream is not None else sys.stdout
        print(f"{section_name} took {elapsed:g} ms", file=stream)
        return elapsed

    @contextlib.contextmanager
    def section(self, section_name: str) -> Iterator[None]:
        """Time the body of a ``with`` block."""
        self.begin(section_name)
        try:
            yield
        finally:
            self.end(section_name)