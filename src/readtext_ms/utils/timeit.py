"""
Timing Utilities.

Provider calls and whole requests are timed with perf_counter() and the
result is logged as the `seconds` field and observed by the request
duration histogram.

Example:
    with timeit("google") as t:
        audio = provider.synthesize(text, "pt-BR")
    info(log, "synth_ok", seconds=t.seconds)
"""
from __future__ import annotations

from dataclasses import dataclass
from time import perf_counter
from typing import Optional


@dataclass
class Timing:
    """A finished measurement: what was timed and for how long."""
    name: str
    seconds: float


class timeit:
    """
    Context manager for timing code blocks.

    `seconds` reads the running time inside the block and the final
    time after it; `timing` is set on exit, also when the block raises.
    """

    def __init__(self, name: str):
        self.name = name
        self._t0: Optional[float] = None
        self.timing: Timing | None = None

    def __enter__(self) -> "timeit":
        self._t0 = perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._t0 is not None
        self.timing = Timing(name=self.name, seconds=perf_counter() - self._t0)

    @property
    def seconds(self) -> float:
        if self.timing is not None:
            return self.timing.seconds
        if self._t0 is None:
            return 0.0
        return perf_counter() - self._t0
