#!/usr/bin/env python3
"""Binary search over client concurrency.

Each probe is expensive (up to an hour), so the search bisects instead of
stepping and assumes sustainability is monotonic in concurrency.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class ProbeResult(Enum):
    """Probe result."""

    SURVIVED = "survived"
    CRASHED = "crashed"


@dataclass
class ProbeOutcome:
    """Result of exercising the cluster at one concurrency level.

    Attributes:
        concurrency: Concurrency level that was probed
        result: Whether every node survived
        error: Crash or workload error for crashed probes
        duration: Probe duration in seconds
    """

    concurrency: int
    result: ProbeResult
    error: Optional[Exception] = None
    duration: Optional[float] = None

    @classmethod
    def survived(cls, concurrency: int, duration: Optional[float] = None) -> "ProbeOutcome":
        return cls(concurrency, ProbeResult.SURVIVED, duration=duration)

    @classmethod
    def crashed(
        cls, concurrency: int, error: Exception, duration: Optional[float] = None
    ) -> "ProbeOutcome":
        return cls(concurrency, ProbeResult.CRASHED, error=error, duration=duration)

    @property
    def is_crashed(self) -> bool:
        return self.result is ProbeResult.CRASHED


@dataclass
class SearchInterval:
    """Open interval of untested concurrency levels.

    Every level <= ``low`` is taken as sustainable and every level >= ``high``
    as crashing. The initial ``high`` is an assumption that is never probed.

    Attributes:
        low: Largest known-good concurrency
        high: Smallest known (or assumed) bad concurrency
    """

    low: int
    high: int

    def __post_init__(self) -> None:
        if self.low < 1 or self.high < 1:
            raise ValueError(f"Concurrency bounds must be positive, got [{self.low}, {self.high}]")
        if self.low >= self.high:
            raise ValueError(f"Lower bound {self.low} must be below upper bound {self.high}")

    @property
    def width(self) -> int:
        return self.high - self.low

    @property
    def done(self) -> bool:
        return self.width <= 1

    def midpoint(self) -> int:
        return (self.low + self.high) // 2

    def narrow(self, outcome: ProbeOutcome) -> None:
        """Fold a probe outcome into the interval.

        Raises:
            ValueError: If the probed level lies outside the open interval
        """
        concurrency = outcome.concurrency
        if not self.low < concurrency < self.high:
            raise ValueError(
                f"Probed concurrency {concurrency} outside open interval ({self.low}, {self.high})"
            )
        if outcome.is_crashed:
            self.high = concurrency
        else:
            self.low = concurrency

    def __str__(self) -> str:
        return f"[{self.low}, {self.high})"


def max_probes(low: int, high: int) -> int:
    """Upper bound on probes needed to bisect ``[low, high)``: ceil(log2(high - low))."""
    return max(high - low - 1, 0).bit_length()


def bisect(
    interval: SearchInterval,
    probe: Callable[[int], ProbeOutcome],
    on_step: Optional[Callable[[ProbeOutcome, SearchInterval], None]] = None,
) -> int:
    """Narrow ``interval`` until its width is 1 and return the lower bound.

    Args:
        interval: Search interval, mutated in place
        probe: Called with the midpoint, returns the probe outcome
        on_step: Called after each narrowing with the outcome and new interval

    Returns:
        Largest concurrency the search accepted as sustainable
    """
    while not interval.done:
        concurrency = interval.midpoint()
        logger.info(f"Probing concurrency {concurrency} (interval {interval})")

        outcome = probe(concurrency)
        interval.narrow(outcome)

        if outcome.is_crashed:
            logger.info(f"✗ Concurrency {concurrency} crashed: {outcome.error}")
        else:
            logger.info(f"✓ Concurrency {concurrency} survived")

        if on_step is not None:
            on_step(outcome, interval)

    return interval.low
