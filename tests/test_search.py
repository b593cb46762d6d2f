from typing import Callable, List

import pytest

from concprobe.core.search import (
    ProbeOutcome,
    ProbeResult,
    SearchInterval,
    bisect,
    max_probes,
)


def threshold_probe(threshold: int, probed: List[int]) -> Callable[[int], ProbeOutcome]:
    """Probe that survives every level up to ``threshold``."""

    def probe(concurrency: int) -> ProbeOutcome:
        probed.append(concurrency)
        if concurrency > threshold:
            return ProbeOutcome.crashed(concurrency, RuntimeError("node died"))
        return ProbeOutcome.survived(concurrency)

    return probe


class TestSearchInterval:
    def test_rejects_empty_interval(self):
        with pytest.raises(ValueError):
            SearchInterval(50, 50)
        with pytest.raises(ValueError):
            SearchInterval(60, 50)

    def test_rejects_non_positive_bounds(self):
        with pytest.raises(ValueError):
            SearchInterval(0, 10)

    def test_midpoint_rounds_down(self):
        assert SearchInterval(32, 192).midpoint() == 112
        assert SearchInterval(99, 102).midpoint() == 100

    def test_narrow_on_crash_lowers_high(self):
        interval = SearchInterval(32, 192)
        interval.narrow(ProbeOutcome.crashed(112, RuntimeError()))
        assert (interval.low, interval.high) == (32, 112)

    def test_narrow_on_survival_raises_low(self):
        interval = SearchInterval(32, 192)
        interval.narrow(ProbeOutcome.survived(112))
        assert (interval.low, interval.high) == (112, 192)

    def test_narrow_rejects_level_outside_interval(self):
        interval = SearchInterval(32, 192)
        with pytest.raises(ValueError):
            interval.narrow(ProbeOutcome.survived(192))
        with pytest.raises(ValueError):
            interval.narrow(ProbeOutcome.survived(32))

    def test_done_when_width_is_one(self):
        assert SearchInterval(100, 101).done
        assert not SearchInterval(100, 102).done


class TestProbeOutcome:
    def test_constructors(self):
        error = RuntimeError("boom")
        crashed = ProbeOutcome.crashed(64, error, duration=3.0)
        assert crashed.result is ProbeResult.CRASHED
        assert crashed.is_crashed
        assert crashed.error is error

        survived = ProbeOutcome.survived(64)
        assert survived.result is ProbeResult.SURVIVED
        assert not survived.is_crashed
        assert survived.error is None


class TestBisect:
    def test_converges_on_threshold(self):
        probed: List[int] = []
        result = bisect(SearchInterval(32, 192), threshold_probe(100, probed))

        assert result == 100
        assert probed == [112, 72, 92, 102, 97, 99, 100, 101]

    def test_everything_crashes_returns_lower_bound(self):
        probed: List[int] = []
        result = bisect(SearchInterval(32, 192), threshold_probe(0, probed))

        assert result == 32
        assert len(probed) == 7
        assert all(level > 32 for level in probed)

    def test_nothing_crashes_returns_one_below_upper_bound(self):
        probed: List[int] = []
        result = bisect(SearchInterval(32, 192), threshold_probe(10_000, probed))

        assert result == 191
        assert 192 not in probed

    def test_width_one_interval_needs_no_probe(self):
        probed: List[int] = []
        assert bisect(SearchInterval(40, 41), threshold_probe(0, probed)) == 40
        assert probed == []

    def test_probes_stay_strictly_inside_interval(self):
        seen = []

        def on_step(outcome, interval):
            seen.append((outcome.concurrency, interval.low, interval.high))
            assert interval.low < interval.high

        probed: List[int] = []
        bisect(SearchInterval(32, 192), threshold_probe(57, probed), on_step=on_step)

        low, high = 32, 192
        for concurrency, new_low, new_high in seen:
            assert low < concurrency < high
            assert new_high - new_low < high - low
            low, high = new_low, new_high

    @pytest.mark.parametrize("low,high", [(32, 192), (1, 2), (1, 1000), (10, 17)])
    def test_probe_count_bounded(self, low, high):
        for threshold in (low, (low + high) // 2, high):
            probed: List[int] = []
            bisect(SearchInterval(low, high), threshold_probe(threshold, probed))
            assert len(probed) <= max_probes(low, high)


class TestMaxProbes:
    def test_values(self):
        assert max_probes(32, 192) == 8
        assert max_probes(100, 101) == 0
        assert max_probes(1, 3) == 1
        assert max_probes(0, 1024) == 10
