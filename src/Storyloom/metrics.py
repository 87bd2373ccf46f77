"""In-process counters and millisecond histograms for import runs.

Nothing is exported anywhere; ``get_counters`` gives a flat snapshot that the
CLI or tests can inspect after a run. Histograms are flattened into that
snapshot as ``histo.<name>.<bucket>`` entries plus ``.sum`` and ``.count``.
"""

from __future__ import annotations

import contextlib
import math
import time
from collections import defaultdict
from collections.abc import Iterator

DEFAULT_MS_BUCKETS: tuple[int, ...] = (10, 50, 100, 250, 500, 1000, 2000, 5000, 10000)

_counters: dict[str, int] = defaultdict(int)
_histograms: dict[str, dict[str, int]] = defaultdict(dict)
_hist_sums: dict[str, int] = defaultdict(int)
_hist_counts: dict[str, int] = defaultdict(int)


def inc_counter(name: str, value: int = 1) -> None:
    _counters[name] += int(value)


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def reset_counters() -> None:
    for store in (_counters, _histograms, _hist_sums, _hist_counts):
        store.clear()


def _bucket_label(value: int, buckets: tuple[int, ...]) -> str:
    for upper in buckets:
        if value <= upper:
            return f"le_{upper}"
    return f"gt_{buckets[-1]}"


def observe_histogram(name: str, value: int, *, buckets: tuple[int, ...] | None = None) -> None:
    """Count ``value`` in the first bucket whose upper bound it does not exceed.

    Values above the last bound land in an overflow bucket ``gt_<last>``.
    """
    label = _bucket_label(value, buckets or DEFAULT_MS_BUCKETS)
    hist = _histograms[name]
    hist[label] = hist.get(label, 0) + 1
    _hist_sums[name] += int(value)
    _hist_counts[name] += 1


@contextlib.contextmanager
def timed(name: str) -> Iterator[None]:
    """Observe the wall time of the block, in whole milliseconds, under ``name``."""
    start = time.perf_counter()
    try:
        yield
    finally:
        observe_histogram(name, math.trunc((time.perf_counter() - start) * 1000))


def get_counters() -> dict[str, int]:
    snapshot = dict(_counters)
    for name, hist in _histograms.items():
        snapshot.update({f"histo.{name}.{label}": n for label, n in hist.items()})
        snapshot[f"histo.{name}.sum"] = _hist_sums[name]
        snapshot[f"histo.{name}.count"] = _hist_counts[name]
    return snapshot
