"""Per-query search statistics and their percentile and mean summaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence, Union

MemberFn = Union[Callable[["QueryStats"], float], str]


@dataclass
class QueryStats:
    """Counters gathered while answering one query."""

    total_us: float = 0.0
    n_4k: float = 0.0
    n_8k: float = 0.0
    n_12k: float = 0.0
    n_ios: float = 0.0
    read_size: float = 0.0
    io_us: float = 0.0
    cpu_us: float = 0.0
    n_cmps_saved: float = 0.0
    n_cmps: float = 0.0
    n_cache_hits: float = 0.0
    n_hops: float = 0.0


def _getter(member_fn: MemberFn) -> Callable[[QueryStats], float]:
    if isinstance(member_fn, str):
        name = member_fn
        if name not in QueryStats.__dataclass_fields__:
            raise ValueError(f"unknown QueryStats field: {name!r}")

        def pick(item: QueryStats) -> float:
            return item.__dict__[name]

        return pick
    return member_fn


def get_percentile_stats(
    stats: Sequence[QueryStats], percentile: float, member_fn: MemberFn
) -> float:
    """Return the value at ``percentile`` (0 to 1) of the sorted measurements.

    ``member_fn`` is a callable or the name of a ``QueryStats`` field.
    """
    getter = _getter(member_fn)
    values = sorted(getter(item) for item in stats)
    index = int(percentile * len(values))
    if not 0 <= index < len(values):
        raise ValueError(
            f"percentile {percentile} is out of range for {len(values)} values"
        )
    return values[index]


def get_mean_stats(stats: Sequence[QueryStats], member_fn: MemberFn) -> float:
    """Return the mean of the measurements picked out by ``member_fn``."""
    getter = _getter(member_fn)
    values = [getter(item) for item in stats]
    if not values:
        raise ValueError("cannot take the mean of no statistics")
    return sum(values) / len(values)