"""
Quota consumption buckets.

Turns a series of remaining-quota observations into consumption per time
bucket, so usage can be charted over the last hours or days.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from ..storage.models import BufferPoint, split_usage_key

# Bucket items below this consumption are noise from float rounding
MIN_ITEM_USAGE = 0.001


@dataclass(frozen=True)
class BucketItem:
    """Consumption of one account/model pair within a bucket."""
    group_id: str
    account_name: str
    model_name: str
    usage: float


@dataclass
class UsageBucket:
    """A time slice ``[start_time, end_time)`` and what was consumed in it."""
    start_time: int
    end_time: int
    items: List[BucketItem] = field(default_factory=list)

    @property
    def total(self) -> float:
        return sum(item.usage for item in self.items)


@dataclass(frozen=True)
class UsageChartData:
    """Complete chart result."""
    buckets: List[UsageBucket]
    max_usage: float
    display_minutes: int
    interval: int


def _consumed(previous: BufferPoint, current: BufferPoint, key: str) -> float:
    """Percentage points consumed for ``key`` between two observations.

    A change of the recorded reset timestamp means the quota was replenished
    in between, so consumption is measured from a full 100%.
    """
    before = previous.usage[key]
    after = current.usage[key]
    reset_before = previous.reset_at.get(key)
    reset_after = current.reset_at.get(key)

    if reset_before is not None and reset_after is not None and reset_before != reset_after:
        return max(100.0 - after, 0.0)
    return max(before - after, 0.0)


def calculate_usage_buckets(
    points: Sequence[BufferPoint],
    now: float,
    display_minutes: int = 24 * 60,
    bucket_minutes: int = 60,
    account_names: Optional[Mapping[str, str]] = None,
) -> UsageChartData:
    """Distribute quota consumption into fixed-width time buckets.

    The window ends at the bucket boundary after ``now`` so the bucket in
    progress is always the right-most one. Consumption between two adjacent
    observations is spread across buckets proportionally to time overlap.

    Args:
        points: Observations ordered by timestamp
        now: Current time in epoch seconds
        display_minutes: Width of the whole window
        bucket_minutes: Width of one bucket
        account_names: Known account names; names recorded in the points
            fill in for accounts that no longer exist

    Returns:
        Chart data with buckets ordered oldest to newest

    Raises:
        ValueError: If the window or bucket width is invalid
    """
    if bucket_minutes <= 0:
        raise ValueError("bucket_minutes must be > 0")
    if display_minutes < bucket_minutes:
        raise ValueError("display_minutes must be >= bucket_minutes")

    names: Dict[str, str] = dict(account_names or {})
    for point in points:
        for account_id, name in point.account_names.items():
            names.setdefault(account_id, name)

    bucket_seconds = bucket_minutes * 60
    aligned_end = (int(now) // bucket_seconds + 1) * bucket_seconds
    start_time = aligned_end - display_minutes * 60
    bucket_count = display_minutes // bucket_minutes

    buckets = [
        UsageBucket(
            start_time=start_time + i * bucket_seconds,
            end_time=start_time + (i + 1) * bucket_seconds,
        )
        for i in range(bucket_count)
    ]

    distribution: Dict[str, List[float]] = {}
    for previous, current in zip(points, points[1:]):
        t1, t2 = previous.timestamp, current.timestamp
        if t2 <= t1:
            continue
        duration = float(t2 - t1)

        for key in previous.usage:
            if key not in current.usage:
                continue
            consumed = _consumed(previous, current, key)
            if consumed <= 0:
                continue

            for index, bucket in enumerate(buckets):
                overlap = min(t2, bucket.end_time) - max(t1, bucket.start_time)
                if overlap > 0:
                    values = distribution.setdefault(key, [0.0] * bucket_count)
                    values[index] += consumed * overlap / duration

    for key in sorted(distribution):
        parts = split_usage_key(key)
        if parts is None:
            continue
        account_id, model_name = parts
        account_name = names.get(account_id, "Unknown")

        for index, usage in enumerate(distribution[key]):
            if usage > MIN_ITEM_USAGE:
                buckets[index].items.append(BucketItem(
                    group_id=key,
                    account_name=account_name,
                    model_name=model_name,
                    usage=usage,
                ))

    max_usage = max((bucket.total for bucket in buckets), default=0.0)
    return UsageChartData(
        buckets=buckets,
        max_usage=max(max_usage, 1.0),
        display_minutes=display_minutes,
        interval=bucket_minutes,
    )
