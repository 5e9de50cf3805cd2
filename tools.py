import datetime
from collections import Counter
from typing import Hashable, Iterable, List, Optional, Tuple


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    SECONDS_PER_DAY: int = 86400

    @staticmethod
    def volume(sets: Iterable[Tuple[int, Optional[float]]]) -> float:
        """Compute training volume as the sum of reps times weight.

        Sets without a weight contribute nothing.
        """
        vol = 0.0
        for reps, weight in sets:
            if weight is None:
                continue
            vol += reps * weight
        return vol

    @staticmethod
    def mean(values: Iterable[float]) -> float:
        """Return the arithmetic mean of ``values`` or 0.0 when empty."""
        items = list(values)
        if not items:
            return 0.0
        return sum(items) / len(items)

    @classmethod
    def average_gap_days(cls, timestamps: Iterable[datetime.datetime]) -> float:
        """Return the mean gap in days between chronologically sorted ``timestamps``."""
        ordered = sorted(timestamps)
        if len(ordered) < 2:
            return 0.0
        gaps = [
            (b - a).total_seconds() / cls.SECONDS_PER_DAY
            for a, b in zip(ordered[:-1], ordered[1:])
        ]
        return sum(gaps) / len(gaps)

    @staticmethod
    def rank_by_count(items: Iterable[Hashable]) -> List[Tuple[Hashable, int]]:
        """Return ``(item, count)`` pairs, most frequent first.

        Ties keep the order in which items were first seen.
        """
        counts = Counter(items)
        return sorted(counts.items(), key=lambda kv: -kv[1])
