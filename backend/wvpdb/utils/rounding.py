from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Python's round() uses banker's rounding (round(62.5) == 62); scores and
    day counts are expected to round 62.5 up to 63.
    """
    return int(math.floor(value + 0.5))


def clamp_percent(value: float) -> int:
    return max(0, min(100, round_half_up(value)))
