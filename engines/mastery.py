"""Map percentage scores onto mastery tiers."""

from __future__ import annotations

from typing import Sequence, Tuple

from schemas import MasteryLevel

# (minimum percentage, tier), highest threshold first. Boundaries are inclusive.
MASTERY_THRESHOLDS: Sequence[Tuple[float, MasteryLevel]] = (
    (86.0, MasteryLevel.EXPERT),
    (71.0, MasteryLevel.PROFICIENT),
    (41.0, MasteryLevel.DEVELOPING),
)


def classify(percentage: float) -> MasteryLevel:
    """Return the mastery tier for ``percentage``."""

    for threshold, level in MASTERY_THRESHOLDS:
        if percentage >= threshold:
            return level
    return MasteryLevel.NOVICE
