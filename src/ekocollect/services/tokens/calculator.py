"""EkoToken scoring formula and milestone table.

Everything here is pure and deterministic; no I/O.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

from ...models.domain import PlasticCategory

BASE_TOKENS_PER_KG = 1.0

CATEGORY_MULTIPLIERS: dict[PlasticCategory, float] = {
    PlasticCategory.PET: 1.2,
    PlasticCategory.HDPE: 1.1,
    PlasticCategory.LDPE: 0.9,
    PlasticCategory.PP: 1.0,
    PlasticCategory.PS: 0.9,
    PlasticCategory.OTHER: 0.8,
}

# (threshold, multiplier), checked highest first
CONFIDENCE_TIERS: tuple[tuple[float, float, str], ...] = (
    (0.95, 1.2, "High"),
    (0.90, 1.1, "Good"),
)

AFTER_PHOTO_BONUS = 5
ACCURACY_BONUS = 10
ACCURACY_TOLERANCE = 0.05
MANUAL_REVIEW_RATE = 0.05


@dataclass(frozen=True, slots=True)
class Milestone:
    key: str
    threshold: int
    tokens: int
    description: str


# Ascending by threshold.
MILESTONES: tuple[Milestone, ...] = (
    Milestone("first_pickup", 1, 50, "First Pickup - Welcome Bonus!"),
    Milestone("ten_pickups", 10, 100, "10 Verified Pickups - Great Progress!"),
    Milestone("fifty_pickups", 50, 500, "50 Verified Pickups - Amazing Dedication!"),
    Milestone("hundred_pickups", 100, 1000, "100 Verified Pickups - Elite Collector!"),
)


@dataclass(frozen=True, slots=True)
class AchievedMilestone:
    milestone: str
    tokens: int
    description: str


@dataclass(frozen=True, slots=True)
class MilestoneProgress:
    milestone: str
    tokens: int
    description: str
    progress: float
    current: int
    target: int


@dataclass(slots=True)
class TokenCalculationResult:
    base_tokens: int
    category_bonus: int
    confidence_bonus: int
    after_photo_bonus: int
    accuracy_bonus: int
    manual_review_bonus: int
    total_tokens: int
    breakdown: list[str] = field(default_factory=list)


def round_half_up(value: float) -> int:
    """Round .5 upwards like the web client does, not to even."""
    return int(math.floor(value + 0.5))


def category_multiplier(category: PlasticCategory | str) -> float:
    try:
        return CATEGORY_MULTIPLIERS[PlasticCategory(category)]
    except ValueError:
        return CATEGORY_MULTIPLIERS[PlasticCategory.OTHER]


def calculate_tokens_for_pickup(
    category: PlasticCategory | str,
    weight: float,
    ai_confidence: Optional[float] = 1.0,
    has_after_photo: bool = False,
    actual_weight: Optional[float] = None,
    was_manually_reviewed: bool = False,
) -> TokenCalculationResult:
    """Score a verified pickup.

    The confidence multiplier replaces the running total with
    ``base_tokens * multiplier`` rather than compounding on it, and the
    per-bonus fields are rounded independently, so they need not add up to
    ``total_tokens``. Downstream consumers rely on these exact numbers.
    """
    if ai_confidence is None:
        ai_confidence = 1.0

    breakdown: list[str] = []

    multiplier = category_multiplier(category)
    base_tokens = weight * BASE_TOKENS_PER_KG * multiplier
    total = base_tokens
    breakdown.append(
        f"{weight:.1f}kg × {BASE_TOKENS_PER_KG:g} × {multiplier:.1f} = {base_tokens:.1f} base tokens"
    )

    # Informational only; already part of base_tokens.
    category_bonus = base_tokens - weight * BASE_TOKENS_PER_KG

    confidence_multiplier = 1.0
    confidence_bonus = 0.0
    for threshold, tier_multiplier, label in CONFIDENCE_TIERS:
        if ai_confidence >= threshold:
            confidence_multiplier = tier_multiplier
            confidence_bonus = base_tokens * (tier_multiplier - 1)
            breakdown.append(
                f"{label} AI confidence ({ai_confidence * 100:.0f}%): +{confidence_bonus:.1f} tokens"
            )
            break
    total = base_tokens * confidence_multiplier

    after_photo_bonus = 0
    if has_after_photo:
        after_photo_bonus = AFTER_PHOTO_BONUS
        total += after_photo_bonus
        breakdown.append(f"After photo provided: +{after_photo_bonus} tokens")

    accuracy_bonus = 0
    if actual_weight and weight > 0:
        if abs(actual_weight - weight) / weight <= ACCURACY_TOLERANCE:
            accuracy_bonus = ACCURACY_BONUS
            total += accuracy_bonus
            breakdown.append(f"High accuracy estimate: +{accuracy_bonus} tokens")

    manual_review_bonus = 0.0
    if was_manually_reviewed:
        manual_review_bonus = total * MANUAL_REVIEW_RATE
        total += manual_review_bonus
        breakdown.append(f"Manual review verified: +{manual_review_bonus:.1f} tokens")

    return TokenCalculationResult(
        base_tokens=round_half_up(base_tokens),
        category_bonus=round_half_up(category_bonus),
        confidence_bonus=round_half_up(confidence_bonus),
        after_photo_bonus=after_photo_bonus,
        accuracy_bonus=accuracy_bonus,
        manual_review_bonus=round_half_up(manual_review_bonus),
        total_tokens=round_half_up(total),
        breakdown=breakdown,
    )


def check_milestones(verified_pickup_count: int) -> list[AchievedMilestone]:
    """Milestones whose threshold equals the count exactly.

    Callers must check once per unit increment of the verified count, or a
    jump past a threshold will skip that milestone.
    """
    return [
        AchievedMilestone(milestone=m.key, tokens=m.tokens, description=m.description)
        for m in MILESTONES
        if verified_pickup_count == m.threshold
    ]


def get_next_milestone(verified_pickup_count: int) -> MilestoneProgress | None:
    for milestone in sorted(MILESTONES, key=lambda m: m.threshold):
        if verified_pickup_count < milestone.threshold:
            return MilestoneProgress(
                milestone=milestone.key,
                tokens=milestone.tokens,
                description=milestone.description,
                progress=verified_pickup_count / milestone.threshold * 100,
                current=verified_pickup_count,
                target=milestone.threshold,
            )
    return None
