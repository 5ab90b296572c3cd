from datetime import datetime, timedelta, timezone

import pytest

from src.ekocollect.models.domain import Pickup, PickupStatus, PickupVerification, PlasticCategory
from src.ekocollect.persistence.pickups import InMemoryPickupRepository
from src.ekocollect.persistence.profiles import InMemoryBalanceCache
from src.ekocollect.persistence.transactions import InMemoryTransactionStore
from src.ekocollect.services.tokens.ledger import TokenLedger


class StepClock:
    """Deterministic clock that advances by a fixed step on every read."""

    def __init__(self, start: datetime, step: timedelta = timedelta(minutes=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current + self.step
        return value


def make_pickup(
    pickup_id: str,
    collector_id: str = "collector-1",
    category: PlasticCategory = PlasticCategory.PET,
    weight: float = 10.0,
    status: PickupStatus = PickupStatus.VERIFIED,
    ai_confidence: float | None = 0.97,
    has_after_photo: bool = True,
) -> Pickup:
    return Pickup(
        pickup_id=pickup_id,
        collector_id=collector_id,
        category=category,
        estimated_weight=weight,
        status=status,
        verification=PickupVerification(ai_confidence=ai_confidence),
        has_after_photo=has_after_photo,
    )


@pytest.fixture
def clock() -> StepClock:
    return StepClock(datetime(2026, 10, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(clock: StepClock) -> TokenLedger:
    return TokenLedger(
        transactions=InMemoryTransactionStore(),
        pickups=InMemoryPickupRepository(),
        balances=InMemoryBalanceCache(),
        clock=clock,
    )


@pytest.fixture
def pickup_factory():
    return make_pickup
