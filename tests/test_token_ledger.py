from datetime import datetime, timedelta, timezone

import pytest

from src.ekocollect.models.domain import (
    BonusMetadata,
    MilestoneMetadata,
    PickupMetadata,
    PlasticCategory,
    TransactionSource,
    TransactionType,
)
from src.ekocollect.persistence.pickups import InMemoryPickupRepository, PickupNotFoundError
from src.ekocollect.persistence.profiles import InMemoryBalanceCache
from src.ekocollect.persistence.transactions import (
    InMemoryTransactionStore,
    LedgerError,
    TransactionFilter,
)
from src.ekocollect.services.tokens.ledger import TokenLedger


class FailingMilestoneStore(InMemoryTransactionStore):
    def insert(self, transaction):
        if transaction.source is TransactionSource.MILESTONE:
            raise LedgerError("milestone insert failed")
        return super().insert(transaction)


class FailingStore(InMemoryTransactionStore):
    def insert(self, transaction):
        raise LedgerError("database unavailable")


class FailingCache(InMemoryBalanceCache):
    def set_balance(self, collector_id, balance):
        raise LedgerError("profile update failed")


def _all(ledger: TokenLedger, collector_id: str = "collector-1"):
    return ledger.transactions.find(TransactionFilter(collector_id=collector_id), newest_first=False)


def test_award_tokens_appends_transaction_with_running_balance(ledger: TokenLedger) -> None:
    first = ledger.award_tokens("collector-1", 20, TransactionSource.BONUS, "Welcome", BonusMetadata(reason="signup"))
    second = ledger.award_tokens("collector-1", 15, "referral", "Referral", BonusMetadata(reason="friend"))

    assert first.success and second.success
    assert second.new_balance == 35
    assert ledger.get_token_balance("collector-1") == 35
    assert ledger.balances.get_balance("collector-1") == 35

    rows = _all(ledger)
    assert [row.balance_after for row in rows] == [20, 35]
    assert rows[0].type is TransactionType.BONUS
    assert rows[1].type is TransactionType.EARNED
    assert rows[0].transaction_id == first.transaction_id


def test_award_rejected_when_balance_would_go_negative(ledger: TokenLedger) -> None:
    result = ledger.award_tokens("collector-1", -10, TransactionSource.REDEMPTION, "Airtime")

    assert result.success is False
    assert result.transaction_id is None
    assert _all(ledger) == []

    ledger.award_tokens("collector-1", 20, TransactionSource.BONUS, "Bonus")
    redeemed = ledger.award_tokens("collector-1", -20, TransactionSource.REDEMPTION, "Airtime")

    assert redeemed.success
    assert redeemed.new_balance == 0


def test_award_validates_amount_and_metadata(ledger: TokenLedger) -> None:
    with pytest.raises(ValueError):
        ledger.award_tokens("collector-1", 2.5, TransactionSource.BONUS, "Half")

    with pytest.raises(ValueError):
        ledger.award_tokens(
            "collector-1", 5, TransactionSource.MILESTONE, "Wrong metadata", BonusMetadata(reason="oops")
        )

    with pytest.raises(ValueError):
        ledger.award_tokens("collector-1", 5, "lottery", "Unknown source")

    assert _all(ledger) == []


def test_first_verified_pickup_awards_tokens_and_welcome_milestone(ledger: TokenLedger, pickup_factory) -> None:
    ledger.pickups.save(pickup_factory("pickup-1"))

    result = ledger.process_pickup_tokens("pickup-1", "collector-1")

    assert result.tokens_awarded == 19
    assert result.already_processed is False
    assert [m.milestone for m in result.milestones_awarded] == ["first_pickup"]
    assert ledger.get_token_balance("collector-1") == 69

    pickup_row, milestone_row = _all(ledger)
    assert pickup_row.source is TransactionSource.PICKUP_VERIFICATION
    assert pickup_row.pickup_id == "pickup-1"
    assert pickup_row.balance_after == 19
    assert pickup_row.description == "Verified pickup: PET (10.0kg)"
    assert isinstance(pickup_row.metadata, PickupMetadata)
    assert len(pickup_row.metadata.breakdown) == 3
    assert milestone_row.type is TransactionType.BONUS
    assert milestone_row.balance_after == 69
    assert milestone_row.metadata == MilestoneMetadata(
        milestone="first_pickup", description="First Pickup - Welcome Bonus!"
    )


def test_processing_the_same_pickup_twice_awards_once(ledger: TokenLedger, pickup_factory) -> None:
    ledger.pickups.save(pickup_factory("pickup-1"))

    ledger.process_pickup_tokens("pickup-1", "collector-1")
    repeat = ledger.process_pickup_tokens("pickup-1", "collector-1")

    assert repeat.already_processed is True
    assert repeat.tokens_awarded == 19
    assert repeat.milestones_awarded == []
    assert ledger.get_token_balance("collector-1") == 69
    assert len(_all(ledger)) == 2


def test_concurrent_duplicate_is_caught_by_store(
    ledger: TokenLedger, pickup_factory, monkeypatch: pytest.MonkeyPatch
) -> None:
    ledger.pickups.save(pickup_factory("pickup-1"))
    ledger.process_pickup_tokens("pickup-1", "collector-1")

    # Simulate a second caller that passed the existence check before the first insert landed.
    monkeypatch.setattr(ledger, "_existing_pickup_award", lambda collector_id, pickup_id: None)
    result = ledger.process_pickup_tokens("pickup-1", "collector-1")

    assert result.already_processed is True
    assert result.tokens_awarded == 19
    assert ledger.get_token_balance("collector-1") == 69


def test_milestones_follow_each_verified_increment(ledger: TokenLedger, pickup_factory) -> None:
    awarded = []
    for index in range(1, 11):
        ledger.pickups.save(
            pickup_factory(
                f"pickup-{index}",
                category=PlasticCategory.PP,
                weight=1.0,
                ai_confidence=0.0,
                has_after_photo=False,
            )
        )
        result = ledger.process_pickup_tokens(f"pickup-{index}", "collector-1")
        awarded.extend(m.milestone for m in result.milestones_awarded)

    assert awarded == ["first_pickup", "ten_pickups"]
    assert ledger.get_token_balance("collector-1") == 10 + 50 + 100


def test_unknown_pickup_raises(ledger: TokenLedger) -> None:
    with pytest.raises(PickupNotFoundError):
        ledger.process_pickup_tokens("missing", "collector-1")


def test_milestone_failure_keeps_pickup_award(clock, pickup_factory) -> None:
    ledger = TokenLedger(FailingMilestoneStore(), InMemoryPickupRepository(), clock=clock)
    ledger.pickups.save(pickup_factory("pickup-1"))

    result = ledger.process_pickup_tokens("pickup-1", "collector-1")

    assert result.tokens_awarded == 19
    assert result.milestones_awarded == []
    assert ledger.get_token_balance("collector-1") == 19


def test_storage_failure_propagates_without_partial_award(clock, pickup_factory) -> None:
    ledger = TokenLedger(FailingStore(), InMemoryPickupRepository(), clock=clock)
    ledger.pickups.save(pickup_factory("pickup-1"))

    with pytest.raises(LedgerError):
        ledger.process_pickup_tokens("pickup-1", "collector-1")

    assert ledger.get_token_balance("collector-1") == 0


def test_balance_cache_failure_does_not_fail_award(clock) -> None:
    ledger = TokenLedger(InMemoryTransactionStore(), InMemoryPickupRepository(), FailingCache(), clock=clock)

    result = ledger.award_tokens("collector-1", 40, TransactionSource.BONUS, "Bonus")

    assert result.success
    assert ledger.get_token_balance("collector-1") == 40


def test_recalculate_repairs_drifted_cache(ledger: TokenLedger) -> None:
    ledger.award_tokens("collector-1", 30, TransactionSource.BONUS, "Bonus")
    ledger.balances.set_balance("collector-1", 999)

    balance = ledger.recalculate_token_balance("collector-1")

    assert balance == 30
    assert ledger.balances.get_balance("collector-1") == 30


def test_history_paginates_newest_first(ledger: TokenLedger) -> None:
    for index in range(25):
        ledger.award_tokens("collector-1", 1, TransactionSource.BONUS, f"Bonus {index}")
    ledger.award_tokens("collector-1", -5, TransactionSource.REDEMPTION, "Airtime")
    ledger.award_tokens("collector-2", 7, TransactionSource.BONUS, "Other collector")

    first = ledger.get_history("collector-1", page=1, limit=10)
    third = ledger.get_history("collector-1", page=3, limit=10)

    assert first.transactions[0].description == "Airtime"
    assert first.transactions[1].description == "Bonus 24"
    assert first.pagination.total == 26
    assert first.pagination.total_pages == 3
    assert first.pagination.has_next and not first.pagination.has_prev
    assert len(third.transactions) == 6
    assert not third.pagination.has_next and third.pagination.has_prev
    assert first.summary.total_earned == 25
    assert first.summary.total_redeemed == 5
    assert first.summary.total_transactions == 26


def test_history_filters_by_source_and_date(ledger: TokenLedger, clock) -> None:
    start = clock.current
    ledger.award_tokens("collector-1", 10, TransactionSource.BONUS, "Early")
    ledger.award_tokens("collector-1", 20, TransactionSource.REFERRAL, "Referral")
    ledger.award_tokens("collector-1", 30, TransactionSource.BONUS, "Late")

    by_source = ledger.get_history("collector-1", source="bonus")
    by_type = ledger.get_history("collector-1", type=TransactionType.EARNED)
    by_date = ledger.get_history("collector-1", start_date=start + timedelta(minutes=1))

    assert [row.description for row in by_source.transactions] == ["Late", "Early"]
    assert [row.description for row in by_type.transactions] == ["Referral"]
    assert [row.description for row in by_date.transactions] == ["Late", "Referral"]

    with pytest.raises(ValueError):
        ledger.get_history("collector-1", page=0)


def test_overview_reports_monthly_and_per_source_earnings() -> None:
    stamps = iter(
        [
            datetime(2026, 9, 30, 22, 0, tzinfo=timezone.utc),
            datetime(2026, 9, 30, 23, 0, tzinfo=timezone.utc),
            datetime(2026, 10, 1, 0, 0, tzinfo=timezone.utc),
            datetime(2026, 10, 1, 1, 0, tzinfo=timezone.utc),
        ]
    )
    ledger = TokenLedger(InMemoryTransactionStore(), InMemoryPickupRepository(), clock=lambda: next(stamps))
    ledger.award_tokens("collector-1", 100, TransactionSource.BONUS, "September A")
    ledger.award_tokens("collector-1", 20, TransactionSource.BONUS, "September B")
    ledger.award_tokens("collector-1", 30, TransactionSource.REFERRAL, "October")
    ledger.award_tokens("collector-1", -10, TransactionSource.REDEMPTION, "Airtime")

    overview = ledger.get_overview("collector-1", now=datetime(2026, 10, 15, 12, 0))

    assert overview.balance == 140
    assert overview.monthly_earned == 30
    assert overview.verified_pickup_count == 0
    assert overview.next_milestone.milestone == "first_pickup"
    assert set(overview.earnings_by_source) == {"bonus", "referral"}
    assert overview.earnings_by_source["bonus"].total == 120
    assert overview.earnings_by_source["bonus"].count == 2
    assert [row.description for row in overview.recent_transactions] == [
        "Airtime",
        "October",
        "September B",
        "September A",
    ]
