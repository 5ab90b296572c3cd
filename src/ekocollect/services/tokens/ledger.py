"""Token ledger engine.

The transaction log is append-only and is the single source of truth for a
collector's balance. ``balance_after`` on each entry and the profile balance
cache are write-time snapshots that :meth:`TokenLedger.recalculate_token_balance`
can rebuild from the log at any time.
"""

from __future__ import annotations

import logging
import math
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from ...models.domain import (
    METADATA_FOR_SOURCE,
    MilestoneMetadata,
    PickupMetadata,
    TokenTransaction,
    TransactionMetadata,
    TransactionSource,
    TransactionType,
)
from ...persistence.pickups import PickupNotFoundError, PickupRepository
from ...persistence.profiles import BalanceCache
from ...persistence.transactions import (
    DuplicateTransactionError,
    LedgerError,
    TransactionFilter,
    TransactionStore,
    as_utc,
)
from .calculator import (
    AchievedMilestone,
    MilestoneProgress,
    calculate_tokens_for_pickup,
    check_milestones,
    get_next_milestone,
)

BONUS_SOURCES = frozenset({TransactionSource.MILESTONE, TransactionSource.BONUS})
RECENT_TRANSACTION_COUNT = 10


@dataclass(slots=True)
class AwardResult:
    success: bool
    transaction_id: Optional[str] = None
    new_balance: Optional[int] = None


@dataclass(slots=True)
class PickupTokenResult:
    tokens_awarded: int
    milestones_awarded: list[AchievedMilestone] = field(default_factory=list)
    already_processed: bool = False


@dataclass(slots=True)
class Pagination:
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


@dataclass(slots=True)
class HistorySummary:
    total_earned: int
    total_redeemed: int
    total_transactions: int


@dataclass(slots=True)
class TransactionHistory:
    transactions: list[TokenTransaction]
    pagination: Pagination
    summary: HistorySummary


@dataclass(slots=True)
class SourceEarnings:
    total: int
    count: int


@dataclass(slots=True)
class TokenOverview:
    balance: int
    verified_pickup_count: int
    next_milestone: Optional[MilestoneProgress]
    monthly_earned: int
    earnings_by_source: dict[str, SourceEarnings]
    recent_transactions: list[TokenTransaction]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def transaction_type_for(source: TransactionSource) -> TransactionType:
    return TransactionType.BONUS if source in BONUS_SOURCES else TransactionType.EARNED


class TokenLedger:
    """Awards, balances and history for collector EkoTokens."""

    def __init__(
        self,
        transactions: TransactionStore,
        pickups: PickupRepository,
        balances: BalanceCache | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.transactions = transactions
        self.pickups = pickups
        self.balances = balances
        self._clock = clock
        # Serialises read-balance/append so balance_after snapshots stay consistent in-process.
        self._award_lock = threading.RLock()

    def get_token_balance(self, collector_id: str) -> int:
        """Sum of every transaction amount for the collector; ignores the cache."""
        return self.transactions.sum_amounts(collector_id)

    def _write_balance_cache(self, collector_id: str, balance: int) -> None:
        if self.balances is None:
            return
        try:
            self.balances.set_balance(collector_id, balance)
        except LedgerError as exc:
            logging.warning(f"Balance cache update failed for {collector_id}; ledger remains authoritative: {exc}")

    def award_tokens(
        self,
        collector_id: str,
        amount: int,
        source: TransactionSource | str,
        description: str,
        metadata: TransactionMetadata | None = None,
    ) -> AwardResult:
        """Append one transaction unless it would take the balance below zero.

        A rejected award is reported through ``success=False``. Storage failures
        raise :class:`LedgerError`; a duplicate pickup award raises
        :class:`DuplicateTransactionError`.
        """
        source = TransactionSource(source)
        if amount != int(amount):
            raise ValueError(f"Token amounts must be whole numbers, got {amount}")
        amount = int(amount)
        expected = METADATA_FOR_SOURCE[source]
        if metadata is not None and not isinstance(metadata, expected):
            raise ValueError(f"{source.value} transactions take {expected.__name__}, got {type(metadata).__name__}")

        with self._award_lock:
            current_balance = self.get_token_balance(collector_id)
            new_balance = current_balance + amount
            if new_balance < 0:
                logging.warning(
                    f"Token award rejected for {collector_id}: balance {current_balance} + {amount} would be negative"
                )
                return AwardResult(success=False)

            transaction = TokenTransaction(
                transaction_id=str(uuid.uuid4()),
                collector_id=collector_id,
                amount=amount,
                type=transaction_type_for(source),
                source=source,
                description=description,
                balance_after=new_balance,
                created_at=self._clock(),
                pickup_id=metadata.pickup_id if isinstance(metadata, PickupMetadata) else None,
                metadata=metadata,
            )
            self.transactions.insert(transaction)

        self._write_balance_cache(collector_id, new_balance)
        logging.info(
            f"Tokens awarded: collector={collector_id} amount={amount} source={source.value} "
            f"balance={new_balance} transaction={transaction.transaction_id}"
        )
        return AwardResult(success=True, transaction_id=transaction.transaction_id, new_balance=new_balance)

    def _existing_pickup_award(self, collector_id: str, pickup_id: str) -> TokenTransaction | None:
        return self.transactions.find_one(
            TransactionFilter(
                collector_id=collector_id,
                pickup_id=pickup_id,
                source=TransactionSource.PICKUP_VERIFICATION,
            )
        )

    def process_pickup_tokens(self, pickup_id: str, collector_id: str) -> PickupTokenResult:
        """Reward a pickup that just became verified, plus any milestone it completes.

        At most one pickup-verification award ever exists per (collector, pickup);
        repeat calls return the recorded amount and award nothing. Milestone
        failures are logged and left out of the result without undoing the
        pickup award.
        """
        pickup = self.pickups.get(pickup_id)
        if pickup is None:
            raise PickupNotFoundError(pickup_id)

        existing = self._existing_pickup_award(collector_id, pickup_id)
        if existing is not None:
            logging.warning(
                f"Tokens already awarded for pickup {pickup_id} (collector={collector_id}, "
                f"transaction={existing.transaction_id})"
            )
            return PickupTokenResult(tokens_awarded=existing.amount, already_processed=True)

        weight = pickup.effective_weight
        ai_confidence = pickup.verification.ai_confidence if pickup.verification else None
        calculation = calculate_tokens_for_pickup(
            category=pickup.category,
            weight=weight,
            ai_confidence=ai_confidence,
            has_after_photo=pickup.has_after_photo,
            actual_weight=pickup.actual_weight,
            was_manually_reviewed=bool(pickup.verification and pickup.verification.manual_review),
        )

        try:
            award = self.award_tokens(
                collector_id,
                calculation.total_tokens,
                TransactionSource.PICKUP_VERIFICATION,
                f"Verified pickup: {pickup.category.value} ({weight:.1f}kg)",
                PickupMetadata(
                    pickup_id=pickup_id,
                    category=pickup.category.value,
                    weight=weight,
                    ai_confidence=ai_confidence,
                    breakdown=tuple(calculation.breakdown),
                ),
            )
        except DuplicateTransactionError as exc:
            # Lost a race with a concurrent call; the stored award wins.
            recorded = exc.existing or self._existing_pickup_award(collector_id, pickup_id)
            logging.warning(f"Concurrent award detected for pickup {pickup_id}; keeping the recorded transaction")
            return PickupTokenResult(
                tokens_awarded=recorded.amount if recorded else calculation.total_tokens,
                already_processed=True,
            )

        if not award.success:
            raise LedgerError(f"Failed to award pickup tokens for {pickup_id}")

        verified_count = self.pickups.count_verified(collector_id)
        milestones_awarded: list[AchievedMilestone] = []
        for milestone in check_milestones(verified_count):
            try:
                result = self.award_tokens(
                    collector_id,
                    milestone.tokens,
                    TransactionSource.MILESTONE,
                    milestone.description,
                    MilestoneMetadata(milestone=milestone.milestone, description=milestone.description),
                )
            except LedgerError as exc:
                logging.error(f"Milestone '{milestone.milestone}' award failed for {collector_id}: {exc}")
                continue
            if result.success:
                milestones_awarded.append(milestone)
                logging.info(
                    f"Milestone bonus awarded: collector={collector_id} milestone={milestone.milestone} "
                    f"tokens={milestone.tokens}"
                )
            else:
                logging.warning(f"Milestone '{milestone.milestone}' award rejected for {collector_id}")

        logging.info(
            f"Pickup tokens processed: pickup={pickup_id} collector={collector_id} "
            f"tokens={calculation.total_tokens} milestones={len(milestones_awarded)}"
        )
        return PickupTokenResult(tokens_awarded=calculation.total_tokens, milestones_awarded=milestones_awarded)

    def recalculate_token_balance(self, collector_id: str) -> int:
        """Rebuild the cached profile balance from the transaction log."""
        balance = self.get_token_balance(collector_id)
        if self.balances is not None:
            self.balances.set_balance(collector_id, balance)
        logging.info(f"Token balance recalculated for {collector_id}: {balance}")
        return balance

    def get_history(
        self,
        collector_id: str,
        *,
        page: int = 1,
        limit: int = 20,
        type: TransactionType | str | None = None,
        source: TransactionSource | str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> TransactionHistory:
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")
        flt = TransactionFilter(
            collector_id=collector_id,
            type=TransactionType(type) if type is not None else None,
            source=TransactionSource(source) if source is not None else None,
            start=start_date,
            end=end_date,
        )
        total = self.transactions.count(flt)
        rows = self.transactions.find(flt, offset=(page - 1) * limit, limit=limit)

        amounts = [row.amount for row in self.transactions.find(flt)]
        summary = HistorySummary(
            total_earned=sum(a for a in amounts if a > 0),
            total_redeemed=sum(-a for a in amounts if a < 0),
            total_transactions=len(amounts),
        )
        pagination = Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
            has_next=page * limit < total,
            has_prev=page > 1,
        )
        return TransactionHistory(transactions=rows, pagination=pagination, summary=summary)

    def get_overview(self, collector_id: str, *, now: datetime | None = None) -> TokenOverview:
        now = as_utc(now or self._clock())
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        verified_count = self.pickups.count_verified(collector_id)
        positive = self.transactions.find(TransactionFilter(collector_id=collector_id, positive_only=True))

        earnings: dict[str, SourceEarnings] = {}
        for row in positive:
            bucket = earnings.setdefault(row.source.value, SourceEarnings(total=0, count=0))
            bucket.total += row.amount
            bucket.count += 1

        return TokenOverview(
            balance=self.get_token_balance(collector_id),
            verified_pickup_count=verified_count,
            next_milestone=get_next_milestone(verified_count),
            monthly_earned=sum(row.amount for row in positive if as_utc(row.created_at) >= month_start),
            earnings_by_source=earnings,
            recent_transactions=self.transactions.find(
                TransactionFilter(collector_id=collector_id), limit=RECENT_TRANSACTION_COUNT
            ),
        )
