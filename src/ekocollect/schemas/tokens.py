"""Token ledger API schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from ..models.domain import TokenTransaction, TransactionSource, TransactionType, metadata_to_dict


class TokenTransactionModel(BaseModel):
    id: str
    amount: int
    type: TransactionType
    source: TransactionSource
    pickup_id: Optional[str] = None
    description: str
    balance_after: int
    metadata: Optional[Dict[str, Any]] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, transaction: TokenTransaction) -> "TokenTransactionModel":
        return cls(
            id=transaction.transaction_id,
            amount=transaction.amount,
            type=transaction.type,
            source=transaction.source,
            pickup_id=transaction.pickup_id,
            description=transaction.description,
            balance_after=transaction.balance_after,
            metadata=metadata_to_dict(transaction.metadata),
            created_at=transaction.created_at,
        )


class MilestoneModel(BaseModel):
    milestone: str
    tokens: int
    description: str


class NextMilestoneModel(MilestoneModel):
    progress: float
    current: int
    target: int


class SourceEarningsModel(BaseModel):
    total: int
    count: int


class TokenOverviewResponse(BaseModel):
    collector_id: str
    balance: int
    verified_pickup_count: int
    next_milestone: Optional[NextMilestoneModel] = None
    monthly_earned: int
    earnings_by_source: Dict[str, SourceEarningsModel]
    recent_transactions: List[TokenTransactionModel]


class PaginationModel(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class HistorySummaryModel(BaseModel):
    total_earned: int
    total_redeemed: int
    total_transactions: int


class TokenHistoryResponse(BaseModel):
    transactions: List[TokenTransactionModel]
    pagination: PaginationModel
    summary: HistorySummaryModel


class RecalculateResponse(BaseModel):
    collector_id: str
    balance: int
