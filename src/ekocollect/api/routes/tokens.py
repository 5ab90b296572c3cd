"""Collector token balance and ledger endpoints."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status

from ...config import settings
from ...models.domain import TransactionSource, TransactionType
from ...persistence.transactions import LedgerError
from ...schemas.tokens import (
    HistorySummaryModel,
    NextMilestoneModel,
    PaginationModel,
    RecalculateResponse,
    SourceEarningsModel,
    TokenHistoryResponse,
    TokenOverviewResponse,
    TokenTransactionModel,
)
from ...services.tokens.service import get_token_ledger

router = APIRouter(prefix="/tokens", tags=["tokens"])


@router.get("/{collector_id}", response_model=TokenOverviewResponse, status_code=status.HTTP_200_OK)
def get_token_overview(collector_id: str) -> TokenOverviewResponse:
    """Balance, milestone progress and recent activity for one collector."""
    try:
        overview = get_token_ledger().get_overview(collector_id)
    except LedgerError as exc:
        logging.exception(f"Error fetching token data for {collector_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch token data: {str(exc)}",
        ) from exc

    next_milestone = overview.next_milestone
    return TokenOverviewResponse(
        collector_id=collector_id,
        balance=overview.balance,
        verified_pickup_count=overview.verified_pickup_count,
        next_milestone=NextMilestoneModel(
            milestone=next_milestone.milestone,
            tokens=next_milestone.tokens,
            description=next_milestone.description,
            progress=next_milestone.progress,
            current=next_milestone.current,
            target=next_milestone.target,
        )
        if next_milestone
        else None,
        monthly_earned=overview.monthly_earned,
        earnings_by_source={
            source: SourceEarningsModel(total=bucket.total, count=bucket.count)
            for source, bucket in overview.earnings_by_source.items()
        },
        recent_transactions=[TokenTransactionModel.from_domain(t) for t in overview.recent_transactions],
    )


@router.get("/{collector_id}/history", response_model=TokenHistoryResponse, status_code=status.HTTP_200_OK)
def get_token_history(
    collector_id: str,
    page: int = Query(default=1, ge=1, description="1-based page index"),
    limit: int = Query(default=settings.history_page_size, ge=1, le=settings.history_max_page_size),
    type: TransactionType | None = Query(default=None, description="Filter by transaction type"),
    source: TransactionSource | None = Query(default=None, description="Filter by transaction source"),
    start_date: datetime | None = Query(default=None, description="Earliest creation time (inclusive)"),
    end_date: datetime | None = Query(default=None, description="Latest creation time (inclusive)"),
) -> TokenHistoryResponse:
    try:
        history = get_token_ledger().get_history(
            collector_id,
            page=page,
            limit=limit,
            type=type,
            source=source,
            start_date=start_date,
            end_date=end_date,
        )
    except LedgerError as exc:
        logging.exception(f"Error fetching token history for {collector_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch token history: {str(exc)}",
        ) from exc

    return TokenHistoryResponse(
        transactions=[TokenTransactionModel.from_domain(t) for t in history.transactions],
        pagination=PaginationModel(
            page=history.pagination.page,
            limit=history.pagination.limit,
            total=history.pagination.total,
            total_pages=history.pagination.total_pages,
            has_next=history.pagination.has_next,
            has_prev=history.pagination.has_prev,
        ),
        summary=HistorySummaryModel(
            total_earned=history.summary.total_earned,
            total_redeemed=history.summary.total_redeemed,
            total_transactions=history.summary.total_transactions,
        ),
    )


@router.post("/{collector_id}/recalculate", response_model=RecalculateResponse, status_code=status.HTTP_200_OK)
def recalculate_balance(collector_id: str) -> RecalculateResponse:
    """Rewrite the cached profile balance from the transaction log."""
    try:
        balance = get_token_ledger().recalculate_token_balance(collector_id)
    except LedgerError as exc:
        logging.exception(f"Error recalculating tokens for {collector_id}: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to recalculate tokens: {str(exc)}",
        ) from exc
    return RecalculateResponse(collector_id=collector_id, balance=balance)
