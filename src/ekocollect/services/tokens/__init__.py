"""Token scoring and ledger services."""

from .calculator import MILESTONES, calculate_tokens_for_pickup, check_milestones, get_next_milestone
from .ledger import TokenLedger
from .service import get_token_ledger

__all__ = [
    "MILESTONES",
    "TokenLedger",
    "calculate_tokens_for_pickup",
    "check_milestones",
    "get_next_milestone",
    "get_token_ledger",
]
