"""Reco billing: token pricing and the per-user usage ledger."""

from src.billing.models import LedgerEntry, User
from src.billing.pricing import CostBreakdown, Usage, price_usage

__all__ = ["CostBreakdown", "LedgerEntry", "Usage", "User", "price_usage"]
