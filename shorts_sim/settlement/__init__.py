from .manager import PayoutTerms, SettlementResult, outcome, settle_position, shares_for

__all__ = ["PayoutTerms", "SettlementResult", "outcome", "settle_position", "shares_for"]
