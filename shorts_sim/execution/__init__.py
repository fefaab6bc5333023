from .ledger import BalanceLedger, round_tokens, to_hundredths

__all__ = ["BalanceLedger", "round_tokens", "to_hundredths"]
