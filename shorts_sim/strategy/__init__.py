from .gates import pass_placement_gates
from .quotes import (
    QuoteConfig,
    contract_quotes,
    down_probability,
    probability_bounds,
    quote_urgency,
    up_probability,
)

__all__ = [
    "QuoteConfig",
    "contract_quotes",
    "down_probability",
    "pass_placement_gates",
    "probability_bounds",
    "quote_urgency",
    "up_probability",
]
