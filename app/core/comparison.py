from typing import Literal

Comparison = Literal["above", "below", "equal"]

# Absolute tolerance in dollars; absorbs float noise from summing/dividing prices.
PRICE_TOLERANCE = 0.01

def classify(price: float, average: float) -> Comparison:
    """Place a sale price relative to its suburb average."""
    if abs(price - average) < PRICE_TOLERANCE:
        return "equal"
    return "above" if price > average else "below"
