"""Position sizing — pure math, no I/O.

Converts a role's balance fraction and leverage into an order quantity.
"""


def calculate_quantity(
    balance: float,
    size_fraction: float,
    leverage: int,
    price: float,
) -> float:
    """Calculate position size in base-asset units.

    Formula::

        margin    = balance × size_fraction
        notional  = margin × leverage
        quantity  = notional / price

    Args:
        balance: Available account balance in quote currency (e.g. 1_000.0).
        size_fraction: Share of balance committed as margin (e.g. 0.20).
        leverage: Integer leverage applied to the margin (e.g. 10).
        price: Expected fill price.

    Returns:
        Quantity in base-asset units (always positive).

    Raises:
        ValueError: If any input is non-positive or *size_fraction* > 1.
    """
    if balance <= 0:
        raise ValueError(f"balance must be positive, got {balance}")
    if not 0 < size_fraction <= 1:
        raise ValueError(f"size_fraction must be within (0, 1], got {size_fraction}")
    if leverage < 1:
        raise ValueError(f"leverage must be >= 1, got {leverage}")
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")

    margin = balance * size_fraction
    return margin * leverage / price
