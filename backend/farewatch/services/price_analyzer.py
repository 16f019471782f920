from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Union

from farewatch.models import AlertKind

Number = Union[int, float, Decimal]

MIN_HISTORY_FOR_MISTAKE_FARE = 5


@dataclass
class PriceVerdict:
    percentage_change: float
    is_price_drop: bool
    is_mistake_fare: bool
    below_threshold: bool
    average_price: float
    history_count: int
    kind: Optional[AlertKind] = None
    reason: str = ""

    @property
    def should_alert(self) -> bool:
        return self.kind is not None


def calculate_average_price(prices: Sequence[Number]) -> float:
    if not prices:
        return 0.0
    return sum(float(p) for p in prices) / len(prices)


def calculate_percentage_change(old_price: Number, new_price: Number) -> float:
    """
    Percentage change from old_price to new_price.

    Negative = price went down. Returns 0 when old_price is 0.
    """
    old = float(old_price)
    if old == 0:
        return 0.0
    return (float(new_price) - old) * 100 / old


def is_significant_price_drop(old_price: Number, new_price: Number, threshold: Number = 15) -> bool:
    """True if the price fell by at least threshold percent."""
    return calculate_percentage_change(old_price, new_price) <= -float(threshold)


def is_mistake_fare(
    price: Number,
    historical_prices: Optional[Sequence[Number]],
    threshold: Number = 40,
    min_history: int = MIN_HISTORY_FOR_MISTAKE_FARE,
) -> bool:
    """
    Check if a price sits anomalously far below the recent average.

    Needs at least min_history data points, never fewer than
    MIN_HISTORY_FOR_MISTAKE_FARE; with fewer it never flags.

    Args:
        price: Current price
        historical_prices: Recent prices for the same route and dates
        threshold: How far below the mean (percent) counts as a mistake fare

    Returns:
        True if price is at least threshold percent below the mean
    """
    required = max(min_history, MIN_HISTORY_FOR_MISTAKE_FARE)
    if not historical_prices or len(historical_prices) < required:
        return False

    avg_price = calculate_average_price(historical_prices)
    if avg_price == 0:
        return False

    percentage_below = (avg_price - float(price)) * 100 / avg_price
    return percentage_below >= float(threshold)


def evaluate_price(
    previous_price: Number,
    new_price: Number,
    historical_prices: Sequence[Number],
    price_threshold: Number,
    price_drop_percentage: Number = 15,
    mistake_fare_threshold: Number = 40,
    min_history: int = MIN_HISTORY_FOR_MISTAKE_FARE,
) -> PriceVerdict:
    """
    Classify a new price against the previous one and recent history.

    A mistake fare wins over a price drop. A price drop only alerts when the
    new price is also at or below the user's absolute threshold.
    """
    change = calculate_percentage_change(previous_price, new_price)
    drop = is_significant_price_drop(previous_price, new_price, price_drop_percentage)
    mistake = is_mistake_fare(new_price, historical_prices, mistake_fare_threshold, min_history)
    below = Decimal(str(new_price)) <= Decimal(str(price_threshold))
    average = calculate_average_price(historical_prices)

    if mistake:
        kind = AlertKind.MISTAKE_FARE
        reason = f"${float(new_price):.2f} is at least {float(mistake_fare_threshold):.0f}% below average ${average:.2f}"
    elif drop and below:
        kind = AlertKind.PRICE_DROP
        reason = f"${float(previous_price):.2f} -> ${float(new_price):.2f} ({change:.2f}%)"
    else:
        kind = None
        if drop:
            reason = f"Dropped {abs(change):.1f}% but still above threshold ${float(price_threshold):.2f}"
        else:
            reason = f"Price change {change:.2f}% within normal range"

    return PriceVerdict(
        percentage_change=change,
        is_price_drop=drop,
        is_mistake_fare=mistake,
        below_threshold=below,
        average_price=average,
        history_count=len(historical_prices),
        kind=kind,
        reason=reason,
    )
