"""Built-in static level catalogs, keyed by instrument.

Rows are ``(price, description, type, importance)``.
"""

DEFAULT_LEVELS: dict[str, tuple[tuple[float, str, str, str], ...]] = {
    "ADAUSDT": (
        # Critical
        (1.0179, "13-Week High", "RESISTANCE", "CRITICAL"),
        (1.3244, "52-Week High", "RESISTANCE", "CRITICAL"),
        (1.3699, "14 Day RSI at 80%", "RESISTANCE", "CRITICAL"),
        (0.7664, "1-Month Low", "SUPPORT", "CRITICAL"),
        (0.5111, "13-Week Low", "SUPPORT", "CRITICAL"),
        (0.1820, "14 Day RSI at 20%", "SUPPORT", "CRITICAL"),
        (0.3182, "52-Week Low", "SUPPORT", "CRITICAL"),
        # High
        (0.9001, "Price 3 Standard Deviations Resistance", "RESISTANCE", "HIGH"),
        (0.9019, "Pivot Point 2nd Level Resistance", "RESISTANCE", "HIGH"),
        (0.9353, "Pivot Point 3rd Level Resistance", "RESISTANCE", "HIGH"),
        (0.8673, "High", "RESISTANCE", "HIGH"),
        (0.8816, "Pivot Point 1st Resistance Point", "RESISTANCE", "HIGH"),
        (0.8837, "Price 1 Standard Deviation Resistance", "RESISTANCE", "HIGH"),
        (0.8930, "Price 2 Standard Deviations Resistance", "RESISTANCE", "HIGH"),
        (0.8224, "Price 3 Standard Deviations Support", "SUPPORT", "HIGH"),
        (0.8279, "Pivot Point 1st Support Point", "SUPPORT", "HIGH"),
        (0.8296, "Price 2 Standard Deviations Support", "SUPPORT", "HIGH"),
        (0.8389, "Price 1 Standard Deviation Support", "SUPPORT", "HIGH"),
        (0.8598, "Low", "SUPPORT", "HIGH"),
        (0.8602, "Previous Close", "SUPPORT", "HIGH"),
        (0.7742, "Pivot Point 3rd Support Point", "SUPPORT", "HIGH"),
        (0.7946, "Pivot Point 2nd Support Point", "SUPPORT", "HIGH"),
        # Medium
        (1.0684, "14 Day RSI at 70%", "RESISTANCE", "MEDIUM"),
        (0.5404, "14 Day RSI at 30%", "SUPPORT", "MEDIUM"),
        # Low
        (0.9095, "14-3 Day Raw Stochastic at 70%", "RESISTANCE", "LOW"),
        (0.9218, "38.2% Retracement From 4 Week High", "RESISTANCE", "LOW"),
        (0.9400, "61.8% Retracement from the 52 Week Low", "RESISTANCE", "LOW"),
        (0.8105, "14 Day %k Stochastic Stalls", "SUPPORT", "LOW"),
        (0.8213, "50% Retracement From 52 Week High/Low", "SUPPORT", "LOW"),
        (0.8482, "Pivot Point", "SUPPORT", "LOW"),
        (0.8652, "Target Price", "SUPPORT", "LOW"),
        (0.8735, "14-3 Day Raw Stochastic at 50%", "RESISTANCE", "LOW"),
        (0.8922, "50% Retracement From 4 Week High/Low", "RESISTANCE", "LOW"),
        (0.7267, "Price Crosses 40 Day Moving Average Stalls", "SUPPORT", "LOW"),
        (0.7645, "50% Retracement From 13 Week High/Low", "SUPPORT", "LOW"),
    ),
}
