"""Configuration constants for the payout forecasting pipeline."""

# Days between an order's delivery and the unlock of its funds
DEFAULT_RESERVE_LAG_DAYS = 7

# Share of delivered-but-locked funds held back (1.0 = hold everything)
DEFAULT_RESERVE_MULTIPLIER = 1.0

# Fixed settlement cadence for bi-weekly accounts
SETTLEMENT_PERIOD_DAYS = 14

# Assumed shipping time for orders that carry no delivery date
ESTIMATED_DELIVERY_DAYS = 3

# Forecast horizon (number of days ahead)
FORECAST_DAYS = 90

# Statistical daily model
MIN_CONFIRMED_PAYOUTS = 3
RECENT_PAYOUT_WINDOW = 14
GROWTH_WINDOW_DAYS = 30
DEFAULT_CONFIDENCE_FACTOR = 1.0

# Transaction trend model
TREND_LOOKBACK_DAYS = 14
MIN_TREND_DAYS = 3

# Horizon boundaries in days ahead: [0, 30) near, [30, 60) mid, [60, inf) far
NEAR_HORIZON_END = 30
MID_HORIZON_END = 60

# Default payout-history weight per horizon (transaction trend gets the rest)
DEFAULT_PAYOUT_HISTORY_WEIGHTS = {"near": 75, "mid": 50, "far": 25}

# Accuracy tracking
ACCURACY_TRAILING_ENTRIES = 30

# Seasonality model: monthly payout multipliers, ratio windows, forecast length
SEASONALITY_MULTIPLIERS = {
    1: 1.12,
    2: 0.92,
    3: 1.02,
    4: 1.00,
    5: 1.03,
    6: 1.04,
    7: 1.10,
    8: 0.96,
    9: 0.97,
    10: 1.05,
    11: 1.08,
    12: 1.06,
}
SEASONALITY_BASE_PAYOUTS = 3
SEASONALITY_GROWTH_DAYS = 90
SEASONALITY_MOMENTUM_DAYS = 30
SEASONALITY_MONTHS = 6
SEASONALITY_PAYOUT_DAY = 15
