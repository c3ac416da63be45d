"""Forecasting models module.

Forecasting Model Debug Checklist
==================================

When adding a new forecasting model, follow this checklist to ensure
debug information is properly exposed:

1. Add debug attribute to __init__:
   ```python
   def __init__(self, ...) -> None:
       self.debug_: ModelDebugInfo | None = None
   ```

2. Populate debug info in forecast() after computing the series:
   ```python
   self.debug_ = ModelDebugInfo(
       model_name="your_model_name",
       data={"slope": fit.slope},
   )
   ```

3. Important constraints:
   - forecast() always returns a pd.Series of pre-margin values; the safety
     margin is applied by the pipeline, never by a model
   - Models must be deterministic (no random variation)
   - Use model_name consistently (same string across all instances)
   - Keep data dict JSON-serializable (use ISO strings for dates)

4. When build_account_forecast(debug=True) uses this model, its .debug_ is
   collected into ForecastResult.debug[model_name].

Implementations:
- StatisticalDailyModel: payout-history signal, see models/statistical.py
- TransactionTrendModel: transaction-trend signal, see models/trend.py
- SeasonalityModel: monthly payouts with calendar multipliers, see
  models/seasonality.py
"""

from payout_core.forecasting.models.base import ForecastModel
from payout_core.forecasting.models.seasonality import SeasonalityFit, SeasonalityModel
from payout_core.forecasting.models.statistical import (
    StatisticalDailyModel,
    StatisticalFit,
    final_forecast,
    growth_trend,
)
from payout_core.forecasting.models.trend import TransactionTrendModel, TrendFit

__all__ = [
    "ForecastModel",
    "SeasonalityFit",
    "SeasonalityModel",
    "StatisticalDailyModel",
    "StatisticalFit",
    "TransactionTrendModel",
    "TrendFit",
    "final_forecast",
    "growth_trend",
]
