"""
CO2 forecast by ordinary least squares over (minutes since first reading, co2).
"""
from typing import Optional, Sequence

from pydantic import BaseModel

from app.models.telemetry import TelemetryRecord


class Co2Prediction(BaseModel):
    prediction: Optional[float] = None
    slope: Optional[float] = None
    intercept: Optional[float] = None
    minutesAhead: Optional[int] = None
    message: Optional[str] = None


def predict_co2(records: Sequence[TelemetryRecord], minutes_ahead: int) -> Co2Prediction:
    """
    Fit co2 = slope * t + intercept on records sorted ascending by timestamp
    and extrapolate `minutes_ahead` minutes past the last reading.
    """
    if len(records) < 2:
        return Co2Prediction(message="Insufficient data")

    t0 = records[0].timestamp
    xs = [(r.timestamp - t0).total_seconds() / 60.0 for r in records]
    ys = [r.co2_emissions for r in records]
    n = len(xs)

    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_xx = sum(x * x for x in xs)

    denom = n * sum_xx - sum_x * sum_x
    slope = (n * sum_xy - sum_x * sum_y) / denom if denom != 0 else 0.0
    intercept = (sum_y - slope * sum_x) / n

    target_t = xs[-1] + minutes_ahead
    return Co2Prediction(
        prediction=slope * target_t + intercept,
        slope=slope,
        intercept=intercept,
        minutesAhead=minutes_ahead,
    )
