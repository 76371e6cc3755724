import logging
from dataclasses import dataclass, field
from typing import List

import numpy as np

from .entities import EvaluationRecord, Metrics, PricePoint, StepFailure
from .exceptions import InvalidInputError, ModelStateError
from .metrics import calculate_metrics
from .normalizer import SeriesNormalizer

logger = logging.getLogger(__name__)

DEFAULT_KEEP_LAST = 30


@dataclass
class BacktestResult:
    """
    Walk-forward evaluation outcome

    ``records`` holds every successful step and ``failures`` every skipped one.
    Metrics are computed over all records, ``recent`` is the presentation tail.
    """

    metrics: Metrics
    records: List[EvaluationRecord] = field(default_factory=list)
    failures: List[StepFailure] = field(default_factory=list)
    keep_last: int = DEFAULT_KEEP_LAST

    @property
    def recent(self) -> List[EvaluationRecord]:
        return self.records[-self.keep_last:] if self.keep_last > 0 else []

    @property
    def degraded(self) -> bool:
        return bool(self.failures)

    def to_dict(self) -> dict:
        return {
            "metrics": self.metrics.to_dict(),
            "records_count": len(self.records),
            "failures_count": len(self.failures),
            "predictions": [r.to_dict() for r in self.recent],
            "failures": [f.to_dict() for f in self.failures],
        }


def evaluate(model, historical_prices, window_size: int = None, normalizer: SeriesNormalizer = None,
             keep_last: int = DEFAULT_KEEP_LAST) -> BacktestResult:
    """
    Replay the model one step ahead across the history

    Args:
        model: Trained sequence model (``window_size`` and ``predict``)
        historical_prices: PricePoints (or raw prices) in ascending time order
        window_size: Input window length (defaults to the model's)
        normalizer: Reuse these bounds instead of re-fitting on ``historical_prices``
        keep_last: Number of most recent records exposed through ``recent``

    Returns:
        BacktestResult: metrics, successful records and skipped steps
    """
    window_size = window_size or model.window_size
    if window_size != getattr(model, "window_size", window_size):
        raise InvalidInputError(
            f"Window size {window_size} does not match the model's window size {model.window_size}"
        )
    points = _as_points(historical_prices)

    if not points:
        raise InvalidInputError("Price history is empty")
    if len(points) <= window_size:
        raise InvalidInputError(
            f"Insufficient data: {len(points)} prices, need more than {window_size} to backtest"
        )
    if not getattr(model, "is_trained", True):
        raise ModelStateError("Model not trained yet")

    prices = np.array([p.price for p in points], dtype=np.float64)
    if normalizer is None:
        normalizer = SeriesNormalizer()
        normalized = normalizer.fit_transform(prices)
    else:
        normalized = normalizer.transform(prices)

    records = []
    failures = []

    for i in range(window_size, len(points)):
        window = normalized[i - window_size:i]
        point = points[i]
        try:
            predicted = normalizer.inverse(model.predict(window))
            if not np.isfinite(predicted):
                raise ValueError(f"Non-finite prediction: {predicted}")

            actual = float(point.price)
            records.append(EvaluationRecord(
                timestamp=point.timestamp,
                predicted=predicted,
                actual=actual,
                error_pct=(predicted - actual) / actual * 100,
            ))
        except ModelStateError:
            raise
        except Exception as e:
            logger.warning(f"Backtest step {i} (timestamp {point.timestamp}) skipped: {e}")
            failures.append(StepFailure(index=i, timestamp=point.timestamp, reason=str(e)))

    metrics = calculate_metrics(
        [r.actual for r in records],
        [r.predicted for r in records],
        "Backtest",
    )

    if failures:
        logger.warning(f"Backtest degraded: {len(failures)} of {len(points) - window_size} steps skipped")
    logger.info(f"Backtest finished: {len(records)} records")

    return BacktestResult(metrics=metrics, records=records, failures=failures, keep_last=keep_last)


def _as_points(historical_prices) -> List[PricePoint]:
    points = list(historical_prices)
    if points and not hasattr(points[0], "price"):
        # Plain values: use the position as timestamp
        return [PricePoint(timestamp=i, price=float(v)) for i, v in enumerate(points)]
    return points
