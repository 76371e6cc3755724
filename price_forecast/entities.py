"""Plain records exchanged between the pipeline stages.

These are dataclasses with no ML framework dependency so they can be
serialized straight into HTTP responses.
"""

from dataclasses import dataclass, asdict
from typing import Optional

import numpy as np


@dataclass(frozen=True)
class PricePoint:
    """One daily price observation. ``timestamp`` is epoch milliseconds."""

    timestamp: int
    price: float


@dataclass(frozen=True)
class EvaluationRecord:
    """Outcome of one walk-forward step."""

    timestamp: int
    predicted: float
    actual: float
    error_pct: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class StepFailure:
    """A backtest step whose prediction could not be produced."""

    index: int
    timestamp: int
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Metrics:
    mape: float
    rmse: float
    mae: float = float("nan")

    def to_dict(self) -> dict:
        """Undefined (NaN) metrics become ``None`` so the result is valid JSON."""
        return {key: (value if np.isfinite(value) else None) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class EpochProgress:
    """Progress event emitted once per completed training epoch."""

    epoch: int
    loss: float
    val_loss: Optional[float] = None
    total_epochs: Optional[int] = None

    @property
    def progress_pct(self) -> Optional[float]:
        if not self.total_epochs:
            return None
        return (self.epoch + 1) / self.total_epochs * 100


def price_values(prices) -> np.ndarray:
    """Price values from a sequence of PricePoints or plain numbers."""
    prices = list(prices)
    if prices and hasattr(prices[0], "price"):
        return np.array([p.price for p in prices], dtype=np.float64)
    return np.asarray(prices, dtype=np.float64).flatten()
