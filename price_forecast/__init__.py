"""
Next-day price forecasting from a trailing window of daily prices.

The package has the following submodules:

* ``normalizer`` – min-max scaling of a price series and back.
* ``dataset`` – sliding-window (window, target) construction.
* ``sequence_model`` – the LSTM network and the handle owning its lifecycle.
* ``trainer`` – normalize, window, create and fit in one training run.
* ``predictor`` – single-step forecast in original price units.
* ``backtester`` – walk-forward evaluation with MAPE / RMSE.
* ``storage``, ``history``, ``system_check`` and ``service`` – persistence,
  yfinance history, accelerator probing and the HTTP request handlers.
"""
from .backtester import BacktestResult, evaluate
from .dataset import build_windows
from .entities import EpochProgress, EvaluationRecord, Metrics, PricePoint, StepFailure
from .exceptions import DegenerateDataError, ForecastError, InvalidInputError, ModelStateError
from .normalizer import NormalizationParams, SeriesNormalizer
from .predictor import predict_next
from .sequence_model import SequenceModel
from .trainer import PriceTrainer, TrainingResult

__all__ = [
    "BacktestResult",
    "DegenerateDataError",
    "EpochProgress",
    "EvaluationRecord",
    "ForecastError",
    "InvalidInputError",
    "Metrics",
    "ModelStateError",
    "NormalizationParams",
    "PricePoint",
    "PriceTrainer",
    "SeriesNormalizer",
    "SequenceModel",
    "StepFailure",
    "TrainingResult",
    "build_windows",
    "evaluate",
    "predict_next",
]
