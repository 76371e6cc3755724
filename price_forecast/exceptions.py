"""Typed failures raised by the forecasting pipeline.

Input and state errors abort the current operation. Per-step backtest
failures and persistence failures are not raised: they are reported through
``StepFailure`` records and boolean results respectively.
"""


class ForecastError(Exception):
    """Base class for pipeline failures."""


class InvalidInputError(ForecastError, ValueError):
    """Empty history, too few values for a window, or a bad window size."""


class DegenerateDataError(ForecastError, ValueError):
    """A constant series cannot be min-max normalized."""


class ModelStateError(ForecastError, RuntimeError):
    """A model operation was invoked out of order."""
