import logging
from dataclasses import dataclass

import numpy as np
from sklearn.preprocessing import MinMaxScaler

from .exceptions import DegenerateDataError, InvalidInputError, ModelStateError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizationParams:
    """Bounds fitted from one price series. Maps values into [0, 1] and back."""

    min: float
    max: float

    def __post_init__(self):
        if self.max < self.min:
            raise InvalidInputError(f"Invalid bounds: max {self.max} < min {self.min}")
        if self.max == self.min:
            raise DegenerateDataError(
                f"Constant series (min == max == {self.min}) cannot be normalized"
            )

    @property
    def span(self) -> float:
        return self.max - self.min

    def transform(self, values) -> np.ndarray:
        return (np.asarray(values, dtype=np.float64) - self.min) / self.span

    def inverse(self, normalized_value: float) -> float:
        return float(normalized_value * self.span + self.min)


class SeriesNormalizer:
    """
    Min-max normalizer for a single price series.

    Wraps a ``MinMaxScaler`` so the fitted scaler can be persisted with joblib,
    and exposes the fitted bounds as an immutable ``NormalizationParams``.
    Every ``fit_transform`` call replaces the stored bounds.
    """

    def __init__(self):
        self.scaler = None
        self._params = None

    @classmethod
    def from_params(cls, params: NormalizationParams) -> "SeriesNormalizer":
        normalizer = cls()
        normalizer._fit_scaler(np.array([params.min, params.max], dtype=np.float64))
        normalizer._params = params
        return normalizer

    @property
    def is_fitted(self) -> bool:
        return self._params is not None

    @property
    def params(self) -> NormalizationParams:
        self._require_fitted()
        return self._params

    def fit(self, values) -> NormalizationParams:
        """Fit bounds from ``values`` and return them."""
        arr = self._validate(values)
        params = NormalizationParams(min=float(arr.min()), max=float(arr.max()))
        self._fit_scaler(arr)
        self._params = params
        logger.debug(f"Normalizer fitted: min={params.min:.4f}, max={params.max:.4f}")
        return params

    def fit_transform(self, values) -> np.ndarray:
        self.fit(values)
        return self.transform(values)

    def transform(self, values) -> np.ndarray:
        """Normalize with the current bounds, without re-fitting."""
        self._require_fitted()
        arr = np.asarray(values, dtype=np.float64).reshape(-1, 1)
        return self.scaler.transform(arr).flatten()

    def inverse(self, normalized_value: float) -> float:
        return float(self.inverse_transform([normalized_value])[0])

    def inverse_transform(self, normalized_values) -> np.ndarray:
        self._require_fitted()
        arr = np.asarray(normalized_values, dtype=np.float64).reshape(-1, 1)
        return self.scaler.inverse_transform(arr).flatten()

    def _require_fitted(self):
        if self._params is None:
            raise ModelStateError("Normalizer not fitted. Call fit_transform first.")

    def _fit_scaler(self, arr: np.ndarray):
        self.scaler = MinMaxScaler()
        self.scaler.fit(arr.reshape(-1, 1))

    @staticmethod
    def _validate(values) -> np.ndarray:
        arr = np.asarray(values, dtype=np.float64).flatten()
        if arr.size == 0:
            raise InvalidInputError("Cannot normalize an empty series")
        if not np.all(np.isfinite(arr)):
            raise InvalidInputError("Series contains NaN or infinite values")
        if arr.max() == arr.min():
            raise DegenerateDataError(
                f"Constant series (all values == {arr[0]}) cannot be normalized"
            )
        return arr
