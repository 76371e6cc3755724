import numpy as np
import logging

from .entities import price_values
from .exceptions import InvalidInputError
from .normalizer import SeriesNormalizer

logger = logging.getLogger(__name__)


def prepare_prediction_window(recent_prices, window_size: int, normalizer: SeriesNormalizer) -> np.ndarray:
    """
    Normalize the most recent prices into a model input window

    Args:
        recent_prices: Raw prices (or PricePoints), oldest first
        window_size: Number of values the model expects
        normalizer: Fitted normalizer; its current bounds are used as-is

    Returns:
        np.ndarray: Normalized window of length window_size
    """
    try:
        values = price_values(recent_prices)

        if len(values) < window_size:
            raise InvalidInputError(
                f"Insufficient data: {len(values)} prices, "
                f"need at least {window_size} to build a prediction window"
            )

        window = normalizer.transform(values[-window_size:])

        logger.debug(f"Prediction window prepared: {window.shape}")
        return window

    except Exception:
        logger.exception("Error preparing prediction window")
        raise


def predict_next(model, recent_window_raw, normalizer: SeriesNormalizer) -> float:
    """
    Forecast the next price in original units

    Args:
        model: Trained sequence model (anything with ``window_size`` and ``predict``)
        recent_window_raw: Last ``window_size`` raw prices
        normalizer: Normalizer holding the bounds the model was trained with

    Returns:
        float: Predicted price (denormalized)
    """
    try:
        window = prepare_prediction_window(recent_window_raw, model.window_size, normalizer)

        prediction_normalized = model.predict(window)
        predicted_price = normalizer.inverse(prediction_normalized)

        logger.info(f"Prediction: {predicted_price:.2f}")
        return predicted_price

    except Exception:
        logger.exception("Error running prediction")
        raise
