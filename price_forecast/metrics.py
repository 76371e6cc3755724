import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error
import logging

from .entities import Metrics

logger = logging.getLogger(__name__)


def calculate_metrics(y_real, predictions, dataset_name="") -> Metrics:
    """
    Aggregate error metrics for a set of predictions

    Args:
        y_real: Actual values (array-like)
        predictions: Predicted values (array-like)
        dataset_name: Name used when logging the summary

    Returns:
        Metrics: mape (percent), rmse and mae in price units.
                 All NaN when there are no values.
    """
    try:
        y_real = np.asarray(y_real, dtype=np.float64)
        predictions = np.asarray(predictions, dtype=np.float64)

        if y_real.shape != predictions.shape:
            raise ValueError(
                f"Length mismatch: {y_real.shape} actual vs {predictions.shape} predicted"
            )

        if y_real.size == 0:
            logger.warning(f"No values to evaluate{' for ' + dataset_name if dataset_name else ''}")
            return Metrics(mape=float("nan"), rmse=float("nan"), mae=float("nan"))

        mae = mean_absolute_error(y_real, predictions)
        rmse = np.sqrt(mean_squared_error(y_real, predictions))

        # MAPE relative to the actual price
        mape = np.mean(np.abs(predictions - y_real) / y_real) * 100

        metrics = Metrics(mape=float(mape), rmse=float(rmse), mae=float(mae))

        if dataset_name:
            logger.info(f"📊 Metrics {dataset_name}:")
            logger.info(f"   MAE:  {mae:.3f}")
            logger.info(f"   RMSE: {rmse:.3f}")
            logger.info(f"   MAPE: {mape:.2f}%")

        return metrics

    except Exception:
        logger.exception(f"Error calculating metrics for {dataset_name}")
        raise
