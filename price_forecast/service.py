"""Request handlers behind the HTTP routes in ``function_app``.

Each handler takes the decoded JSON body and returns ``(payload, status_code)``
so it can be exercised without the Azure Functions host.
"""
import logging

from .backtester import evaluate
from .config import Config
from .exceptions import ModelStateError
from .history import YFinanceHistorySource
from .predictor import predict_next
from .sequence_model import SequenceModel
from .storage import BlobModelStore, LocalModelStore, get_storage_client
from .system_check import check_accelerator, tune_hyperparameters
from .trainer import PriceTrainer

logger = logging.getLogger(__name__)


def get_model_store():
    """Azure Blob store when a connection string is configured, local directory otherwise"""
    storage_config = Config.get_storage_config()
    if storage_config["conn_str"]:
        container_client = get_storage_client(storage_config["conn_str"], storage_config["container"])
        return BlobModelStore(container_client)
    return LocalModelStore(storage_config["local_dir"])


def model_key(symbol: str) -> str:
    """Store name for the model trained on ``symbol``"""
    return f"{Config.get_storage_config()['model_name']}-{symbol}"


def _error(message, status_code):
    return {"success": False, "error": message}, status_code


def _symbol(body):
    return (body.get("symbol") or Config.get_history_config()["symbol"]).strip().upper()


def _positive_int(body, key, default):
    value = body.get(key, default)
    if value is None:
        return default
    value = int(value)
    if value <= 0:
        raise ValueError(f"Parameter '{key}' must be positive")
    return value


def handle_train(body: dict, history_source=None, store=None):
    """
    Fetch history, train, forecast the next day, backtest and persist

    Body (all optional): symbol, days, epochs, batch_size
    """
    model = None
    try:
        history_config = Config.get_history_config()
        symbol = _symbol(body)
        days = _positive_int(body, "days", history_config["days"])

        backend = check_accelerator()
        logger.info(backend.description)

        hyperparams = tune_hyperparameters(Config.get_model_config(), backend)
        epochs = _positive_int(body, "epochs", hyperparams["EPOCHS"])
        batch_size = _positive_int(body, "batch_size", hyperparams["BATCH_SIZE"])
        window_size = hyperparams["WINDOW_SIZE"]

        history_source = history_source or YFinanceHistorySource()
        logger.info(f"Fetching {days} days of history for {symbol}...")
        history = history_source.fetch_history(symbol, days)

        model = SequenceModel(hyperparams)
        trainer = PriceTrainer(hyperparams)
        result = trainer.train(history, model, epochs=epochs, batch_size=batch_size)

        logger.info("Making prediction...")
        prediction = predict_next(model, history[-window_size:], result.normalizer)

        logger.info("Evaluating model accuracy...")
        backtest = evaluate(model, history, window_size, keep_last=hyperparams["EVALUATION_KEEP_LAST"])

        store = store or get_model_store()
        saved = store.save(model_key(symbol), model, result.normalizer)

        return {
            "success": True,
            "symbol": symbol,
            "prediction": prediction,
            "last_price": history[-1].price,
            "last_timestamp": history[-1].timestamp,
            "epochs_completed": len(result.history),
            "final_loss": result.final_loss,
            "backend": backend.to_dict(),
            "saved": saved,
            **backtest.to_dict(),
        }, 200

    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return _error(str(e), 400)
    except ModelStateError as e:
        logger.error(f"Model state error: {e}")
        return _error(str(e), 409)
    except Exception as e:
        logger.exception("Unexpected error during training")
        return _error(str(e), 500)
    finally:
        if model is not None:
            model.dispose()


def handle_predict(body: dict, history_source=None, store=None):
    """
    Next-day forecast from the model stored for ``symbol``

    Body: ``symbol`` (optional) and either ``prices`` (list of recent raw
    prices) or nothing, in which case recent history is fetched.
    """
    model = None
    try:
        store = store or get_model_store()
        symbol = _symbol(body)
        name = model_key(symbol)

        model = SequenceModel()
        if not store.load(name, model):
            return _error(f"No trained model found for {symbol}", 404)

        normalizer = store.load_normalizer(name)
        if normalizer is None:
            return _error(f"No scaler found for {symbol}", 404)

        prices = body.get("prices")
        if prices is None:
            history_source = history_source or YFinanceHistorySource()
            # Extra days cover weekends and market holidays
            prices = history_source.fetch_history(symbol, model.window_size * 3)

        prediction = predict_next(model, prices, normalizer)

        return {
            "success": True,
            "symbol": symbol,
            "prediction": prediction,
            "window_size": model.window_size,
        }, 200

    except ValueError as e:
        logger.error(f"Validation error: {e}")
        return _error(str(e), 400)
    except ModelStateError as e:
        logger.error(f"Model state error: {e}")
        return _error(str(e), 409)
    except Exception as e:
        logger.exception("Unexpected error during prediction")
        return _error(str(e), 500)
    finally:
        if model is not None:
            model.dispose()
