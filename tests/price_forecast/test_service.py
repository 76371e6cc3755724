from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from price_forecast import service
from price_forecast.exceptions import InvalidInputError
from price_forecast.sequence_model import ModelState
from price_forecast.storage import BlobModelStore, LocalModelStore
from price_forecast.system_check import BackendInfo


class FakeHistorySource:
    def __init__(self, points):
        self.points = points
        self.calls = []

    def fetch_history(self, symbol, days):
        self.calls.append((symbol, days))
        return self.points


@pytest.fixture(autouse=True)
def fast_training(monkeypatch, tmp_path):
    monkeypatch.setenv("EPOCHS", "2")
    monkeypatch.setenv("BATCH_SIZE", "16")
    monkeypatch.setenv("MODEL_STORE_DIR", str(tmp_path / "store"))
    monkeypatch.delenv("AzureWebJobsStorage", raising=False)
    monkeypatch.setattr(
        service, "check_accelerator",
        lambda: BackendInfo(supported=False, device="cpu", description="Using CPU backend"),
    )


@pytest.fixture
def history(make_points):
    return make_points(np.linspace(20000, 30000, 60) + np.sin(np.arange(60)) * 300)


@pytest.fixture
def store(tmp_path):
    return LocalModelStore(str(tmp_path / "store"))


class TestGetModelStore:
    def test_local_by_default(self, tmp_path):
        model_store = service.get_model_store()
        assert isinstance(model_store, LocalModelStore)
        assert model_store.directory == str(tmp_path / "store")

    def test_blob_when_connection_string_set(self, monkeypatch):
        container = MagicMock()
        monkeypatch.setenv("AzureWebJobsStorage", "UseDevelopmentStorage=true")
        with patch.object(service, "get_storage_client", return_value=container) as get_client:
            model_store = service.get_model_store()

        get_client.assert_called_once_with("UseDevelopmentStorage=true", "priceforecaststorage")
        assert isinstance(model_store, BlobModelStore)
        assert model_store.container_client is container


class TestHandleTrain:
    def test_train_then_predict(self, history, store):
        source = FakeHistorySource(history)

        payload, status = service.handle_train({"symbol": "btc-usd", "days": 60}, history_source=source, store=store)

        assert status == 200
        assert payload["success"] is True
        assert payload["symbol"] == "BTC-USD"
        assert source.calls == [("BTC-USD", 60)]
        assert np.isfinite(payload["prediction"])
        assert payload["last_price"] == history[-1].price
        assert payload["last_timestamp"] == history[-1].timestamp
        assert payload["epochs_completed"] == 2
        assert payload["saved"] is True
        assert payload["records_count"] == 60 - 7
        assert len(payload["predictions"]) == 30
        assert payload["backend"]["device"] == "cpu"

        payload, status = service.handle_predict({"prices": [p.price for p in history[-7:]]}, store=store)

        assert status == 200
        assert payload["success"] is True
        assert payload["window_size"] == 7
        assert np.isfinite(payload["prediction"])

    def test_invalid_parameter(self, history, store):
        payload, status = service.handle_train({"epochs": 0}, history_source=FakeHistorySource(history), store=store)

        assert status == 400
        assert payload["success"] is False
        assert "epochs" in payload["error"]

    def test_insufficient_history(self, make_points, store):
        source = FakeHistorySource(make_points([1, 2, 3]))

        payload, status = service.handle_train({}, history_source=source, store=store)

        assert status == 400
        assert "Insufficient data" in payload["error"]

    def test_no_history_from_provider(self, store):
        source = MagicMock()
        source.fetch_history.side_effect = InvalidInputError("No price history returned for XYZ")

        payload, status = service.handle_train({"symbol": "xyz"}, history_source=source, store=store)

        assert status == 400
        assert payload["error"] == "No price history returned for XYZ"

    def test_unexpected_error(self, store, caplog):
        source = MagicMock()
        source.fetch_history.side_effect = RuntimeError("provider outage")

        payload, status = service.handle_train({}, history_source=source, store=store)

        assert status == 500
        assert payload == {"success": False, "error": "provider outage"}
        assert "Unexpected error during training" in caplog.text


class TestHandlePredict:
    def test_no_trained_model(self, store):
        payload, status = service.handle_predict({"prices": [1, 2, 3, 4, 5, 6, 7]}, store=store)

        assert status == 404
        assert "No trained model found" in payload["error"]

    def test_too_few_prices(self, history, store):
        service.handle_train({}, history_source=FakeHistorySource(history), store=store)

        payload, status = service.handle_predict({"prices": [1.0, 2.0]}, store=store)

        assert status == 400
        assert "Insufficient data" in payload["error"]

    def test_fetches_history_when_no_prices_given(self, history, store):
        service.handle_train({"symbol": "eth-usd"}, history_source=FakeHistorySource(history), store=store)
        source = FakeHistorySource(history[-21:])

        payload, status = service.handle_predict({"symbol": "eth-usd"}, history_source=source, store=store)

        assert status == 200
        assert payload["symbol"] == "ETH-USD"
        assert source.calls == [("ETH-USD", 21)]

    def test_model_is_stored_per_symbol(self, history, store, tmp_path):
        service.handle_train({"symbol": "btc-usd"}, history_source=FakeHistorySource(history), store=store)
        source = FakeHistorySource(history[-21:])

        payload, status = service.handle_predict({"symbol": "eth-usd"}, history_source=source, store=store)

        assert status == 404
        assert payload["error"] == "No trained model found for ETH-USD"
        assert source.calls == []
        assert (tmp_path / "store" / "models" / "bitcoin-price-model-BTC-USD.pt").exists()


def test_model_key(monkeypatch):
    monkeypatch.setenv("MODEL_NAME", "forecaster")
    assert service.model_key("ETH-USD") == "forecaster-ETH-USD"


def test_model_released_when_training_fails(history, store):
    created = []

    class TrackedModel(service.SequenceModel):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    with patch.object(service, "SequenceModel", TrackedModel), \
            patch.object(service, "evaluate", side_effect=RuntimeError("backtest crashed")):
        payload, status = service.handle_train({}, history_source=FakeHistorySource(history), store=store)

    assert status == 500
    assert payload["error"] == "backtest crashed"
    assert len(created) == 1
    assert created[0].state is ModelState.DISPOSED
    assert created[0].module is None


def test_model_released_when_prediction_fails(history, store):
    service.handle_train({}, history_source=FakeHistorySource(history), store=store)
    created = []

    class TrackedModel(service.SequenceModel):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    with patch.object(service, "SequenceModel", TrackedModel):
        payload, status = service.handle_predict({"prices": [1.0, 2.0]}, store=store)

    assert status == 400
    assert created[0].state is ModelState.DISPOSED
