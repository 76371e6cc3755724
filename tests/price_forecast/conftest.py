import numpy as np
import pytest

from price_forecast.entities import PricePoint

DAY_MS = 86_400_000


class LastValueModel:
    """Stub sequence model: predicts the last value of the window"""

    def __init__(self, window_size=7, fail_at_calls=()):
        self.window_size = window_size
        self.is_trained = True
        self.fail_at_calls = set(fail_at_calls)
        self.calls = 0

    def predict(self, window):
        call = self.calls
        self.calls += 1
        if call in self.fail_at_calls:
            raise RuntimeError(f"injected failure at call {call}")
        return float(np.asarray(window)[-1])


@pytest.fixture(autouse=True)
def quiet_progress_bar(monkeypatch):
    monkeypatch.setenv("ENABLE_PROGRESS_BAR", "false")


@pytest.fixture
def small_config():
    """Tiny network so training tests stay fast"""
    return {
        "FIRST_HIDDEN_SIZE": 8,
        "SECOND_HIDDEN_SIZE": 4,
        "DROPOUT_VALUE": 0.0,
        "SEED": 7,
    }


@pytest.fixture
def make_points():
    def _make(prices, start=1_700_000_000_000):
        return [PricePoint(timestamp=start + i * DAY_MS, price=float(p)) for i, p in enumerate(prices)]
    return _make


@pytest.fixture
def linear_prices():
    return [100.0 + i for i in range(100)]


@pytest.fixture
def stub_model():
    """Factory for LastValueModel stubs"""
    return LastValueModel
