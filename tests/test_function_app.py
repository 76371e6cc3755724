import json
from unittest.mock import patch

import azure.functions as func
import pytest

import function_app


@pytest.fixture(scope="module")
def user_functions():
    """Registered functions by name; the app indexes its functions only once"""
    return {f.get_function_name(): f.get_user_function() for f in function_app.app.get_functions()}


def make_request(method="POST", url="/api/train", body=b""):
    return func.HttpRequest(method=method, url=url, body=body)


def test_registered_routes(user_functions):
    assert set(user_functions) == {"health_check", "train", "predict"}


def test_health_check(user_functions):
    response = user_functions["health_check"](make_request("GET", "/api/health"))

    assert response.status_code == 200
    assert response.mimetype == "application/json"
    payload = json.loads(response.get_body())
    assert payload["status"] == "healthy"
    assert payload["service"] == "price-forecast"
    assert "timestamp" in payload


def test_parse_body():
    assert function_app.parse_body(make_request(body=b"")) == {}
    assert function_app.parse_body(make_request(body=b'{"symbol": "BTC-USD"}')) == {"symbol": "BTC-USD"}
    with pytest.raises(ValueError):
        function_app.parse_body(make_request(body=b"{not json"))


def test_json_response():
    response = function_app.json_response({"success": True}, 201)
    assert response.status_code == 201
    assert json.loads(response.get_body()) == {"success": True}


def test_train_delegates_to_handler(user_functions):
    with patch.object(function_app, "handle_train", return_value=({"success": True}, 200)) as handler:
        response = user_functions["train"](make_request(body=b'{"epochs": 3}'))

    handler.assert_called_once_with({"epochs": 3})
    assert response.status_code == 200


def test_train_invalid_json(user_functions):
    with patch.object(function_app, "handle_train") as handler:
        response = user_functions["train"](make_request(body=b"{oops"))

    handler.assert_not_called()
    assert response.status_code == 400
    assert json.loads(response.get_body())["error"] == "Invalid JSON body"


def test_predict_passes_status_through(user_functions):
    result = ({"success": False, "error": "No trained model found for BTC-USD"}, 404)
    with patch.object(function_app, "handle_predict", return_value=result) as handler:
        response = user_functions["predict"](make_request(url="/api/predict", body=b'{"prices": [1, 2]}'))

    handler.assert_called_once_with({"prices": [1, 2]})
    assert response.status_code == 404
    assert "No trained model" in json.loads(response.get_body())["error"]
