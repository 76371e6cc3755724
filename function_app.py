import logging
import json
import azure.functions as func
from datetime import datetime, timezone

from price_forecast.service import handle_train, handle_predict

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)


def setup_logger(name: str):
    """Configure structured logging"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(name)


def parse_body(req: func.HttpRequest) -> dict:
    body = req.get_body()
    return json.loads(body.decode()) if body else {}


def json_response(payload: dict, status_code: int) -> func.HttpResponse:
    return func.HttpResponse(
        body=json.dumps(payload, indent=2),
        status_code=status_code,
        mimetype="application/json"
    )


@app.function_name(name="health_check")
@app.route(route="health", methods=["GET"])
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """Service liveness"""
    return json_response({
        "status": "healthy",
        "service": "price-forecast",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }, 200)


@app.function_name(name="train")
@app.route(route="train", methods=["POST"])
def train(req: func.HttpRequest) -> func.HttpResponse:
    """Train the model on recent history and report forecast and backtest metrics"""
    logger = setup_logger("train")
    logger.info("Starting /train")

    try:
        body = parse_body(req)
    except ValueError:
        return json_response({"success": False, "error": "Invalid JSON body"}, 400)

    payload, status_code = handle_train(body)
    logger.info(f"/train finished with status {status_code}")
    return json_response(payload, status_code)


@app.function_name(name="predict")
@app.route(route="predict", methods=["POST"])
def predict(req: func.HttpRequest) -> func.HttpResponse:
    """Next-day forecast from the stored model"""
    logger = setup_logger("predict")
    logger.info("Starting /predict")

    try:
        body = parse_body(req)
    except ValueError:
        return json_response({"success": False, "error": "Invalid JSON body"}, 400)

    payload, status_code = handle_predict(body)
    logger.info(f"/predict finished with status {status_code}")
    return json_response(payload, status_code)
