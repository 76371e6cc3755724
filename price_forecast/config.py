import os

class Config:
    """Centralized settings"""

    @staticmethod
    def _get_int(name, default):
        value = os.getenv(name, "").strip()
        if not value:
            return default
        try:
            return int(value)
        except ValueError:
            # Unparsable values fall back to the default
            return default

    @staticmethod
    def get_model_config():
        return {
            "WINDOW_SIZE": Config._get_int("WINDOW_SIZE", 7),
            "EPOCHS": Config._get_int("EPOCHS", 50),
            "BATCH_SIZE": Config._get_int("BATCH_SIZE", 32),
            "FIRST_HIDDEN_SIZE": 50,
            "SECOND_HIDDEN_SIZE": 30,
            "DROPOUT_VALUE": 0.2,
            "LEARNING_RATE": 0.001,
            "BETA_1": 0.9,
            "BETA_2": 0.999,
            "EPSILON": 1e-7,
            "VALIDATION_SPLIT": 0.1,
            "EVALUATION_KEEP_LAST": 30,
        }

    @staticmethod
    def get_history_config():
        return {
            "symbol": os.getenv("HISTORY_SYMBOL", "BTC-USD").strip() or "BTC-USD",
            "days": Config._get_int("HISTORY_DAYS", 365),
        }

    @staticmethod
    def get_storage_config():
        return {
            "conn_str": os.getenv("AzureWebJobsStorage"),
            "container": os.getenv("BLOB_CONTAINER", "priceforecaststorage"),
            "local_dir": os.getenv("MODEL_STORE_DIR", ".models"),
            "model_name": os.getenv("MODEL_NAME", "bitcoin-price-model"),
        }

    @staticmethod
    def enable_progress_bar():
        """
        Whether Lightning should draw its progress bar.
        Disabled by default when running inside Azure Functions.
        """
        env_value = os.getenv("ENABLE_PROGRESS_BAR", "").lower()

        if env_value in ("true", "1", "yes"):
            return True
        if env_value in ("false", "0", "no"):
            return False

        # Azure Functions sets WEBSITE_INSTANCE_ID
        is_azure = os.getenv("WEBSITE_INSTANCE_ID") is not None
        return not is_azure
