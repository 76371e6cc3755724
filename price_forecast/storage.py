from azure.storage.blob import BlobServiceClient
from azure.core.exceptions import ResourceExistsError
import io
import logging
import os
from typing import Optional

import joblib

from .normalizer import NormalizationParams, SeriesNormalizer

logger = logging.getLogger(__name__)


def get_storage_client(conn_str: str, container_name: str):
    """Return a configured container client, creating the container if needed"""
    try:
        blob_service = BlobServiceClient.from_connection_string(conn_str)
        container_client = blob_service.get_container_client(container_name)

        try:
            container_client.create_container()
            logger.info(f"Container {container_name} created")
        except ResourceExistsError:
            logger.info(f"Container {container_name} already exists")

        return container_client
    except Exception:
        logger.exception("Failed to connect to Azure Blob Storage")
        raise


def serialize_normalizer(normalizer: SeriesNormalizer) -> bytes:
    """Serialize the fitted scaler with joblib"""
    buffer = io.BytesIO()
    joblib.dump({"target_scaler": normalizer.scaler}, buffer)
    buffer.seek(0)
    return buffer.read()


def deserialize_normalizer(blob: bytes) -> SeriesNormalizer:
    payload = joblib.load(io.BytesIO(blob))
    scaler = payload["target_scaler"]
    params = NormalizationParams(min=float(scaler.data_min_[0]), max=float(scaler.data_max_[0]))
    return SeriesNormalizer.from_params(params)


class ModelStore:
    """
    Named store for trained models and their normalizers.

    ``save`` and ``load`` never raise: failures are logged and reported as
    ``False``, and a failed load leaves the model in its previous state.
    """

    def save(self, name: str, model, normalizer: SeriesNormalizer = None) -> bool:
        try:
            self._write(self.model_path(name), model.to_bytes())
            logger.info(f"Model saved: {self.model_path(name)}")

            if normalizer is not None:
                self._write(self.scaler_path(name), serialize_normalizer(normalizer))
                logger.info(f"Scaler saved: {self.scaler_path(name)}")

            return True
        except Exception:
            logger.exception(f"Error saving model {name}")
            return False

    def load(self, name: str, model) -> bool:
        try:
            blob = self._read(self.model_path(name))
        except FileNotFoundError:
            logger.warning(f"Model not found: {self.model_path(name)}")
            return False
        except Exception:
            logger.exception(f"Error reading model {name}")
            return False

        return model.load_bytes(blob)

    def load_normalizer(self, name: str) -> Optional[SeriesNormalizer]:
        try:
            return deserialize_normalizer(self._read(self.scaler_path(name)))
        except FileNotFoundError:
            logger.warning(f"Scaler not found: {self.scaler_path(name)}")
            return None
        except Exception:
            logger.exception(f"Error loading scaler for {name}")
            return None

    @staticmethod
    def model_path(name: str) -> str:
        return f"models/{name}.pt"

    @staticmethod
    def scaler_path(name: str) -> str:
        return f"models/{name}_scaler.pkl"

    def _write(self, path: str, data: bytes):
        raise NotImplementedError

    def _read(self, path: str) -> bytes:
        raise NotImplementedError


class LocalModelStore(ModelStore):
    """Store backed by a local directory"""

    def __init__(self, directory: str):
        self.directory = directory

    def _full_path(self, path: str) -> str:
        return os.path.join(self.directory, *path.split("/"))

    def _write(self, path: str, data: bytes):
        full_path = self._full_path(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, 'wb') as f:
            f.write(data)

    def _read(self, path: str) -> bytes:
        with open(self._full_path(path), 'rb') as f:
            return f.read()


class BlobModelStore(ModelStore):
    """Store backed by an Azure Blob Storage container"""

    def __init__(self, container_client):
        self.container_client = container_client

    def _write(self, path: str, data: bytes):
        blob_client = self.container_client.get_blob_client(path)
        blob_client.upload_blob(data, overwrite=True)

    def _read(self, path: str) -> bytes:
        blob_client = self.container_client.get_blob_client(path)
        if not blob_client.exists():
            raise FileNotFoundError(f"Blob not found: {path}")
        return blob_client.download_blob().readall()
