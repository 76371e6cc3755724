import io
import logging
import threading
from enum import Enum

import numpy as np
import torch
import torch.nn as nn
import torch.nn.functional as F
import pytorch_lightning as pl
from torch.utils.data import DataLoader

from .config import Config
from .dataset import WindowDataset, split_validation
from .entities import EpochProgress
from .exceptions import InvalidInputError, ModelStateError

logger = logging.getLogger(__name__)


class PriceLSTM(pl.LightningModule):
    """
    LSTM network for next-day price prediction
    Architecture: LSTM(50) -> dropout -> LSTM(30) -> linear output unit
    """

    def __init__(self, config):
        """
        Args:
            config: Dict or object with hyperparameters
                   Must have: FIRST_HIDDEN_SIZE, SECOND_HIDDEN_SIZE, DROPOUT_VALUE,
                              LEARNING_RATE, BETA_1, BETA_2, EPSILON
        """
        super().__init__()
        self.config = config

        first_hidden_size = self.get_config("FIRST_HIDDEN_SIZE", 50)
        second_hidden_size = self.get_config("SECOND_HIDDEN_SIZE", 30)

        self.lstm1 = nn.LSTM(input_size=1, hidden_size=first_hidden_size, batch_first=True)
        self.dropout = nn.Dropout(p=self.get_config("DROPOUT_VALUE", 0.2))
        self.lstm2 = nn.LSTM(first_hidden_size, second_hidden_size, batch_first=True)
        self.linear = nn.Linear(in_features=second_hidden_size, out_features=1)

        self._init_weights()
        self.save_hyperparameters()

    def get_config(self, key, default=None):
        return self.config.get(key, default) if isinstance(self.config, dict) else getattr(self.config, key, default)

    def _init_weights(self):
        # First layer: Glorot-normal input and recurrent kernels.
        # Second layer: Glorot-uniform input kernel, orthogonal recurrent kernel.
        for name, param in self.lstm1.named_parameters():
            if name.startswith("weight"):
                nn.init.xavier_normal_(param)

        for name, param in self.lstm2.named_parameters():
            if name.startswith("weight_ih"):
                nn.init.xavier_uniform_(param)
            elif name.startswith("weight_hh"):
                nn.init.orthogonal_(param)

        # Gate order is (input, forget, cell, output); forget bias starts at 1
        for lstm in (self.lstm1, self.lstm2):
            hidden = lstm.hidden_size
            for name, param in lstm.named_parameters():
                if name.startswith("bias"):
                    nn.init.zeros_(param)
                    if name.startswith("bias_ih"):
                        with torch.no_grad():
                            param[hidden:2 * hidden].fill_(1.0)

    def forward(self, x):
        """
        Args:
            x: Tensor (batch_size, window_size, 1)

        Returns:
            Tensor (batch_size, 1)
        """
        x, _ = self.lstm1(x)
        x = self.dropout(x)
        x, _ = self.lstm2(x)

        # Last step of the sequence
        x = x[:, -1, :]
        return self.linear(x)

    def training_step(self, batch, batch_idx):
        inputs, targets = batch
        outputs = self(inputs).flatten()
        loss = F.mse_loss(outputs, targets)
        self.log("train_loss", loss, on_step=False, on_epoch=True, prog_bar=True, batch_size=inputs.size(0))
        return loss

    def validation_step(self, batch, batch_idx):
        inputs, targets = batch
        outputs = self(inputs).flatten()
        loss = F.mse_loss(outputs, targets)
        self.log("val_loss", loss, on_step=False, on_epoch=True, prog_bar=True, batch_size=inputs.size(0))
        return loss

    def predict_step(self, batch, batch_idx):
        inputs, _ = batch
        return self(inputs).flatten()

    def configure_optimizers(self):
        return torch.optim.Adam(
            self.parameters(),
            lr=self.get_config("LEARNING_RATE", 0.001),
            betas=(self.get_config("BETA_1", 0.9), self.get_config("BETA_2", 0.999)),
            eps=self.get_config("EPSILON", 1e-7),
        )


class EpochEndCallback(pl.Callback):
    """Reports train/validation loss after every epoch and honours cancellation"""

    def __init__(self, total_epochs, on_epoch_end=None, cancel_event=None):
        self.total_epochs = total_epochs
        self.on_epoch_end = on_epoch_end
        self.cancel_event = cancel_event
        self.history = []

    def on_train_epoch_end(self, trainer, pl_module):
        metrics = trainer.callback_metrics
        loss = metrics.get("train_loss")
        val_loss = metrics.get("val_loss")

        event = EpochProgress(
            epoch=trainer.current_epoch,
            loss=float(loss) if loss is not None else float("nan"),
            val_loss=float(val_loss) if val_loss is not None else None,
            total_epochs=self.total_epochs,
        )
        self.history.append(event)

        val_text = f", val_loss: {event.val_loss:.6f}" if event.val_loss is not None else ""
        logger.info(f"Epoch {event.epoch + 1}/{self.total_epochs} - loss: {event.loss:.6f}{val_text}")

        if self.on_epoch_end is not None:
            self.on_epoch_end(event.epoch, event.loss, event.val_loss)

        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info(f"Cancellation requested, stopping after epoch {event.epoch + 1}")
            trainer.should_stop = True


class ModelState(str, Enum):
    UNCREATED = "uncreated"
    CREATED = "created"
    TRAINED = "trained"
    DISPOSED = "disposed"


class SequenceModel:
    """
    Owns one ``PriceLSTM`` and its lifecycle: uncreated -> created -> trained -> disposed.

    ``create`` releases any previous network before building a new one, and
    only one ``fit`` may run on an instance at a time.
    """

    def __init__(self, config=None, accelerator="auto"):
        self.config = Config.get_model_config()
        if config:
            self.config.update(config)
        self.accelerator = accelerator
        self.window_size = self.config["WINDOW_SIZE"]
        self.module = None
        self.state = ModelState.UNCREATED
        self._fit_lock = threading.Lock()

    @property
    def is_trained(self):
        return self.state is ModelState.TRAINED

    def create(self, window_size=None):
        self._release()

        self.window_size = window_size or self.config["WINDOW_SIZE"]
        self.config["WINDOW_SIZE"] = self.window_size

        seed = self.config.get("SEED")
        if seed is not None:
            pl.seed_everything(seed, workers=True)

        self.module = PriceLSTM(dict(self.config))
        self.state = ModelState.CREATED
        logger.info(f"Model created (window size {self.window_size})")
        return self

    def fit(self, inputs, targets, epochs=None, batch_size=None, on_epoch_end=None, cancel_event=None):
        """
        Train on (window, target) pairs

        Args:
            inputs: Array (n, window_size) of normalized windows
            targets: Array (n,) of normalized next values
            epochs: Number of passes over the training examples
            batch_size: Examples per optimization step
            on_epoch_end: Called as on_epoch_end(epoch_index, loss, val_loss_or_none)
            cancel_event: threading.Event checked between epochs

        Returns:
            list[EpochProgress]: One entry per completed epoch
        """
        if self.module is None:
            raise ModelStateError("Model not created. Call create first.")

        if not self._fit_lock.acquire(blocking=False):
            raise ModelStateError("A training run is already active for this model")

        try:
            epochs = epochs or self.config["EPOCHS"]
            batch_size = batch_size or self.config["BATCH_SIZE"]

            inputs = np.asarray(inputs, dtype=np.float32)
            targets = np.asarray(targets, dtype=np.float32).flatten()
            if len(inputs) == 0:
                raise InvalidInputError("No training examples. The series must be longer than the window size.")
            if inputs.ndim != 2 or inputs.shape[1] != self.window_size:
                raise InvalidInputError(
                    f"Expected windows of shape (n, {self.window_size}), got {inputs.shape}"
                )

            (X_train, y_train), (X_val, y_val) = split_validation(
                inputs, targets, self.config.get("VALIDATION_SPLIT", 0.1)
            )
            if len(X_train) == 0:
                # Too few examples to hold any out
                X_train, y_train = inputs, targets
                X_val, y_val = inputs[:0], targets[:0]

            logger.info(f"Training examples: {len(X_train)}, validation examples: {len(X_val)}")

            train_loader = DataLoader(
                WindowDataset(X_train, y_train),
                batch_size=batch_size,
                shuffle=True,
                num_workers=0
            )
            val_loader = None
            if len(X_val) > 0:
                val_loader = DataLoader(
                    WindowDataset(X_val, y_val),
                    batch_size=batch_size,
                    shuffle=False,
                    num_workers=0
                )

            progress = EpochEndCallback(epochs, on_epoch_end=on_epoch_end, cancel_event=cancel_event)

            trainer = pl.Trainer(
                max_epochs=epochs,
                accelerator=self.accelerator,
                devices=1,
                callbacks=[progress],
                logger=False,
                enable_checkpointing=False,
                enable_progress_bar=Config.enable_progress_bar(),
                enable_model_summary=False,
                num_sanity_val_steps=0,
            )

            trainer.fit(self.module, train_dataloaders=train_loader, val_dataloaders=val_loader)

            self.state = ModelState.TRAINED
            logger.info(f"Training finished after {len(progress.history)} epoch(s)")
            return progress.history

        except Exception:
            logger.exception("Error during model training")
            raise
        finally:
            self._fit_lock.release()

    def predict(self, window) -> float:
        """Raw (normalized-space) output for a single window"""
        if not self.is_trained:
            raise ModelStateError("Model not trained yet")

        window = np.asarray(window, dtype=np.float32).flatten()
        if len(window) != self.window_size:
            raise InvalidInputError(f"Expected {self.window_size} values, got {len(window)}")

        device = next(self.module.parameters()).device
        sequence = torch.tensor(window, dtype=torch.float32).reshape(1, self.window_size, 1).to(device)

        self.module.eval()
        with torch.no_grad():
            output = self.module(sequence).flatten()

        return float(output.cpu().numpy()[0])

    def to_bytes(self) -> bytes:
        if not self.is_trained:
            raise ModelStateError("No trained model to save")

        buffer = io.BytesIO()
        torch.save({
            "config": dict(self.config),
            "window_size": self.window_size,
            "state_dict": self.module.state_dict(),
        }, buffer)
        buffer.seek(0)
        return buffer.read()

    def load_bytes(self, blob: bytes) -> bool:
        """Replace the current network with a saved one. On failure the model is left untouched."""
        try:
            payload = torch.load(io.BytesIO(blob), map_location="cpu")
            config = dict(payload["config"])
            module = PriceLSTM(config)
            module.load_state_dict(payload["state_dict"])
        except Exception:
            logger.exception("Error loading model from bytes")
            return False

        self._release()
        self.config = config
        self.window_size = payload["window_size"]
        self.module = module
        self.state = ModelState.TRAINED
        logger.info("Model loaded from bytes")
        return True

    def dispose(self):
        self._release()
        self.state = ModelState.DISPOSED

    def _release(self):
        if self.module is None:
            return
        on_cuda = next(self.module.parameters()).is_cuda
        self.module = None
        if on_cuda:
            torch.cuda.empty_cache()
        logger.debug("Previous model parameters released")
