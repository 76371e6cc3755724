import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import List, Optional

from .config import Config
from .dataset import build_windows
from .entities import EpochProgress, price_values
from .exceptions import InvalidInputError
from .normalizer import SeriesNormalizer
from .sequence_model import SequenceModel

logger = logging.getLogger(__name__)

_DONE = object()


@dataclass
class TrainingResult:
    normalizer: SeriesNormalizer
    history: List[EpochProgress] = field(default_factory=list)
    cancelled: bool = False

    @property
    def final_loss(self) -> Optional[float]:
        return self.history[-1].loss if self.history else None


class PriceTrainer:
    """
    Orchestrates one training run: normalize -> window -> create -> fit
    """

    def __init__(self, hyperparams: dict = None):
        self.hyperparams = Config.get_model_config()
        if hyperparams:
            self.hyperparams.update(hyperparams)
        self.last_result = None

    def prepare(self, prices, window_size: int = None):
        """
        Normalize raw prices and build the training windows

        Returns:
            tuple: (inputs, targets, normalizer)
        """
        window_size = window_size or self.hyperparams["WINDOW_SIZE"]
        values = price_values(prices)

        if len(values) == 0:
            raise InvalidInputError("Price history is empty")
        if len(values) <= window_size:
            raise InvalidInputError(
                f"Insufficient data: {len(values)} prices, "
                f"need more than {window_size} to build a training window"
            )

        normalizer = SeriesNormalizer()
        normalized = normalizer.fit_transform(values)
        inputs, targets = build_windows(normalized, window_size)

        logger.info(f"Dataset built: {len(inputs)} windows of size {window_size} from {len(values)} prices")
        return inputs, targets, normalizer

    def train(self, prices, model: SequenceModel, epochs: int = None, batch_size: int = None,
              on_epoch_end=None, cancel_event: threading.Event = None) -> TrainingResult:
        """
        Run the full training pipeline synchronously

        Args:
            prices: Raw price values or PricePoints in time order
            model: Sequence model handle (re-created here)
            epochs: Number of epochs (defaults to EPOCHS)
            batch_size: Batch size (defaults to BATCH_SIZE)
            on_epoch_end: Called as on_epoch_end(epoch_index, loss, val_loss_or_none)
            cancel_event: Checked between epochs; when set, training stops early

        Returns:
            TrainingResult: fitted normalizer and per-epoch history
        """
        epochs = epochs or self.hyperparams["EPOCHS"]
        batch_size = batch_size or self.hyperparams["BATCH_SIZE"]
        window_size = self.hyperparams["WINDOW_SIZE"]

        try:
            logger.info("Preparing data...")
            inputs, targets, normalizer = self.prepare(prices, window_size)

            logger.info("Creating model...")
            model.create(window_size)

            logger.info(f"Starting training: {epochs} epochs, batch size {batch_size}")
            history = model.fit(
                inputs,
                targets,
                epochs=epochs,
                batch_size=batch_size,
                on_epoch_end=on_epoch_end,
                cancel_event=cancel_event,
            )

            cancelled = cancel_event is not None and cancel_event.is_set() and len(history) < epochs
            self.last_result = TrainingResult(normalizer=normalizer, history=history, cancelled=cancelled)
            return self.last_result

        except Exception:
            logger.exception("Training run failed")
            raise

    def iter_train(self, prices, model: SequenceModel, epochs: int = None, batch_size: int = None,
                   cancel_event: threading.Event = None):
        """
        Run training on a worker thread and yield one EpochProgress per epoch

        The generator returns the TrainingResult (also kept in ``last_result``).
        Errors raised by the run are re-raised in the consuming thread.
        """
        epochs = epochs or self.hyperparams["EPOCHS"]
        events = queue.Queue()
        outcome = {}

        def on_epoch_end(epoch, loss, val_loss):
            events.put(EpochProgress(epoch=epoch, loss=loss, val_loss=val_loss, total_epochs=epochs))

        def run():
            try:
                outcome["result"] = self.train(
                    prices, model, epochs=epochs, batch_size=batch_size,
                    on_epoch_end=on_epoch_end, cancel_event=cancel_event,
                )
            except Exception as e:
                outcome["error"] = e
            finally:
                events.put(_DONE)

        worker = threading.Thread(target=run, name="price-forecast-training", daemon=True)
        worker.start()

        while True:
            event = events.get()
            if event is _DONE:
                break
            yield event

        worker.join()
        if "error" in outcome:
            raise outcome["error"]
        return outcome["result"]
