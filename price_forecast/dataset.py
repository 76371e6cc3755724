import torch
from torch.utils.data import Dataset
import numpy as np
import logging

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 7


def build_windows(normalized_values, window_size: int = DEFAULT_WINDOW_SIZE):
    """
    Slide a window of ``window_size`` over the series with stride 1

    Args:
        normalized_values: Flat sequence of normalized prices
        window_size: Number of past values in each input window

    Returns:
        tuple: (inputs, targets)
               inputs: array (n - window_size, window_size)
               targets: array (n - window_size,)
               Both are empty when the series is not longer than the window.
    """
    if window_size < 1:
        raise ValueError(f"window_size must be positive, got {window_size}")

    values = np.asarray(normalized_values, dtype=np.float32).flatten()

    X, y = [], []
    for i in range(len(values) - window_size):
        X.append(values[i:i + window_size])
        y.append(values[i + window_size])

    if not X:
        logger.warning(
            f"Series of length {len(values)} is too short for window size {window_size}"
        )
        return np.empty((0, window_size), dtype=np.float32), np.empty((0,), dtype=np.float32)

    return np.array(X, dtype=np.float32), np.array(y, dtype=np.float32)


def split_validation(inputs, targets, validation_split: float = 0.1):
    """
    Hold out the tail of the examples, in training order, for validation

    The first ``floor(n * (1 - validation_split))`` examples are used for
    training and the remainder for validation.
    """
    n_samples = len(inputs)
    train_end = int(np.floor(n_samples * (1 - validation_split)))
    return (inputs[:train_end], targets[:train_end]), (inputs[train_end:], targets[train_end:])


class WindowDataset(Dataset):
    """
    (window, target) pairs as tensors shaped for the LSTM:
    inputs (window_size, 1), target scalar
    """

    def __init__(self, inputs, targets):
        self.X = np.asarray(inputs, dtype=np.float32)
        self.y = np.asarray(targets, dtype=np.float32).flatten()

        if len(self.X) != len(self.y):
            raise ValueError(f"Inputs ({len(self.X)}) and targets ({len(self.y)}) differ in length")

    def __len__(self):
        return len(self.X)

    def __getitem__(self, idx):
        window = torch.tensor(self.X[idx]).unsqueeze(-1)
        return window, torch.tensor(self.y[idx])
