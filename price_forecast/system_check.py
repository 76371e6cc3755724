import logging
import time
from dataclasses import dataclass, asdict
from typing import Optional

import torch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendInfo:
    supported: bool
    device: str
    description: str

    def to_dict(self) -> dict:
        return asdict(self)


def check_accelerator() -> BackendInfo:
    """Detect whether accelerated numeric execution is available"""
    try:
        if torch.cuda.is_available():
            name = torch.cuda.get_device_name(0)
            return BackendInfo(supported=True, device="cuda", description=f"Using GPU with CUDA: {name}")

        mps = getattr(torch.backends, "mps", None)
        if mps is not None and mps.is_available():
            return BackendInfo(supported=True, device="mps", description="Using GPU with Apple MPS")

        return BackendInfo(
            supported=False,
            device="cpu",
            description="Using CPU backend (no GPU available)"
        )
    except Exception as e:
        logger.warning(f"Accelerator detection failed: {e}")
        return BackendInfo(supported=False, device="cpu", description=f"Using CPU backend ({e})")


def benchmark_backend(backend: Optional[BackendInfo] = None, size: int = 1000) -> dict:
    """Time a square matmul on the detected device"""
    backend = backend or check_accelerator()
    try:
        device = torch.device(backend.device)
        start = time.perf_counter()

        test_tensor = torch.ones(size, size, device=device)
        result = torch.matmul(test_tensor, test_tensor)
        result.cpu()

        elapsed_ms = (time.perf_counter() - start) * 1000
        del test_tensor, result

        return {"execution_time_ms": elapsed_ms, "success": True}
    except Exception as e:
        logger.warning(f"Backend benchmark failed: {e}")
        return {"execution_time_ms": 0.0, "success": False, "error": str(e)}


def tune_hyperparameters(hyperparams: dict, backend: BackendInfo) -> dict:
    """Larger batches on accelerators. The training algorithm is unchanged."""
    tuned = dict(hyperparams)
    if backend.supported:
        tuned["BATCH_SIZE"] = max(tuned.get("BATCH_SIZE", 32), 64)
    return tuned
