"""
Inference adapter: runs the volumetric pose network on buffered frames.

The network takes the three most recent frames (newest first) and returns,
among its outputs, the offset volume and the heat-map volume. Inference runs
on a single background worker; a request made while one is still in flight
is dropped rather than queued.
"""

from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from .constants import (
    DEFAULT_IMAGE_SIZE,
    MODEL_INPUT_NAMES,
    MODEL_OFFSET_OUTPUT,
    MODEL_HEATMAP_OUTPUT,
)


def preprocess_frame(frame_bgr: np.ndarray, image_size: int = DEFAULT_IMAGE_SIZE) -> np.ndarray:
    """
    Convert a BGR frame to a network input tensor.

    Args:
        frame_bgr: Image of shape (H, W, 3), uint8.
        image_size: Square network input edge in pixels.

    Returns:
        Float32 tensor of shape (1, 3, image_size, image_size), values in [0, 1].
    """
    if frame_bgr.ndim != 3 or frame_bgr.shape[2] != 3:
        raise ValueError(f"Expected a (H, W, 3) image, got shape {frame_bgr.shape}")

    resized = cv2.resize(frame_bgr, (image_size, image_size), interpolation=cv2.INTER_LINEAR)
    rgb = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
    tensor = rgb.astype(np.float32) / 255.0
    return tensor.transpose(2, 0, 1)[np.newaxis, ...]


class OnnxPoseEstimator:
    """Volumetric 3D pose network executed with onnxruntime."""

    def __init__(
        self,
        model_path: str,
        image_size: int = DEFAULT_IMAGE_SIZE,
        device: str = "cpu",
        input_names: Sequence[str] = MODEL_INPUT_NAMES,
        show_progress: bool = True,
    ):
        try:
            import onnxruntime as ort
        except ImportError:
            raise ImportError(
                "onnxruntime not installed. Install with:\n"
                "pip install onnxruntime  (or onnxruntime-gpu for CUDA)"
            )

        model_path = Path(model_path)
        if not model_path.exists():
            raise FileNotFoundError(f"Model not found: {model_path}")

        if "cuda" in device.lower():
            providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        else:
            providers = ["CPUExecutionProvider"]

        if show_progress:
            print("Loading pose model...")
            print(f"  Model: {model_path.name}")
            print(f"  Providers: {providers}")

        self.session = ort.InferenceSession(str(model_path), providers=providers)
        self.image_size = image_size
        self.input_names = list(input_names)
        self.output_names = [o.name for o in self.session.get_outputs()]

        if len(self.output_names) <= max(MODEL_OFFSET_OUTPUT, MODEL_HEATMAP_OUTPUT):
            raise RuntimeError(
                f"Model has {len(self.output_names)} outputs, expected at least "
                f"{max(MODEL_OFFSET_OUTPUT, MODEL_HEATMAP_OUTPUT) + 1}"
            )

    def __call__(self, frames: Sequence[np.ndarray]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Run the network.

        Args:
            frames: Three BGR frames, newest first.

        Returns:
            Tuple of (heatmap, offsets) as returned by the network.
        """
        if len(frames) != len(self.input_names):
            raise ValueError(f"Expected {len(self.input_names)} frames, got {len(frames)}")

        feeds = {
            name: preprocess_frame(frame, self.image_size)
            for name, frame in zip(self.input_names, frames)
        }
        outputs = self.session.run(
            [self.output_names[MODEL_OFFSET_OUTPUT], self.output_names[MODEL_HEATMAP_OUTPUT]],
            feeds,
        )
        offsets, heatmap = outputs
        return heatmap, offsets


class AsyncInference:
    """
    Runs an estimator on one background worker without queueing.

    The estimator is any callable mapping a frame sequence to
    (heatmap, offsets).
    """

    def __init__(self, estimator):
        self.estimator = estimator
        self._executor = ThreadPoolExecutor(max_workers=1)
        self._pending: Optional[Future] = None
        self.submitted = 0
        self.dropped = 0

    @property
    def busy(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def submit(self, frames: Sequence[np.ndarray]) -> bool:
        """
        Start inference unless one is already in flight.

        Returns:
            False if the request was dropped.
        """
        if self.busy:
            self.dropped += 1
            return False
        self._pending = self._executor.submit(self.estimator, tuple(frames))
        self.submitted += 1
        return True

    def poll(self) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Collect a finished result, or None if nothing is ready."""
        if self._pending is None or not self._pending.done():
            return None
        return self.wait()

    def wait(self, timeout: Optional[float] = None) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Block until the in-flight request completes and return its result."""
        if self._pending is None:
            return None
        future = self._pending
        try:
            return future.result(timeout=timeout)
        finally:
            if future.done():
                self._pending = None

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "AsyncInference":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
