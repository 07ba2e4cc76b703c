"""
Configuration scalars for decoding, filtering and track caching.
"""

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict

from .constants import (
    DEFAULT_GRID_SIZE,
    DEFAULT_IMAGE_SIZE,
    DEFAULT_DEPTH_BIAS,
    DEFAULT_KALMAN_Q,
    DEFAULT_KALMAN_R,
    DEFAULT_INITIAL_COVARIANCE,
    DEFAULT_LOW_PASS_ALPHA,
    DEFAULT_HISTORY_LENGTH,
    DEFAULT_FRAME_GAP_S,
    DEFAULT_DENOISE_WINDOW_S,
    NETWORK_JOINT_COUNT,
    TRACK_FILE_SUFFIX,
)

VOLUME_LAYOUTS = ("nchw", "nhwc")


@dataclass
class PipelineConfig:
    """
    Settings shared by the decoder, the temporal filter and the track cache.

    Attributes:
        grid_size: Voxels per cube edge (R).
        num_joints: Joints emitted by the network (J).
        image_size: Network input edge in pixels (S).
        depth_bias: Voxel index of the depth origin.
        flip_y: Flip image rows so that +Y points up.
        volume_layout: 'nchw' (ONNX output) or 'nhwc' (channel-last flat).
        kalman_q: Process noise.
        kalman_r: Measurement noise.
        initial_covariance: Starting error covariance of every axis.
        use_low_pass: Run the low-pass cascade after the Kalman filter.
        low_pass_alpha: Weight kept by each cascade stage.
        history_length: Number of cascade stages.
        frame_gap: Minimum seconds between frames kept by the frame buffer.
        denoise_window: Half width in seconds of the playback denoise window.
        cache_suffix: Suffix appended to a source's base name for its track.
    """
    grid_size: int = DEFAULT_GRID_SIZE
    num_joints: int = NETWORK_JOINT_COUNT
    image_size: int = DEFAULT_IMAGE_SIZE
    depth_bias: float = DEFAULT_DEPTH_BIAS
    flip_y: bool = True
    volume_layout: str = "nchw"
    kalman_q: float = DEFAULT_KALMAN_Q
    kalman_r: float = DEFAULT_KALMAN_R
    initial_covariance: float = DEFAULT_INITIAL_COVARIANCE
    use_low_pass: bool = True
    low_pass_alpha: float = DEFAULT_LOW_PASS_ALPHA
    history_length: int = DEFAULT_HISTORY_LENGTH
    frame_gap: float = DEFAULT_FRAME_GAP_S
    denoise_window: float = DEFAULT_DENOISE_WINDOW_S
    cache_suffix: str = TRACK_FILE_SUFFIX

    @property
    def voxel_scale(self) -> float:
        """Pixels per voxel (S / R)."""
        return self.image_size / float(self.grid_size)

    def validate(self) -> "PipelineConfig":
        if self.grid_size <= 0:
            raise ValueError(f"grid_size must be positive, got {self.grid_size}")
        if not 0 < self.num_joints <= NETWORK_JOINT_COUNT:
            raise ValueError(
                f"num_joints must be in 1..{NETWORK_JOINT_COUNT}, got {self.num_joints}"
            )
        if self.image_size <= 0:
            raise ValueError(f"image_size must be positive, got {self.image_size}")
        if self.volume_layout not in VOLUME_LAYOUTS:
            raise ValueError(
                f"Unknown volume layout: {self.volume_layout} (expected one of {VOLUME_LAYOUTS})"
            )
        if self.kalman_q < 0 or self.kalman_r <= 0:
            raise ValueError(
                f"Kalman noise must satisfy Q >= 0 and R > 0, got Q={self.kalman_q}, R={self.kalman_r}"
            )
        if self.initial_covariance <= 0:
            raise ValueError(
                f"initial_covariance must be positive, got {self.initial_covariance}"
            )
        if not 0.0 <= self.low_pass_alpha <= 1.0:
            raise ValueError(f"low_pass_alpha must be in [0, 1], got {self.low_pass_alpha}")
        if self.history_length < 1:
            raise ValueError(f"history_length must be >= 1, got {self.history_length}")
        if self.frame_gap < 0:
            raise ValueError(f"frame_gap must be >= 0, got {self.frame_gap}")
        if self.denoise_window <= 0:
            raise ValueError(f"denoise_window must be positive, got {self.denoise_window}")
        if len(self.cache_suffix) < 2 or not self.cache_suffix.startswith("."):
            raise ValueError(
                f"cache_suffix must be a file suffix such as '.cache', got {self.cache_suffix!r}"
            )
        return self

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "PipelineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {unknown}")
        return cls(**values).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: str) -> PipelineConfig:
    """
    Load a PipelineConfig from a JSON file.

    The file holds a flat object whose keys are PipelineConfig field names.
    Missing keys keep their defaults.

    Args:
        path: Path to the JSON file.

    Returns:
        Validated PipelineConfig.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    with p.open("r", encoding="utf-8") as f:
        values = json.load(f)

    if not isinstance(values, dict):
        raise ValueError(f"Expected a JSON object in {p}, got {type(values).__name__}")

    return PipelineConfig.from_dict(values)
