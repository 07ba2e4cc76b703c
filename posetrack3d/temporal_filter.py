"""
Live joint state and its temporal smoothing.

Each joint carries a scalar Kalman filter per axis, followed by an optional
cascade of single-pole low-pass stages over its recent filtered positions.
All per-joint state lives in one SkeletonState owned by the pipeline and is
passed by reference into the update functions below.
"""

from dataclasses import dataclass, field

import numpy as np

from .config import PipelineConfig
from .constants import JOINT_COUNT


@dataclass
class JointPoint:
    """Copy of a single joint's live state."""
    raw_position: np.ndarray       # (3,) current-frame decoded coordinate
    filtered_position: np.ndarray  # (3,) after Kalman + low-pass
    confidence: float
    estimate: np.ndarray           # (3,)
    error_covariance: np.ndarray   # (3,)
    gain: np.ndarray               # (3,)
    filter_history: np.ndarray     # (N, 3)


@dataclass
class SkeletonState:
    """
    Live state of every joint, stored as arrays indexed by joint.

    Shapes use J = number of joint slots (28) and N = low-pass history length.
    """
    raw: np.ndarray          # (J, 3)
    filtered: np.ndarray     # (J, 3)
    confidence: np.ndarray   # (J,)
    estimate: np.ndarray     # (J, 3)
    covariance: np.ndarray   # (J, 3)
    gain: np.ndarray         # (J, 3)
    history: np.ndarray      # (J, N, 3)
    frames: int = field(default=0)

    @classmethod
    def create(
        cls,
        num_joints: int = JOINT_COUNT,
        history_length: int = 6,
        initial_covariance: float = 1.0,
    ) -> "SkeletonState":
        return cls(
            raw=np.zeros((num_joints, 3), dtype=np.float64),
            filtered=np.zeros((num_joints, 3), dtype=np.float64),
            confidence=np.zeros(num_joints, dtype=np.float64),
            estimate=np.zeros((num_joints, 3), dtype=np.float64),
            covariance=np.full((num_joints, 3), float(initial_covariance), dtype=np.float64),
            gain=np.zeros((num_joints, 3), dtype=np.float64),
            history=np.zeros((num_joints, history_length, 3), dtype=np.float64),
        )

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "SkeletonState":
        return cls.create(
            num_joints=JOINT_COUNT,
            history_length=config.history_length,
            initial_covariance=config.initial_covariance,
        )

    @property
    def num_joints(self) -> int:
        return self.raw.shape[0]

    def joint(self, index: int) -> JointPoint:
        return JointPoint(
            raw_position=self.raw[index].copy(),
            filtered_position=self.filtered[index].copy(),
            confidence=float(self.confidence[index]),
            estimate=self.estimate[index].copy(),
            error_covariance=self.covariance[index].copy(),
            gain=self.gain[index].copy(),
            filter_history=self.history[index].copy(),
        )


def kalman_update(state: SkeletonState, q: float, r: float) -> np.ndarray:
    """
    One scalar Kalman step per joint and axis.

    gain  = (P + Q) / (P + Q + R)
    P'    = R (P + Q) / (R + P + Q)
    out   = estimate + (raw - estimate) * gain
    estimate' = out

    Gain and covariance are computed from the pre-update covariance.

    Returns:
        Filtered positions (J, 3), also stored in state.filtered.
    """
    predicted = state.covariance + q
    gain = predicted / (predicted + r)
    state.covariance = r * predicted / (r + predicted)
    state.gain = gain

    filtered = state.estimate + (state.raw - state.estimate) * gain
    state.estimate = filtered.copy()
    state.filtered = filtered
    return filtered


def low_pass_update(state: SkeletonState, alpha: float) -> np.ndarray:
    """
    Push the filtered positions through the low-pass cascade.

    history[0] = filtered
    history[i] = history[i] * alpha + history[i-1] * (1 - alpha),  i = 1..N-1
    filtered   = history[N-1]

    With alpha = 0 every stage copies its predecessor, so the new position
    passes through unchanged. With alpha = 1 every stage keeps its value and
    the output holds the last stage.
    """
    history = state.history
    history[:, 0] = state.filtered
    for i in range(1, history.shape[1]):
        history[:, i] = history[:, i] * alpha + history[:, i - 1] * (1.0 - alpha)
    state.filtered = history[:, -1].copy()
    return state.filtered


def apply_temporal_filter(state: SkeletonState, config: PipelineConfig) -> np.ndarray:
    """Kalman step, then the low-pass cascade if enabled."""
    kalman_update(state, config.kalman_q, config.kalman_r)
    if config.use_low_pass:
        low_pass_update(state, config.low_pass_alpha)
    state.frames += 1
    return state.filtered


def steady_state_covariance(q: float, r: float) -> float:
    """
    Fixed point of P = R (P + Q) / (R + P + Q).

    Rearranged: P^2 + Q P - R Q = 0, positive root.
    """
    return (-q + float(np.sqrt(q * q + 4.0 * r * q))) / 2.0
