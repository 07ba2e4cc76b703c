"""
Typed views over the heat-map and offset volumes produced by the network.

The network returns flat buffers. Two memory layouts are supported:

- 'nchw': channel-first, as returned by ONNX runtimes.
    heat map  (1, J*R, R, R)   channel = j*R + z, H = y, W = x
    offsets   (1, 3*J*R, R, R) channel = (axis*J + j)*R + z
- 'nhwc': channel-last flat buffer.
    heat map  index = ((y*R + x)*J + j)*R + z
    offsets   index = ((y*R + x)*3*J + axis*J + j)*R + z

Both are exposed through one canonical shape so index arithmetic lives here
only:
    HeatmapVolume.scores   (J, Rz, Ry, Rx)
    OffsetVolume.offsets   (J, 3, Rz, Ry, Rx)
"""

from typing import Tuple

import numpy as np


def _check_size(data: np.ndarray, expected: int, what: str, grid_size: int, num_joints: int) -> None:
    if data.size != expected:
        raise ValueError(
            f"{what} volume has {data.size} values, expected {expected} "
            f"(grid_size={grid_size}, num_joints={num_joints}, shape={data.shape})"
        )


class HeatmapVolume:
    """Per-joint 3D grid of confidence scores."""

    def __init__(self, data, grid_size: int, num_joints: int, layout: str = "nchw"):
        data = np.asarray(data)
        R, J = grid_size, num_joints
        _check_size(data, J * R ** 3, "Heat map", R, J)

        if layout == "nchw":
            scores = data.reshape(J, R, R, R)
        elif layout == "nhwc":
            scores = data.reshape(R, R, J, R).transpose(2, 3, 0, 1)
        else:
            raise ValueError(f"Unknown volume layout: {layout}")

        self.grid_size = R
        self.num_joints = J
        self.scores = scores

    def joint_scores(self, joint: int) -> np.ndarray:
        """Scores of one joint, shape (Rz, Ry, Rx)."""
        return self.scores[joint]

    def value(self, joint: int, x: int, y: int, z: int) -> float:
        return float(self.scores[joint, z, y, x])


class OffsetVolume:
    """Per-joint, per-axis sub-voxel corrections."""

    def __init__(self, data, grid_size: int, num_joints: int, layout: str = "nchw"):
        data = np.asarray(data)
        R, J = grid_size, num_joints
        _check_size(data, 3 * J * R ** 3, "Offset", R, J)

        if layout == "nchw":
            offsets = data.reshape(3, J, R, R, R).transpose(1, 0, 2, 3, 4)
        elif layout == "nhwc":
            offsets = data.reshape(R, R, 3, J, R).transpose(3, 2, 4, 0, 1)
        else:
            raise ValueError(f"Unknown volume layout: {layout}")

        self.grid_size = R
        self.num_joints = J
        self.offsets = offsets

    def offset(self, joint: int, x: int, y: int, z: int) -> np.ndarray:
        """(dx, dy, dz) at one voxel, in voxel units."""
        return np.asarray(self.offsets[joint, :, z, y, x], dtype=np.float64)


def load_volumes(
    heatmap,
    offsets,
    grid_size: int,
    num_joints: int,
    layout: str = "nchw",
) -> Tuple[HeatmapVolume, OffsetVolume]:
    """Wrap both network outputs, failing fast on any shape mismatch."""
    return (
        HeatmapVolume(heatmap, grid_size, num_joints, layout),
        OffsetVolume(offsets, grid_size, num_joints, layout),
    )
