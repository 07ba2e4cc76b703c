import numpy as np
import pytest

from posetrack3d.config import PipelineConfig


@pytest.fixture
def small_config():
    """All 24 network joints on a 4-voxel grid over an 8-pixel image."""
    return PipelineConfig(grid_size=4, num_joints=24, image_size=8, depth_bias=2)


def canonical_to_layout(scores: np.ndarray, offsets: np.ndarray, layout: str):
    """
    Convert canonical volumes to a network buffer layout.

    scores:  (J, Rz, Ry, Rx)
    offsets: (J, 3, Rz, Ry, Rx)
    """
    J, R = scores.shape[0], scores.shape[1]
    if layout == "nchw":
        heatmap = scores.reshape(1, J * R, R, R)
        offset_buf = offsets.transpose(1, 0, 2, 3, 4).reshape(1, 3 * J * R, R, R)
    else:
        heatmap = scores.transpose(2, 3, 0, 1).ravel()
        offset_buf = offsets.transpose(3, 4, 1, 0, 2).ravel()
    return np.ascontiguousarray(heatmap), np.ascontiguousarray(offset_buf)


@pytest.fixture
def make_volumes():
    """
    Factory for synthetic volumes with one peak per joint.

    peaks maps joint -> (x, y, z, score, (dx, dy, dz)).
    """
    def factory(grid_size, num_joints, peaks=None, layout="nchw", background=0.01):
        R, J = grid_size, num_joints
        scores = np.full((J, R, R, R), background, dtype=np.float32)
        offsets = np.zeros((J, 3, R, R, R), dtype=np.float32)
        for j, (x, y, z, score, delta) in (peaks or {}).items():
            scores[j, z, y, x] = score
            offsets[j, :, z, y, x] = delta
        return canonical_to_layout(scores, offsets, layout)

    return factory
