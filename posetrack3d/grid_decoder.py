"""
Grid decoding: heat-map/offset volumes to continuous joint coordinates.

For every joint the voxel with the highest heat-map score is selected by an
exhaustive scan (z outer, y middle, x inner; the first maximum wins). The
sub-voxel offset stored at that voxel refines the voxel center into a
continuous coordinate in input-image pixels.
"""

from typing import Tuple

import numpy as np

from .config import PipelineConfig
from .volumes import HeatmapVolume, OffsetVolume, load_volumes


def find_peak(scores: np.ndarray) -> Tuple[int, int, int, float]:
    """
    Locate the maximal voxel of one joint's score cube.

    The running best starts at 0 and is only replaced by strictly greater
    values, so a cube without positive scores yields voxel (0, 0, 0) with
    confidence 0. NaN scores never win.

    Args:
        scores: Score cube of shape (Rz, Ry, Rx).

    Returns:
        Tuple of (x, y, z, confidence).
    """
    flat = scores.ravel()
    if np.isnan(flat).any():
        flat = np.where(np.isnan(flat), -np.inf, flat)

    # argmax returns the first occurrence in C order, i.e. z outer, x inner
    idx = int(np.argmax(flat))
    best = float(flat[idx])
    if not best > 0.0:
        return 0, 0, 0, 0.0

    z, y, x = np.unravel_index(idx, scores.shape)
    return int(x), int(y), int(z), best


def voxel_to_position(
    index: Tuple[int, int, int],
    offset: np.ndarray,
    config: PipelineConfig,
) -> np.ndarray:
    """
    Convert a voxel index plus its sub-voxel offset to image coordinates.

    x = (dx + 0.5 + ix) * S/R - S/2
    y = S/2 - (dy + 0.5 + iy) * S/R      (or the unflipped form if flip_y is off)
    z = (dz + 0.5 + iz - depth_bias) * S/R
    """
    ix, iy, iz = index
    scale = config.voxel_scale
    half = config.image_size / 2.0

    x = (offset[0] + 0.5 + ix) * scale - half
    y = (offset[1] + 0.5 + iy) * scale - half
    z = (offset[2] + 0.5 + iz - config.depth_bias) * scale
    if config.flip_y:
        y = -y

    return np.array([x, y, z], dtype=np.float64)


def decode_volumes(
    heatmap: HeatmapVolume,
    offsets: OffsetVolume,
    config: PipelineConfig,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Decode every network joint from already wrapped volumes.

    Returns:
        Tuple of (positions, confidences, indices)
        - positions: (J, 3) float64 image coordinates
        - confidences: (J,) max heat-map score per joint
        - indices: (J, 3) int voxel indices (x, y, z), each in [0, R)
    """
    J = heatmap.num_joints
    positions = np.zeros((J, 3), dtype=np.float64)
    confidences = np.zeros(J, dtype=np.float64)
    indices = np.zeros((J, 3), dtype=np.int64)

    for j in range(J):
        x, y, z, score = find_peak(heatmap.joint_scores(j))
        indices[j] = (x, y, z)
        confidences[j] = score
        positions[j] = voxel_to_position((x, y, z), offsets.offset(j, x, y, z), config)

    return positions, confidences, indices


def decode_joints(
    heatmap,
    offsets,
    config: PipelineConfig,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Decode raw network outputs into joint positions and confidences.

    Args:
        heatmap: Heat-map buffer with J * R^3 values.
        offsets: Offset buffer with J * R^3 * 3 values.
        config: Pipeline configuration (R, J, S, layout, depth bias).

    Returns:
        Same as decode_volumes().
    """
    heatmap_volume, offset_volume = load_volumes(
        heatmap,
        offsets,
        config.grid_size,
        config.num_joints,
        config.volume_layout,
    )
    return decode_volumes(heatmap_volume, offset_volume, config)
