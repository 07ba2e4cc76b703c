"""
Kinematic derivation of joints the network does not emit reliably.

Hip, neck, head and spine are computed from already decoded joints and written
into their own slots, so downstream stages treat them like any other joint.
"""

import numpy as np

from .constants import (
    JOINT_ABDOMEN_UPPER,
    JOINT_L_THIGH,
    JOINT_R_THIGH,
    JOINT_L_SHOULDER,
    JOINT_R_SHOULDER,
    JOINT_L_EAR,
    JOINT_R_EAR,
    JOINT_NOSE,
    JOINT_HIP,
    JOINT_NECK,
    JOINT_HEAD,
    JOINT_SPINE,
)

# Vectors shorter than this normalize to zero
NORMALIZE_EPSILON = 1e-5


def midpoint(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return (a + b) / 2.0


def normalize(v: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(v))
    if norm > NORMALIZE_EPSILON:
        return v / norm
    return np.zeros_like(v)


def compute_hip(positions: np.ndarray) -> np.ndarray:
    thigh_center = midpoint(positions[JOINT_R_THIGH], positions[JOINT_L_THIGH])
    return midpoint(positions[JOINT_ABDOMEN_UPPER], thigh_center)


def compute_neck(positions: np.ndarray) -> np.ndarray:
    return midpoint(positions[JOINT_R_SHOULDER], positions[JOINT_L_SHOULDER])


def compute_head(positions: np.ndarray, neck: np.ndarray) -> np.ndarray:
    """
    Point on the neck -> ear-midpoint ray closest to the nose.

    Used as the head anchor instead of the noisy nose/ear estimates.
    """
    ear_center = midpoint(positions[JOINT_R_EAR], positions[JOINT_L_EAR])
    direction = normalize(ear_center - neck)
    to_nose = positions[JOINT_NOSE] - neck
    return neck + direction * float(np.dot(direction, to_nose))


def derive_joints(positions: np.ndarray) -> np.ndarray:
    """
    Fill the derived joint slots in place.

    Args:
        positions: Raw joint positions of shape (28, 3).

    Returns:
        The same array, for chaining.
    """
    positions[JOINT_HIP] = compute_hip(positions)
    neck = compute_neck(positions)
    positions[JOINT_NECK] = neck
    positions[JOINT_HEAD] = compute_head(positions, neck)
    positions[JOINT_SPINE] = positions[JOINT_ABDOMEN_UPPER]
    return positions
