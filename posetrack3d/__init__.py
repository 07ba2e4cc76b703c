# posetrack3d - Volumetric 3D pose decoding, smoothing and track caching
#
# Pipeline stages:
#   1. Grid Decoding (heat-map peak + sub-voxel offset per joint)
#   2. Kinematic Derivation (hip, neck, head, spine)
#   3. Temporal Filtering (per-axis Kalman + low-pass cascade)
#   4. Track Cache (record to .cache file, or denoise and replay it)

from .constants import *
from .config import PipelineConfig, load_config
from .grid_decoder import decode_joints
from .kinematics import derive_joints
from .temporal_filter import SkeletonState, JointPoint, apply_temporal_filter
from .track_cache import JointSnapshot, Track, PlaybackCursor, load_track, save_track
from .pipeline import RecordingPipeline, PlaybackPipeline, open_pipeline

__version__ = "1.0.0"
__all__ = [
    "PipelineConfig",
    "load_config",
    "decode_joints",
    "derive_joints",
    "SkeletonState",
    "JointPoint",
    "apply_temporal_filter",
    "JointSnapshot",
    "Track",
    "PlaybackCursor",
    "load_track",
    "save_track",
    "RecordingPipeline",
    "PlaybackPipeline",
    "open_pipeline",
]
