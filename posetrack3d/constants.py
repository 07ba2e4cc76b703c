"""
Skeleton topology and default constants for volumetric 3D pose decoding.

The network emits one heat-map cube and one offset cube per joint for the
first 24 joints. Four more joints (hip, head, neck, spine) are derived
kinematically from the decoded ones, giving 28 joint slots in total.

Coordinate System:
- X: Right (positive toward image right), centered on the image
- Y: Up (positive toward image top), centered on the image
- Z: Depth, relative to the middle of the volume
- Units: Input image pixels
"""

# =============================================================================
# Network Joints (indices 0-23)
# =============================================================================

JOINT_R_SHOULDER = 0
JOINT_R_FOREARM = 1
JOINT_R_HAND = 2
JOINT_R_THUMB = 3
JOINT_R_MIDDLE = 4
JOINT_L_SHOULDER = 5
JOINT_L_FOREARM = 6
JOINT_L_HAND = 7
JOINT_L_THUMB = 8
JOINT_L_MIDDLE = 9
JOINT_L_EAR = 10
JOINT_L_EYE = 11
JOINT_R_EAR = 12
JOINT_R_EYE = 13
JOINT_NOSE = 14
JOINT_R_THIGH = 15
JOINT_R_SHIN = 16
JOINT_R_FOOT = 17
JOINT_R_TOE = 18
JOINT_L_THIGH = 19
JOINT_L_SHIN = 20
JOINT_L_FOOT = 21
JOINT_L_TOE = 22
JOINT_ABDOMEN_UPPER = 23

# =============================================================================
# Derived Joints (indices 24-27)
# =============================================================================

JOINT_HIP = 24
JOINT_HEAD = 25
JOINT_NECK = 26
JOINT_SPINE = 27

DERIVED_JOINTS = [JOINT_HIP, JOINT_HEAD, JOINT_NECK, JOINT_SPINE]

# =============================================================================
# Joint Counts
# =============================================================================

NETWORK_JOINT_COUNT = 24
DERIVED_JOINT_COUNT = 4
JOINT_COUNT = NETWORK_JOINT_COUNT + DERIVED_JOINT_COUNT

# =============================================================================
# Joint Names (for JSON output and debugging)
# =============================================================================

JOINT_NAMES = {
    # Right arm
    0: "r_shoulder",
    1: "r_forearm",
    2: "r_hand",
    3: "r_thumb",
    4: "r_middle",
    # Left arm
    5: "l_shoulder",
    6: "l_forearm",
    7: "l_hand",
    8: "l_thumb",
    9: "l_middle",
    # Face
    10: "l_ear",
    11: "l_eye",
    12: "r_ear",
    13: "r_eye",
    14: "nose",
    # Right leg
    15: "r_thigh",
    16: "r_shin",
    17: "r_foot",
    18: "r_toe",
    # Left leg
    19: "l_thigh",
    20: "l_shin",
    21: "l_foot",
    22: "l_toe",
    # Torso
    23: "abdomen_upper",
    # Derived
    24: "hip",
    25: "head",
    26: "neck",
    27: "spine",
}

# =============================================================================
# Skeleton Connections (for consumers that draw or drive a rig)
# =============================================================================

SKELETON_CONNECTIONS = [
    # Head
    (JOINT_NECK, JOINT_HEAD),
    (JOINT_HEAD, JOINT_NOSE),
    (JOINT_NOSE, JOINT_L_EYE),
    (JOINT_NOSE, JOINT_R_EYE),
    (JOINT_L_EYE, JOINT_L_EAR),
    (JOINT_R_EYE, JOINT_R_EAR),
    # Torso
    (JOINT_HIP, JOINT_SPINE),
    (JOINT_SPINE, JOINT_NECK),
    (JOINT_NECK, JOINT_L_SHOULDER),
    (JOINT_NECK, JOINT_R_SHOULDER),
    (JOINT_HIP, JOINT_L_THIGH),
    (JOINT_HIP, JOINT_R_THIGH),
    # Right arm
    (JOINT_R_SHOULDER, JOINT_R_FOREARM),
    (JOINT_R_FOREARM, JOINT_R_HAND),
    (JOINT_R_HAND, JOINT_R_THUMB),
    (JOINT_R_HAND, JOINT_R_MIDDLE),
    # Left arm
    (JOINT_L_SHOULDER, JOINT_L_FOREARM),
    (JOINT_L_FOREARM, JOINT_L_HAND),
    (JOINT_L_HAND, JOINT_L_THUMB),
    (JOINT_L_HAND, JOINT_L_MIDDLE),
    # Right leg
    (JOINT_R_THIGH, JOINT_R_SHIN),
    (JOINT_R_SHIN, JOINT_R_FOOT),
    (JOINT_R_FOOT, JOINT_R_TOE),
    # Left leg
    (JOINT_L_THIGH, JOINT_L_SHIN),
    (JOINT_L_SHIN, JOINT_L_FOOT),
    (JOINT_L_FOOT, JOINT_L_TOE),
]

# =============================================================================
# Decoder Defaults
# =============================================================================

DEFAULT_GRID_SIZE = 28         # Voxels per cube edge
DEFAULT_IMAGE_SIZE = 448       # Network input edge in pixels
DEFAULT_DEPTH_BIAS = 14        # Voxel index of the depth origin (half of 28)

# Model input names, newest frame first
MODEL_INPUT_NAMES = ("input.1", "input.4", "input.7")
MODEL_OFFSET_OUTPUT = 2
MODEL_HEATMAP_OUTPUT = 3

# =============================================================================
# Filter Defaults
# =============================================================================

DEFAULT_KALMAN_Q = 0.001
DEFAULT_KALMAN_R = 0.0015
DEFAULT_INITIAL_COVARIANCE = 1.0
DEFAULT_LOW_PASS_ALPHA = 0.1
DEFAULT_HISTORY_LENGTH = 6

# =============================================================================
# Frame Buffer and Track Cache Defaults
# =============================================================================

DEFAULT_FRAME_GAP_S = 0.05     # Minimum spacing between buffered frames
DEFAULT_DENOISE_WINDOW_S = 0.1
TRACK_FILE_SUFFIX = ".cache"
JOINT_SEPARATOR = "\t"
FIELD_SEPARATOR = ","
FIELDS_PER_JOINT = 5           # x, y, z, confidence, timestamp
