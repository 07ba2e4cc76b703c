"""
Video frame source and its elapsed-time clock.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Tuple

import cv2
import numpy as np


@dataclass
class VideoInfo:
    path: str
    fps: float
    frame_count: int
    width: int
    height: int


def get_video_info(video_path: str) -> VideoInfo:
    if not Path(video_path).exists():
        raise FileNotFoundError(f"Video not found: {video_path}")

    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        raise RuntimeError(f"Failed to open video: {video_path}")

    fps = float(cap.get(cv2.CAP_PROP_FPS)) or 0.0
    frame_count = int(cap.get(cv2.CAP_PROP_FRAME_COUNT)) or 0
    width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or 0
    height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or 0
    cap.release()
    return VideoInfo(str(video_path), fps, frame_count, width, height)


def iter_video_frames(
    video_path: str,
    max_frames: Optional[int] = None,
) -> Iterator[Tuple[int, float, np.ndarray]]:
    """
    Yields (frame_idx, elapsed_sec, frame_bgr).

    Elapsed time is frame_idx / fps, so it is non-decreasing and starts at 0.
    """
    info = get_video_info(video_path)
    if info.fps <= 0:
        raise RuntimeError(f"Could not read FPS from video: {video_path}")

    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        raise RuntimeError(f"Failed to open video: {video_path}")

    frame_idx = 0
    try:
        while max_frames is None or frame_idx < max_frames:
            ok, frame = cap.read()
            if not ok:
                break
            yield frame_idx, frame_idx / info.fps, frame
            frame_idx += 1
    finally:
        cap.release()
