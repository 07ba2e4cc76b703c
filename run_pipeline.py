#!/usr/bin/env python3
"""
posetrack3d - Video to smoothed 3D pose track.

Pipeline stages:
    1. Mode selection - record if <video>.cache does not exist, else playback
    2. Record: inference -> grid decoding -> derived joints -> filtering -> track
       Playback: load + denoise track -> replay against the video clock
    3. Pose export - per-frame joint positions as JSON

Usage:
    python run_pipeline.py input/video.mp4 --model models/pose3d.onnx
    python run_pipeline.py input/video.mp4 --config config.json --realtime
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List

import numpy as np
from tqdm import tqdm

from posetrack3d.config import PipelineConfig, load_config
from posetrack3d.constants import DERIVED_JOINTS, JOINT_COUNT, JOINT_NAMES, SKELETON_CONNECTIONS
from posetrack3d.frame_buffer import FrameBuffer
from posetrack3d.pipeline import open_pipeline
from posetrack3d.video import get_video_info, iter_video_frames


def save_pose_json(
    output_path: Path,
    timestamps: List[float],
    positions: List[np.ndarray],
    scores: List[np.ndarray],
    metadata: dict,
) -> str:
    """Write the per-frame live poses to JSON."""
    output_data = {
        "metadata": {
            **metadata,
            "joint_count": JOINT_COUNT,
            "frames": len(timestamps),
        },
        "joint_names": {str(k): v for k, v in JOINT_NAMES.items()},
        "derived_joints": list(DERIVED_JOINTS),
        "skeleton": [list(c) for c in SKELETON_CONNECTIONS],
        "timestamps": list(timestamps),
        "keypoints_3d": [p.tolist() for p in positions],
        "scores": [s.tolist() for s in scores],
    }

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(output_data, f, indent=2)

    return str(output_path)


def run_record(pipeline, video_path: Path, args, config: PipelineConfig):
    from posetrack3d.inference import AsyncInference, OnnxPoseEstimator

    estimator = OnnxPoseEstimator(
        args.model,
        image_size=config.image_size,
        device=args.device,
        show_progress=not args.quiet,
    )
    info = get_video_info(str(video_path))
    buffer = FrameBuffer(config.frame_gap)

    timestamps, positions, scores = [], [], []

    def collect(result, elapsed):
        heatmap, offsets = result
        state = pipeline.process(heatmap, offsets, elapsed)
        timestamps.append(elapsed)
        positions.append(state.filtered.copy())
        scores.append(state.confidence.copy())

    total = info.frame_count if args.max_frames is None else min(info.frame_count, args.max_frames)

    with pipeline, AsyncInference(estimator) as runner:
        pbar = tqdm(total=total, desc="  Inference", disable=args.quiet)
        for frame_idx, elapsed, frame in iter_video_frames(str(video_path), args.max_frames):
            if frame_idx == 0:
                pipeline.warm_up(estimator, frame)

            buffer.push(frame, elapsed)

            if args.realtime:
                result = runner.poll()
                if result is not None:
                    collect(result, elapsed)
                runner.submit(buffer.frames())
            else:
                runner.submit(buffer.frames())
                collect(runner.wait(), elapsed)

            pbar.update(1)
        pbar.close()

        if args.realtime:
            result = runner.wait()
            if result is not None:
                collect(result, timestamps[-1] if timestamps else 0.0)

    if not args.quiet:
        print(f"  Inference runs: {runner.submitted}, dropped frames: {runner.dropped}")

    return timestamps, positions, scores, info


def run_playback(pipeline, video_path: Path, args):
    info = get_video_info(str(video_path))
    timestamps, positions, scores = [], [], []

    total = info.frame_count if args.max_frames is None else min(info.frame_count, args.max_frames)

    with pipeline:
        for _, elapsed, _ in tqdm(
            iter_video_frames(str(video_path), args.max_frames),
            total=total,
            desc="  Playback",
            disable=args.quiet,
        ):
            state = pipeline.update(elapsed)
            timestamps.append(elapsed)
            positions.append(state.filtered.copy())
            scores.append(state.confidence.copy())

    return timestamps, positions, scores, info


def main():
    parser = argparse.ArgumentParser(
        description="posetrack3d: Video to smoothed 3D pose track",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # First run records <video>.cache
    python run_pipeline.py input/walk.mp4 --model models/pose3d.onnx

    # Second run replays the cached track (no model needed)
    python run_pipeline.py input/walk.mp4

    # Live-style inference that drops frames while the model is busy
    python run_pipeline.py input/walk.mp4 --model models/pose3d.onnx --realtime
        """
    )

    # Input
    parser.add_argument(
        "video",
        help="Path to input video file"
    )

    # Output
    parser.add_argument(
        "--output", "-o",
        default="output",
        help="Output directory for pose JSON (default: output)"
    )
    parser.add_argument(
        "--track", "-t",
        default=None,
        help="Track file path (default: <video stem>.cache next to the video)"
    )

    # Model
    parser.add_argument(
        "--model", "-m",
        default=None,
        help="Path to the ONNX pose model (required when recording)"
    )
    parser.add_argument(
        "--device", "-d",
        default="cpu",
        help="Device for inference: 'cuda' or 'cpu' (default: cpu)"
    )

    # Processing options
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="JSON file with pipeline settings"
    )
    parser.add_argument(
        "--no-low-pass",
        action="store_true",
        help="Disable the low-pass cascade after the Kalman filter"
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Drop frames while inference is in flight instead of waiting"
    )
    parser.add_argument(
        "--max-frames",
        type=int,
        default=None,
        help="Stop after this many video frames"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress progress output"
    )

    args = parser.parse_args()
    verbose = not args.quiet

    # Validate video path
    video_path = Path(args.video)
    if not video_path.exists():
        print(f"Error: Video file not found: {video_path}")
        sys.exit(1)

    # Configuration
    try:
        config = load_config(args.config) if args.config else PipelineConfig()
        if args.no_low_pass:
            config.use_low_pass = False
        config.validate()
    except (OSError, ValueError) as e:
        print(f"Error: Invalid configuration: {e}")
        sys.exit(1)

    if verbose:
        print("=" * 70)
        print("posetrack3d Pipeline")
        print("=" * 70)
        print(f"Input: {video_path}")
        print(f"Output: {args.output}")
        print()

    # =========================================================================
    # Stage 1: Mode selection
    # =========================================================================
    try:
        pipeline = open_pipeline(
            str(video_path),
            config,
            track_path=args.track,
            show_progress=verbose,
        )
    except (OSError, ValueError) as e:
        print(f"Error: Could not load track: {e}")
        sys.exit(1)

    if pipeline.mode == "record" and args.model is None:
        print("Error: --model is required to record a new track")
        print(f"  (no track found at {pipeline.track_path})")
        sys.exit(1)

    # =========================================================================
    # Stage 2: Record or playback
    # =========================================================================
    if verbose:
        print("=" * 70)
        print(f"Stage 2: {pipeline.mode.capitalize()}")
        print("=" * 70)

    if pipeline.mode == "record":
        timestamps, positions, scores, info = run_record(pipeline, video_path, args, config)
    else:
        timestamps, positions, scores, info = run_playback(pipeline, video_path, args)
    if verbose:
        print()

    # =========================================================================
    # Stage 3: Pose export
    # =========================================================================
    output_path = Path(args.output) / f"{video_path.stem}_poses.json"
    save_pose_json(
        output_path,
        timestamps,
        positions,
        scores,
        metadata={
            "source_video": str(video_path.absolute()),
            "fps": info.fps,
            "mode": pipeline.mode,
            "track_file": str(pipeline.track_path),
            "config": config.to_dict(),
        },
    )

    # =========================================================================
    # Summary
    # =========================================================================
    if verbose:
        print("=" * 70)
        print("Pipeline Complete!")
        print("=" * 70)
        print()
        print("Output files:")
        print(f"  Poses: {output_path}")
        print(f"  Track: {pipeline.track_path}")
        print()


if __name__ == "__main__":
    main()
