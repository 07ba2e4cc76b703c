"""
Record and playback pipelines.

The mode is chosen once per source by open_pipeline():

1. Record   - no track file exists yet. Each inference result is decoded,
              the derived joints are computed, the temporal filter runs and
              the filtered pose is appended to the track. The track is written
              when the pipeline is closed.
2. Playback - a track file exists. It is loaded and denoised, and each tick
              copies the snapshot selected by the playback cursor into the
              live state. Decoding and filtering never run in this mode.
"""

from pathlib import Path
from typing import Optional, Union

import numpy as np

from .config import PipelineConfig
from .constants import JOINT_COUNT, MODEL_INPUT_NAMES, NETWORK_JOINT_COUNT
from .grid_decoder import decode_joints
from .kinematics import derive_joints
from .temporal_filter import SkeletonState, apply_temporal_filter
from .track_cache import PlaybackCursor, Track, load_track, save_track, track_path_for


class RecordingPipeline:
    """Decode -> derive -> filter -> record, once per inference result."""

    mode = "record"

    def __init__(
        self,
        track_path: str,
        config: Optional[PipelineConfig] = None,
        show_progress: bool = False,
    ):
        self.config = (config or PipelineConfig()).validate()
        # Derived joints read fixed slots, so every network joint must be decoded
        if self.config.num_joints != NETWORK_JOINT_COUNT:
            raise ValueError(
                f"Recording needs all {NETWORK_JOINT_COUNT} network joints, "
                f"got num_joints={self.config.num_joints}"
            )
        self.track_path = Path(track_path)
        self.show_progress = show_progress
        self.state = SkeletonState.from_config(self.config)
        self.track = Track()
        self.closed = False

    def _update_state(self, heatmap, offsets) -> SkeletonState:
        positions, confidences, _ = decode_joints(heatmap, offsets, self.config)
        n = self.config.num_joints
        self.state.raw[:n] = positions
        self.state.confidence[:n] = confidences
        derive_joints(self.state.raw)
        apply_temporal_filter(self.state, self.config)
        return self.state

    def warm_up(self, estimator, init_image: np.ndarray) -> SkeletonState:
        """
        Run the estimator once on a still image to prime the filter.

        The image is fed to every network input. The result is not recorded.
        """
        frames = [init_image] * len(MODEL_INPUT_NAMES)
        heatmap, offsets = estimator(frames)
        if self.show_progress:
            print("  Warm-up inference done")
        return self._update_state(heatmap, offsets)

    def process(self, heatmap, offsets, elapsed: float) -> SkeletonState:
        """
        Consume one inference result.

        Args:
            heatmap: Heat-map volume with J * R^3 values.
            offsets: Offset volume with J * R^3 * 3 values.
            elapsed: Seconds since the source started.

        Returns:
            The live skeleton state.
        """
        if self.closed:
            raise RuntimeError("Recording pipeline is closed")
        self._update_state(heatmap, offsets)
        self.track.record(self.state.filtered, self.state.confidence, elapsed)
        return self.state

    def close(self) -> Optional[str]:
        """
        Write the recorded track to storage.

        Returns:
            The track path, or None if nothing was recorded.
        """
        if self.closed:
            return None
        self.closed = True

        if len(self.track) == 0:
            if self.show_progress:
                print("No frames recorded, track not written")
            return None

        return save_track(self.track, str(self.track_path), show_progress=self.show_progress)

    def __enter__(self) -> "RecordingPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class PlaybackPipeline:
    """Replays a stored track against the elapsed-time clock."""

    mode = "playback"

    def __init__(
        self,
        track_path: str,
        config: Optional[PipelineConfig] = None,
        show_progress: bool = False,
        start_time: float = 0.0,
    ):
        self.config = (config or PipelineConfig()).validate()
        self.track_path = Path(track_path)
        self.show_progress = show_progress

        self.track = load_track(
            str(self.track_path),
            window=self.config.denoise_window,
            show_progress=show_progress,
        )
        if self.track[0].num_joints != JOINT_COUNT:
            raise ValueError(
                f"Track has {self.track[0].num_joints} joints per frame, expected {JOINT_COUNT}"
            )
        if show_progress:
            print(f"Track loaded: {len(self.track)} frames")

        self.cursor = PlaybackCursor(self.track)
        self.state = SkeletonState.from_config(self.config)
        self.update(start_time)

    def update(self, elapsed: float) -> SkeletonState:
        snapshot = self.cursor.seek(elapsed)
        self.state.filtered[:] = snapshot.positions
        self.state.confidence[:] = snapshot.confidence
        return self.state

    @property
    def finished(self) -> bool:
        return self.cursor.finished

    def close(self) -> None:
        return None

    def __enter__(self) -> "PlaybackPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def open_pipeline(
    source: str,
    config: Optional[PipelineConfig] = None,
    track_path: Optional[str] = None,
    show_progress: bool = False,
) -> Union[RecordingPipeline, PlaybackPipeline]:
    """
    Choose record or playback mode for a source.

    Args:
        source: Input source path (e.g. a video file).
        config: Pipeline configuration.
        track_path: Explicit track file. Defaults to the source's base name
            with the configured cache suffix.
        show_progress: Print progress updates.

    Returns:
        PlaybackPipeline if the track file exists, RecordingPipeline otherwise.
    """
    config = (config or PipelineConfig()).validate()
    if track_path is None:
        track_path = track_path_for(source, config.cache_suffix)
    track_path = Path(track_path)

    if track_path.exists():
        if show_progress:
            print(f"Using cached track: {track_path}")
        return PlaybackPipeline(str(track_path), config, show_progress=show_progress)

    if show_progress:
        print(f"Recording new track: {track_path}")
    return RecordingPipeline(str(track_path), config, show_progress=show_progress)
