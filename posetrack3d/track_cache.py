"""
Track cache: recording, storing, denoising and replaying joint snapshots.

Track file format (one file per source, '<stem>.cache'):
- One line per recorded frame, no header or footer.
- Joint records separated by a TAB.
- Each joint record holds x,y,z,confidence,timestamp separated by commas.
- Floats are written with repr(), which round-trips exactly.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .constants import (
    DEFAULT_DENOISE_WINDOW_S,
    FIELD_SEPARATOR,
    FIELDS_PER_JOINT,
    JOINT_SEPARATOR,
    TRACK_FILE_SUFFIX,
)


@dataclass(frozen=True)
class JointSnapshot:
    """One frame's joint positions and confidences at a point in time."""
    timestamp: float
    positions: np.ndarray    # (J, 3), read-only
    confidence: np.ndarray   # (J,), read-only

    def __post_init__(self):
        positions = np.array(self.positions, dtype=np.float64).reshape(-1, 3)
        confidence = np.array(self.confidence, dtype=np.float64).reshape(-1)
        if len(confidence) != len(positions):
            raise ValueError(
                f"Snapshot has {len(positions)} positions but {len(confidence)} confidences"
            )
        positions.flags.writeable = False
        confidence.flags.writeable = False
        object.__setattr__(self, "timestamp", float(self.timestamp))
        object.__setattr__(self, "positions", positions)
        object.__setattr__(self, "confidence", confidence)

    @property
    def num_joints(self) -> int:
        return self.positions.shape[0]

    def with_positions(self, positions: np.ndarray) -> "JointSnapshot":
        return JointSnapshot(self.timestamp, positions, self.confidence)


class Track:
    """Ordered, timestamped sequence of snapshots (insertion order = time order)."""

    def __init__(self, snapshots: Optional[Sequence[JointSnapshot]] = None):
        self._snapshots: List[JointSnapshot] = []
        for snapshot in snapshots or []:
            self.append(snapshot)

    def append(self, snapshot: JointSnapshot) -> None:
        if self._snapshots:
            last = self._snapshots[-1]
            if snapshot.num_joints != last.num_joints:
                raise ValueError(
                    f"Snapshot has {snapshot.num_joints} joints, track has {last.num_joints}"
                )
            if snapshot.timestamp < last.timestamp:
                raise ValueError(
                    f"Timestamps must be non-decreasing: {snapshot.timestamp} after {last.timestamp}"
                )
        self._snapshots.append(snapshot)

    def record(self, positions: np.ndarray, confidence: np.ndarray, timestamp: float) -> JointSnapshot:
        snapshot = JointSnapshot(timestamp, positions, confidence)
        self.append(snapshot)
        return snapshot

    def __len__(self) -> int:
        return len(self._snapshots)

    def __getitem__(self, index: int) -> JointSnapshot:
        return self._snapshots[index]

    def __iter__(self) -> Iterator[JointSnapshot]:
        return iter(self._snapshots)

    @property
    def timestamps(self) -> np.ndarray:
        return np.array([s.timestamp for s in self._snapshots], dtype=np.float64)

    def positions(self) -> np.ndarray:
        """All positions stacked, shape (n_frames, J, 3)."""
        if not self._snapshots:
            return np.zeros((0, 0, 3), dtype=np.float64)
        return np.stack([s.positions for s in self._snapshots])

    def confidences(self) -> np.ndarray:
        """All confidences stacked, shape (n_frames, J)."""
        if not self._snapshots:
            return np.zeros((0, 0), dtype=np.float64)
        return np.stack([s.confidence for s in self._snapshots])


# =============================================================================
# Serialization
# =============================================================================

def format_snapshot(snapshot: JointSnapshot) -> str:
    """Serialize one snapshot to a single line (without newline)."""
    t = repr(snapshot.timestamp)
    records = []
    for pos, conf in zip(snapshot.positions, snapshot.confidence):
        fields = (repr(float(pos[0])), repr(float(pos[1])), repr(float(pos[2])), repr(float(conf)), t)
        records.append(FIELD_SEPARATOR.join(fields))
    return JOINT_SEPARATOR.join(records)


def parse_snapshot(line: str, line_number: int = 0) -> JointSnapshot:
    """
    Parse one track line.

    The snapshot timestamp is taken from the first joint record.
    """
    records = line.rstrip("\r\n").split(JOINT_SEPARATOR)
    values = np.zeros((len(records), FIELDS_PER_JOINT), dtype=np.float64)

    for i, record in enumerate(records):
        fields = record.split(FIELD_SEPARATOR)
        if len(fields) != FIELDS_PER_JOINT:
            raise ValueError(
                f"Line {line_number}, joint {i}: expected {FIELDS_PER_JOINT} fields, got {len(fields)}"
            )
        try:
            values[i] = [float(f) for f in fields]
        except ValueError:
            raise ValueError(f"Line {line_number}, joint {i}: invalid number in {record!r}") from None

    return JointSnapshot(values[0, 4], values[:, :3], values[:, 3])


def save_track(track: Track, path: str, show_progress: bool = False) -> str:
    """
    Write the whole track to a text file.

    Args:
        track: Recorded track.
        path: Output file path.
        show_progress: Print a summary line.

    Returns:
        Path to the written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", encoding="utf-8", newline="\n") as f:
        for snapshot in track:
            f.write(format_snapshot(snapshot))
            f.write("\n")

    if show_progress:
        print(f"Saved track ({len(track)} frames) to: {path}")

    return str(path)


def read_track(path: str) -> Track:
    """Read a track file as recorded, without denoising."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Track file not found: {path}")

    track = Track()
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            if not line.strip():
                continue
            track.append(parse_snapshot(line, line_number))

    return track


def load_track(
    path: str,
    window: float = DEFAULT_DENOISE_WINDOW_S,
    denoise: bool = True,
    show_progress: bool = False,
) -> Track:
    """
    Load a track for playback.

    Args:
        path: Track file path.
        window: Half width in seconds of the denoise window.
        denoise: Apply the temporal denoising pass.
        show_progress: Print progress updates.

    Returns:
        Loaded (and denoised) track.
    """
    if show_progress:
        print(f"Loading track from: {path}")

    track = read_track(path)
    if len(track) == 0:
        raise ValueError(f"Track file is empty: {path}")

    if show_progress:
        print(f"  Frames: {len(track)}, Joints: {track[0].num_joints}")

    if denoise:
        if show_progress:
            print(f"  Denoising (window=+/-{window}s)...")
        track = denoise_track(track, window)

    return track


# =============================================================================
# Denoising
# =============================================================================

def cluster_bounds(timestamps: np.ndarray, window: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Slice bounds of every snapshot's temporal cluster.

    Timestamps are sorted, so the cluster {j : |t_j - t_i| < window} is the
    contiguous slice [lo[i], hi[i]). Both bounds only move forward as i
    grows, so one sweep finds them all.

    Args:
        timestamps: Non-decreasing, finite timestamps.
        window: Half width in seconds, > 0.

    Returns:
        Tuple of (lo, hi) index arrays.
    """
    t = timestamps.tolist()
    n = len(t)
    lo = np.empty(n, dtype=np.intp)
    hi = np.empty(n, dtype=np.intp)

    start = end = 0
    for i, ti in enumerate(t):
        while abs(ti - t[start]) >= window:
            start += 1
        end = max(end, i + 1)
        while end < n and abs(t[end] - ti) < window:
            end += 1
        lo[i], hi[i] = start, end

    return lo, hi


def cluster_means(
    timestamps: np.ndarray,
    positions: np.ndarray,
    window: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Mean positions over each snapshot's temporal cluster.

    A non-finite position only affects the clusters that contain it.

    Args:
        timestamps: (n_frames,) non-decreasing, finite timestamps.
        positions: (n_frames, J, 3) loaded positions.
        window: Half width in seconds, > 0.

    Returns:
        Tuple of (means, counts): means has the shape of positions and is
        NaN wherever the cluster holds a non-finite value.
    """
    n_frames = positions.shape[0]
    flat = positions.reshape(n_frames, -1)
    finite = np.isfinite(flat)

    lo, hi = cluster_bounds(timestamps, window)
    counts = hi - lo

    # Prefix sums with a leading zero row: sum over [lo, hi) = sums[hi] - sums[lo]
    sums = np.zeros((n_frames + 1, flat.shape[1]), dtype=np.float64)
    np.cumsum(np.where(finite, flat, 0.0), axis=0, out=sums[1:])
    bad = np.zeros((n_frames + 1, flat.shape[1]), dtype=np.int64)
    np.cumsum(~finite, axis=0, out=bad[1:])

    means = sums[hi]
    means -= sums[lo]
    means /= counts[:, np.newaxis]
    del sums

    poisoned = bad[hi]
    poisoned -= bad[lo]
    means[poisoned > 0] = np.nan
    return means.reshape(positions.shape), counts


def denoise_track(track: Track, window: float = DEFAULT_DENOISE_WINDOW_S) -> Track:
    """
    Replace each snapshot's positions by the mean over its temporal cluster.

    The cluster of snapshot i is every snapshot j with |t_j - t_i| < window,
    which includes i itself. Means are computed from the loaded positions,
    never from already averaged ones. Confidences and timestamps are kept.

    Raises:
        ValueError: If any average is non-finite (an empty cluster, or a
            cluster holding a non-finite position).
    """
    if window <= 0:
        raise ValueError(f"Denoise window must be positive, got {window}")
    if len(track) == 0:
        return Track()

    t = track.timestamps

    # A non-finite timestamp is never within the window of anything, itself included
    bad_time = ~np.isfinite(t)
    if np.any(bad_time):
        first = int(np.argmax(bad_time))
        raise ValueError(
            f"Denoising produced a non-finite average at frame {first} "
            f"(t={t[first]}, cluster size=0)"
        )

    means, counts = cluster_means(t, track.positions(), window)

    bad = ~np.all(np.isfinite(means.reshape(len(track), -1)), axis=1)
    if np.any(bad):
        first = int(np.argmax(bad))
        raise ValueError(
            f"Denoising produced a non-finite average at frame {first} "
            f"(t={t[first]}, cluster size={int(counts[first])})"
        )

    return Track([s.with_positions(means[i]) for i, s in enumerate(track)])


# =============================================================================
# Playback
# =============================================================================

class PlaybackCursor:
    """
    Monotonic pointer into a track, advanced against elapsed time.

    The selected snapshot is the last one whose timestamp is <= the elapsed
    time (the first one before playback reaches it). Past the end the cursor
    holds at the final snapshot.
    """

    def __init__(self, track: Track):
        if len(track) == 0:
            raise ValueError("Cannot play back an empty track")
        self.track = track
        self.index = 0
        self._timestamps = track.timestamps

    def advance(self, elapsed: float) -> int:
        last = len(self._timestamps) - 1
        while self.index < last and self._timestamps[self.index + 1] <= elapsed:
            self.index += 1
        return self.index

    def seek(self, elapsed: float) -> JointSnapshot:
        return self.track[self.advance(elapsed)]

    @property
    def finished(self) -> bool:
        return self.index == len(self._timestamps) - 1


def track_path_for(source: str, suffix: str = TRACK_FILE_SUFFIX) -> Path:
    """Track file for a source: same directory and base name, fixed suffix."""
    return Path(source).with_suffix(suffix)
