"""
Rolling buffer of the three most recent input frames fed to the network.
"""

from typing import Any, List, Optional, Tuple

from .constants import DEFAULT_FRAME_GAP_S

BUFFER_SIZE = 3


class FrameBuffer:
    """
    Keeps three frames spaced at least `min_gap` seconds apart.

    - The first frame fills every slot.
    - A frame arriving more than `min_gap` after the last captured frame
      shifts the buffer and drops the oldest frame.
    - Any other frame only replaces the newest slot.
    """

    def __init__(self, min_gap: float = DEFAULT_FRAME_GAP_S):
        self.min_gap = float(min_gap)
        self._frames: List[Any] = []
        self.last_captured: Optional[float] = None

    def push(self, frame: Any, elapsed: float) -> bool:
        """
        Add a frame.

        Returns:
            True if the buffer shifted (a new frame was captured).
        """
        if not self._frames:
            self._frames = [frame] * BUFFER_SIZE
            self.last_captured = float(elapsed)
            return True

        if elapsed - self.last_captured > self.min_gap:
            self._frames = [frame] + self._frames[:-1]
            self.last_captured = float(elapsed)
            return True

        self._frames[0] = frame
        return False

    @property
    def ready(self) -> bool:
        return bool(self._frames)

    def frames(self) -> Tuple[Any, ...]:
        """Frames ordered newest first (the model's input order)."""
        if not self._frames:
            raise RuntimeError("Frame buffer is empty")
        return tuple(self._frames)

    def clear(self) -> None:
        self._frames = []
        self.last_captured = None
