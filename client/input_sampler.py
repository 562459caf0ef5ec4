"""
Input shaping: turns the latest pointer/gesture sample into a bounded
movement command, relative to a recenterable anchor.
"""

import math

from common.config import INPUT_ANCHOR, INPUT_DEADZONE, INPUT_MAX_RADIUS
from common.protocol import Command


class Gesture:
    """Gesture labels produced by the hand classifier."""
    NONE   = -1
    OPEN   = 0
    CLOSED = 1
    POINT  = 2
    PINCH  = 3

    _NAMES = {
        -1: "NONE",
        0: "OPEN",
        1: "CLOSED",
        2: "POINT",
        3: "PINCH",
    }

    @classmethod
    def name(cls, gesture: int) -> str:
        return cls._NAMES.get(gesture, f"UNKNOWN({gesture})")


class PointerSample:
    """Normalized pointer position plus gesture label."""

    __slots__ = ('x', 'y', 'gesture')

    def __init__(self, x: float = 0.5, y: float = 0.5,
                 gesture: int = Gesture.OPEN):
        self.x = x
        self.y = y
        self.gesture = gesture

    def __repr__(self):
        return (f"PointerSample(x={self.x:.3f}, y={self.y:.3f}, "
                f"gesture={Gesture.name(self.gesture)})")


def shape_offset(dx: float, dy: float, deadzone: float,
                 max_radius: float) -> tuple:
    """
    Map an offset from the anchor onto an (ax, ay) vector in [-1, 1].

    Offsets inside the deadzone produce (0, 0); offsets beyond max_radius
    saturate at unit length.
    """
    dist = math.hypot(dx, dy)
    if dist < deadzone or dist == 0.0:
        return 0.0, 0.0
    clamped = min(dist, max_radius)
    scale = clamped / max_radius / dist
    return dx * scale, dy * scale


class InputSampler:
    """
    Holds the latest sample and the command currently pending transmission.

    The perception loop writes samples at whatever rate frames arrive; the
    submission loop pulls a command at a fixed rate. A command is only
    recomputed when something changed since the last pull, otherwise the
    previous one is resent as-is.
    """

    def __init__(self, deadzone: float = INPUT_DEADZONE,
                 max_radius: float = INPUT_MAX_RADIUS,
                 anchor: tuple = INPUT_ANCHOR):
        if max_radius <= 0:
            raise ValueError(f"max_radius must be positive, got {max_radius}")
        self.deadzone = deadzone
        self.max_radius = max_radius
        self.anchor = anchor
        self.latest_sample = None
        self.command = Command()
        self._dirty = False

    def push_sample(self, sample: PointerSample):
        """Store the newest classified sample, replacing any previous one."""
        self.latest_sample = sample
        self._dirty = True

    def recenter(self):
        """Move the anchor to the current sample position."""
        if self.latest_sample is None:
            return
        self.anchor = (self.latest_sample.x, self.latest_sample.y)
        self._dirty = True

    def shape(self, sample: PointerSample) -> Command:
        """Build the command for a sample against the current anchor."""
        if sample is None or sample.gesture == Gesture.NONE:
            return Command()
        ax, ay = shape_offset(sample.x - self.anchor[0],
                              sample.y - self.anchor[1],
                              self.deadzone, self.max_radius)
        return Command(
            ax, ay,
            boost=sample.gesture == Gesture.PINCH,
            shoot=sample.gesture == Gesture.CLOSED,
        )

    def next_command(self) -> Command:
        """Command to transmit on this submission tick."""
        if self._dirty:
            self.command = self.shape(self.latest_sample)
            self._dirty = False
        return self.command
