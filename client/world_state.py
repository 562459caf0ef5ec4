"""
Facade the renderer pulls the current world from.
"""

import time

from common.config import RENDER_DELAY_MS
from common.snapshot import WorldState
from client.interpolation import Interpolator
from client.snapshot_buffer import SnapshotBuffer


def now_ms() -> float:
    """Local monotonic clock in milliseconds."""
    return time.perf_counter() * 1000.0


class WorldStateProvider:
    """Reads the snapshot buffer and interpolates on demand; holds no state of its own."""

    def __init__(self, buffer: SnapshotBuffer, interpolator: Interpolator = None,
                 render_delay: float = RENDER_DELAY_MS, clock=now_ms):
        self.buffer = buffer
        self.interpolator = interpolator or Interpolator(render_delay)
        self.render_delay = render_delay
        self.clock = clock

    def get_world_state(self) -> WorldState:
        return self.interpolator.compute(
            self.buffer.latest_pair(), self.render_delay, self.clock()
        )
