"""
Entity interpolation for rendering remote entities smoothly.
Entities are rendered slightly in the past, interpolating between the two
most recent server snapshots by their local receipt times.
"""

from common.config import RENDER_DELAY_MS, MIN_SNAPSHOT_DT_MS
from common.snapshot import WorldState


def compute_alpha(t_a: float, t_b: float, target: float) -> float:
    """Interpolation fraction of target between t_a and t_b, clamped to [0, 1]."""
    dt = t_b - t_a
    if dt <= 0:
        dt = MIN_SNAPSHOT_DT_MS
    alpha = (target - t_a) / dt
    return max(0.0, min(1.0, alpha))


def lerp(a: float, b: float, alpha: float) -> float:
    return a + (b - a) * alpha


def merge_entities(older: dict, newer: dict, alpha: float) -> list:
    """
    Merge two id-keyed entity maps into one list.

    Entities only in `older` are kept where they were (about to vanish),
    entities only in `newer` snap in at their first known position, and
    entities in both have x/y interpolated and every other field from
    `newer`.
    """
    result = []
    for eid, e0 in older.items():
        e1 = newer.get(eid)
        if e1 is None:
            result.append(e0)
        else:
            result.append(e1.moved_to(lerp(e0.x, e1.x, alpha),
                                      lerp(e0.y, e1.y, alpha)))
    for eid, e1 in newer.items():
        if eid not in older:
            result.append(e1)
    return result


class Interpolator:
    """
    Produces a WorldState from the buffered snapshot pair.
    Renders at (now - render_delay) and never extrapolates past the
    newest snapshot: alpha is clamped at 1.
    """

    def __init__(self, render_delay: float = RENDER_DELAY_MS):
        """
        Args:
            render_delay: default delay in ms behind the local clock
        """
        self.render_delay = render_delay
        self.last_alpha = None

    def compute(self, pair: tuple, render_delay: float = None,
                now: float = 0.0) -> WorldState:
        """
        Interpolate the world at now - render_delay.

        Args:
            pair: (older, newer) TimedSnapshots as returned by
                  SnapshotBuffer.latest_pair(); either may be None
            render_delay: ms behind now to render; None uses the default
            now: current local time in ms

        Returns:
            WorldState for this frame.
        """
        older, newer = pair
        if newer is None:
            newer, older = older, None

        if newer is None:
            self.last_alpha = None
            return WorldState.empty()

        if older is None:
            # Bootstrap right after joining: nothing to interpolate against
            self.last_alpha = None
            return WorldState.from_snapshot(newer.snapshot)

        if render_delay is None:
            render_delay = self.render_delay

        target = now - render_delay
        alpha = compute_alpha(older.received_at, newer.received_at, target)
        self.last_alpha = alpha

        a = older.snapshot
        b = newer.snapshot
        return WorldState(
            players=merge_entities(a.players, b.players, alpha),
            orbs=merge_entities(a.orbs, b.orbs, alpha),
            eliminated=list(b.eliminated.values()),
            tick=b.tick,
        )
