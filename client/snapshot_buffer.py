"""
Two-slot ring of received snapshots tagged with their local receipt time.
"""

from common.snapshot import Snapshot


class TimedSnapshot:
    """A Snapshot plus the local clock time (ms) it arrived."""

    __slots__ = ('received_at', 'snapshot')

    def __init__(self, received_at: float, snapshot: Snapshot):
        self.received_at = received_at
        self.snapshot = snapshot

    def __repr__(self):
        return (f"TimedSnapshot(received_at={self.received_at:.1f}, "
                f"tick={self.snapshot.tick})")


class SnapshotBuffer:
    """
    Holds at most the two most recent snapshots, oldest first.

    The only writer is the inbound message path, and it only appends;
    entries already held are never modified.
    """

    CAPACITY = 2

    def __init__(self):
        self._entries = []

    def push(self, snapshot: Snapshot, received_at: float) -> TimedSnapshot:
        """Append a snapshot, evicting the older entry when full."""
        timed = TimedSnapshot(received_at, snapshot)
        entries = self._entries
        if len(entries) >= self.CAPACITY:
            entries = entries[1:]
        # Swap in a new list so a reader holding the old one sees a
        # consistent pair.
        self._entries = entries + [timed]
        return timed

    def latest_pair(self) -> tuple:
        """Return (older, newer); missing slots are None."""
        entries = self._entries
        if not entries:
            return None, None
        if len(entries) == 1:
            return None, entries[0]
        return entries[0], entries[1]

    def clear(self):
        self._entries = []

    def __len__(self):
        return len(self._entries)
