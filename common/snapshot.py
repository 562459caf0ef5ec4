"""
Canonical world-state records and the normalizer that builds them from
loosely-shaped server payloads.

Defaults for missing fields are applied here and nowhere else; everything
downstream of normalize() can rely on every field being present.
"""

import math

from common.config import (
    DEFAULT_PLAYER_RADIUS, DEFAULT_STAMINA, DEFAULT_ORB_SIZE
)


class EntityKind:
    """Entity collections carried by a state payload."""
    PLAYERS    = 'players'
    ORBS       = 'orbs'
    ELIMINATED = 'eliminated'


class OrbMode:
    """Projectile modes as sent by the server."""
    ORBIT  = 0
    SHOT   = 1
    RETURN = 2


def canonical_id(value):
    """
    Coerce a wire identifier to its canonical string form.

    Numeric and string ids are interchangeable on the wire, so 7, 7.0 and
    "7" all map to "7". Returns None for values that cannot be an id.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            return str(int(value))
        return str(value)
    return None


def _num(raw: dict, key: str, default: float) -> float:
    value = raw.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        value = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    if not math.isfinite(value):
        return default
    return value


def _int(raw: dict, key: str, default: int) -> int:
    return int(_num(raw, key, default))


def _str(raw: dict, key: str, default: str = '') -> str:
    value = raw.get(key)
    if value is None:
        return default
    return str(value)


class Player:
    """An alive player."""

    __slots__ = ('id', 'name', 'score', 'x', 'y', 'vx', 'vy',
                 'radius', 'stamina', 'angle')

    def __init__(self, id: str, name: str = '', score: float = 0.0,
                 x: float = 0.0, y: float = 0.0,
                 vx: float = 0.0, vy: float = 0.0,
                 radius: float = DEFAULT_PLAYER_RADIUS,
                 stamina: float = DEFAULT_STAMINA, angle: float = 0.0):
        self.id = id
        self.name = name
        self.score = score
        self.x = x
        self.y = y
        self.vx = vx
        self.vy = vy
        self.radius = radius
        self.stamina = stamina
        self.angle = angle

    @classmethod
    def from_wire(cls, pid: str, raw: dict) -> 'Player':
        return cls(
            pid,
            name=_str(raw, 'name'),
            score=_num(raw, 'score', 0.0),
            x=_num(raw, 'x', 0.0),
            y=_num(raw, 'y', 0.0),
            vx=_num(raw, 'vx', 0.0),
            vy=_num(raw, 'vy', 0.0),
            radius=_num(raw, 'radius', DEFAULT_PLAYER_RADIUS),
            stamina=_num(raw, 'stamina', DEFAULT_STAMINA),
            angle=_num(raw, 'angle', _num(raw, 'a', 0.0)),
        )

    def moved_to(self, x: float, y: float) -> 'Player':
        """Copy of this player at a new position."""
        p = self.copy()
        p.x = x
        p.y = y
        return p

    def copy(self) -> 'Player':
        return Player(self.id, self.name, self.score, self.x, self.y,
                      self.vx, self.vy, self.radius, self.stamina, self.angle)

    def to_dict(self) -> dict:
        return {slot: getattr(self, slot) for slot in self.__slots__}

    def __eq__(self, other):
        if not isinstance(other, Player):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"Player(id={self.id!r}, x={self.x:.1f}, y={self.y:.1f})"


class Projectile:
    """An orb/flail. owner_id may reference a player absent from the snapshot."""

    __slots__ = ('id', 'owner_id', 'x', 'y', 'size', 'angle', 'mode')

    def __init__(self, id: str, owner_id=None, x: float = 0.0, y: float = 0.0,
                 size: float = DEFAULT_ORB_SIZE, angle: float = 0.0,
                 mode: int = OrbMode.ORBIT):
        self.id = id
        self.owner_id = owner_id
        self.x = x
        self.y = y
        self.size = size
        self.angle = angle
        self.mode = mode

    @classmethod
    def from_wire(cls, oid: str, raw: dict) -> 'Projectile':
        return cls(
            oid,
            owner_id=canonical_id(raw.get('ownerId')),
            x=_num(raw, 'x', 0.0),
            y=_num(raw, 'y', 0.0),
            size=_num(raw, 'size', DEFAULT_ORB_SIZE),
            angle=_num(raw, 'angle', _num(raw, 'a', 0.0)),
            mode=_int(raw, 'mode', OrbMode.ORBIT),
        )

    def moved_to(self, x: float, y: float) -> 'Projectile':
        o = self.copy()
        o.x = x
        o.y = y
        return o

    def copy(self) -> 'Projectile':
        return Projectile(self.id, self.owner_id, self.x, self.y,
                          self.size, self.angle, self.mode)

    def to_dict(self) -> dict:
        return {slot: getattr(self, slot) for slot in self.__slots__}

    def __eq__(self, other):
        if not isinstance(other, Projectile):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"Projectile(id={self.id!r}, owner={self.owner_id!r}, "
                f"x={self.x:.1f}, y={self.y:.1f}, mode={self.mode})")


class EliminatedEntry:
    """A player that has left the alive set."""

    __slots__ = ('id', 'name', 'score')

    def __init__(self, id: str, name: str = '', score: float = 0.0):
        self.id = id
        self.name = name
        self.score = score

    @classmethod
    def from_wire(cls, eid: str, raw: dict) -> 'EliminatedEntry':
        return cls(eid, name=_str(raw, 'name'), score=_num(raw, 'score', 0.0))

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'score': self.score}

    def __eq__(self, other):
        if not isinstance(other, EliminatedEntry):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"EliminatedEntry(id={self.id!r}, name={self.name!r})"


_BUILDERS = {
    EntityKind.PLAYERS: Player.from_wire,
    EntityKind.ORBS: Projectile.from_wire,
    EntityKind.ELIMINATED: EliminatedEntry.from_wire,
}


def normalize(raw_list, kind: str) -> dict:
    """
    Convert a raw wire list into a dict of canonical id -> entity.

    Absent or non-list input yields an empty dict. Elements that are not
    objects, or that carry no usable id, are skipped. A repeated id keeps
    the last occurrence.
    """
    build = _BUILDERS[kind]
    result = {}
    if not isinstance(raw_list, list):
        return result
    for raw in raw_list:
        if not isinstance(raw, dict):
            continue
        eid = canonical_id(raw.get('id'))
        if eid is None:
            continue
        result[eid] = build(eid, raw)
    return result


class Snapshot:
    """One normalized authoritative world state."""

    def __init__(self, tick: int = 0, players: dict = None,
                 orbs: dict = None, eliminated: dict = None):
        self.tick = tick
        self.players = players or {}        # id -> Player
        self.orbs = orbs or {}              # id -> Projectile
        self.eliminated = eliminated or {}  # id -> EliminatedEntry

    @staticmethod
    def from_wire(payload) -> 'Snapshot':
        """Build a Snapshot from a decoded "state" payload."""
        if not isinstance(payload, dict):
            payload = {}
        return Snapshot(
            tick=_int(payload, 'tick', 0),
            players=normalize(payload.get('players'), EntityKind.PLAYERS),
            orbs=normalize(payload.get('orbs'), EntityKind.ORBS),
            eliminated=normalize(payload.get('eliminated'),
                                 EntityKind.ELIMINATED),
        )

    def to_dict(self) -> dict:
        return {
            'tick': self.tick,
            'players': {pid: p.to_dict() for pid, p in self.players.items()},
            'orbs': {oid: o.to_dict() for oid, o in self.orbs.items()},
            'eliminated': {eid: e.to_dict()
                           for eid, e in self.eliminated.items()},
        }


class WorldState:
    """
    What the renderer draws for one frame.

    List order carries no meaning; look entities up by id.
    """

    def __init__(self, players: list = None, orbs: list = None,
                 eliminated: list = None, tick: int = 0):
        self.players = players or []
        self.orbs = orbs or []
        self.eliminated = eliminated or []
        self.tick = tick

    @staticmethod
    def empty() -> 'WorldState':
        return WorldState()

    @staticmethod
    def from_snapshot(snapshot: Snapshot) -> 'WorldState':
        return WorldState(
            players=list(snapshot.players.values()),
            orbs=list(snapshot.orbs.values()),
            eliminated=list(snapshot.eliminated.values()),
            tick=snapshot.tick,
        )

    def is_empty(self) -> bool:
        return not (self.players or self.orbs or self.eliminated)

    def player(self, pid):
        pid = canonical_id(pid)
        for p in self.players:
            if p.id == pid:
                return p
        return None

    def orb(self, oid):
        oid = canonical_id(oid)
        for o in self.orbs:
            if o.id == oid:
                return o
        return None

    def to_dict(self) -> dict:
        return {
            'tick': self.tick,
            'players': [p.to_dict() for p in self.players],
            'orbs': [o.to_dict() for o in self.orbs],
            'eliminated': [e.to_dict() for e in self.eliminated],
        }
