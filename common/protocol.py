"""
JSON wire protocol for the flail arena server.

Every message, in both directions, is a JSON envelope:

    {"t": <message type>, "p": <payload>}

Client -> server:
    hello   {"v": 1, "name": str}
    input   {"ax": float, "ay": float, "boost": bool, "shoot": bool}

Server -> client:
    welcome {"playerId": str, "tickHz": int}
    state   {"tick": int, "players": [...], "orbs": [...], "eliminated": [...]}
"""

import json
import math

from common.config import PROTOCOL_VERSION


class MessageType:
    """Envelope type tags."""
    HELLO   = 'hello'
    INPUT   = 'input'
    WELCOME = 'welcome'
    STATE   = 'state'

    _INBOUND = (WELCOME, STATE)

    # Some server builds capitalize the welcome tag
    _ALIASES = {'Welcome': WELCOME}

    @classmethod
    def inbound(cls, tag: str):
        """Map a received tag onto a known inbound type, or None."""
        if tag in cls._INBOUND:
            return tag
        return cls._ALIASES.get(tag)


def clamp_axis(value) -> float:
    """Clamp a command axis into [-1, 1]; NaN and junk become 0."""
    try:
        value = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(-1.0, min(1.0, value))


class Command:
    """One outbound input command. Axes are clamped on construction."""

    __slots__ = ('ax', 'ay', 'boost', 'shoot')

    def __init__(self, ax: float = 0.0, ay: float = 0.0,
                 boost: bool = False, shoot: bool = False):
        self.ax = clamp_axis(ax)
        self.ay = clamp_axis(ay)
        self.boost = bool(boost)
        self.shoot = bool(shoot)

    def to_payload(self) -> dict:
        return {
            'ax': clamp_axis(self.ax),
            'ay': clamp_axis(self.ay),
            'boost': bool(self.boost),
            'shoot': bool(self.shoot),
        }

    def __eq__(self, other):
        if not isinstance(other, Command):
            return NotImplemented
        return (self.ax, self.ay, self.boost, self.shoot) == \
               (other.ax, other.ay, other.boost, other.shoot)

    def __repr__(self):
        return (f"Command(ax={self.ax:.3f}, ay={self.ay:.3f}, "
                f"boost={self.boost}, shoot={self.shoot})")


def encode(msg_type: str, payload) -> str:
    """Serialize an envelope to a JSON text frame."""
    if not msg_type:
        raise ValueError("Envelope type must be a non-empty string")
    if payload is None:
        raise ValueError("Envelope payload must not be None")
    return json.dumps({'t': msg_type, 'p': payload}, separators=(',', ':'))


def decode_envelope(data) -> tuple:
    """
    Parse a received frame into (type, payload).

    Raises ValueError for anything that is not a JSON object carrying a
    string "t" tag. The payload is returned as-is and may be any JSON value.
    """
    try:
        env = json.loads(data)
    except (TypeError, UnicodeDecodeError, RecursionError) as e:
        raise ValueError(f"Undecodable frame: {e}") from e
    if not isinstance(env, dict):
        raise ValueError(f"Envelope is not an object: {type(env).__name__}")
    tag = env.get('t')
    if not isinstance(tag, str) or not tag:
        raise ValueError("Envelope has no type tag")
    return tag, env.get('p')


def hello_message(name: str) -> str:
    return encode(MessageType.HELLO, {'v': PROTOCOL_VERSION, 'name': name})


def input_message(command: Command) -> str:
    return encode(MessageType.INPUT, command.to_payload())
