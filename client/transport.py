"""
WebSocket session with the game server.

The session is a small state machine driven from the client's main loop:
join() starts the WebSocket handshake on a worker thread and returns at
once. poll() picks up the handshake result, drains inbound messages without
blocking and sends input at a fixed cadence once the server has welcomed us.
Transport faults never propagate to the caller; they move the session to
CLOSED or ERRORED and stop input submission.
Buffered snapshots are kept so the last world state remains renderable.
"""

import threading
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from common.config import (
    DEFAULT_SERVER_URL, ROOM_QUERY_PARAM, CONNECT_TIMEOUT,
    INPUT_SEND_INTERVAL_MS, RECV_DRAIN_LIMIT
)
from common.protocol import (
    MessageType, Command, decode_envelope, hello_message, input_message
)
from common.snapshot import Snapshot, canonical_id
from client.snapshot_buffer import SnapshotBuffer
from client.world_state import now_ms


class SessionState:
    """Connection lifecycle states."""
    DISCONNECTED = 'disconnected'
    CONNECTING   = 'connecting'
    OPEN         = 'open'
    CLOSED       = 'closed'
    ERRORED      = 'errored'

    TERMINAL = (CLOSED, ERRORED)


class SessionEvent:
    """Events fed to TransportSession.dispatch()."""
    OPEN    = 'open'
    MESSAGE = 'message'
    CLOSE   = 'close'
    ERROR   = 'error'


TRANSPORT_ERRORS = (OSError, WebSocketException)


def default_connector(url: str):
    """Open a blocking-handshake WebSocket client connection."""
    return connect(url, open_timeout=CONNECT_TIMEOUT)


def start_thread(target, *args):
    """Run target(*args) on a daemon thread."""
    thread = threading.Thread(target=target, args=args, daemon=True)
    thread.start()
    return thread


def frame_size(data) -> int:
    """Size of a text or binary frame in bytes."""
    if isinstance(data, str):
        return len(data.encode('utf-8'))
    return len(data)


def build_url(base_url: str, room_code: str = None) -> str:
    """Append the room selector to the endpoint URL, if any."""
    if not room_code:
        return base_url
    parts = urlsplit(base_url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
             if k != ROOM_QUERY_PARAM]
    query.append((ROOM_QUERY_PARAM, room_code))
    return urlunsplit(parts._replace(query=urlencode(query)))


class TransportSession:
    """
    Owns the live connection handle and the input submission schedule.

    Args:
        buffer: where received snapshots are appended
        input_source: object with next_command() -> Command, polled on each
                      submission tick (typically an InputSampler)
        url: server endpoint
        connector: callable(url) -> connection with send/recv/close
        spawn: callable(target, *args) that runs the handshake off the loop
        clock: callable returning local time in ms
        send_interval: ms between input messages
        metrics: optional MetricsLogger
    """

    def __init__(self, buffer: SnapshotBuffer, input_source=None,
                 url: str = DEFAULT_SERVER_URL, connector=default_connector,
                 clock=now_ms, send_interval: float = INPUT_SEND_INTERVAL_MS,
                 metrics=None, spawn=start_thread):
        self.buffer = buffer
        self.input_source = input_source
        self.url = url
        self.connector = connector
        self.clock = clock
        self.send_interval = send_interval
        self.metrics = metrics
        self.spawn = spawn

        self.state = SessionState.DISCONNECTED
        self.name = ''
        self.player_id = None
        self.tick_hz = None
        self.last_error = None

        self._conn = None
        self._submitting = False
        self._next_send_time = None
        self._listeners = []

        # Handshake hand-off from the worker thread: one (conn, error) cell,
        # tagged with the attempt that produced it
        self._handshake_lock = threading.Lock()
        self._attempt = 0
        self._handshake = None

        self._handlers = {
            SessionEvent.OPEN: self._on_open,
            SessionEvent.MESSAGE: self._on_message,
            SessionEvent.CLOSE: self._on_close,
            SessionEvent.ERROR: self._on_error,
        }

        # Statistics
        self.total_bytes_sent = 0
        self.total_bytes_recv = 0
        self.inputs_sent = 0

    # -- observers ---------------------------------------------------------

    @property
    def connected(self) -> bool:
        return self.state == SessionState.OPEN

    @property
    def submitting(self) -> bool:
        return self._submitting

    def subscribe(self, callback):
        """Register callback(old_state, new_state) for every transition."""
        self._listeners.append(callback)

    def _set_state(self, new_state: str):
        old_state = self.state
        if old_state == new_state:
            return
        self.state = new_state
        for callback in list(self._listeners):
            callback(old_state, new_state)

    # -- caller actions ----------------------------------------------------

    def join(self, name: str, room_code: str = None):
        """
        Join a room without blocking: the session stays CONNECTING until
        poll() sees the handshake finish. While already open this only
        re-sends hello; while a connection attempt is in progress it does
        nothing.
        """
        self.name = name
        if self.state == SessionState.OPEN:
            self._send(hello_message(self.name))
            return
        if self.state == SessionState.CONNECTING:
            return

        url = build_url(self.url, room_code)
        self.player_id = None
        self.tick_hz = None
        self.last_error = None
        with self._handshake_lock:
            self._attempt += 1
            attempt = self._attempt
            self._handshake = None
        self._set_state(SessionState.CONNECTING)
        print(f"[NET] Connecting to {url}...")
        self.spawn(self._run_handshake, attempt, url)
        self._collect_handshake()

    def disconnect(self):
        """Stop sending input and close the connection. Safe to repeat."""
        self._teardown()
        if self.state in (SessionState.OPEN, SessionState.CONNECTING):
            self._set_state(SessionState.CLOSED)
            print("[NET] Disconnected")

    def poll(self, now: float = None):
        """
        One cooperative step: drain pending inbound messages, then send
        input if a submission tick is due. Never blocks.
        """
        if self.state == SessionState.CONNECTING:
            self._collect_handshake()
        if self.state != SessionState.OPEN:
            return
        if now is None:
            now = self.clock()

        for _ in range(RECV_DRAIN_LIMIT):
            conn = self._conn
            if conn is None:
                return
            try:
                data = conn.recv(timeout=0)
            except TimeoutError:
                break
            except ConnectionClosed as e:
                self.dispatch(SessionEvent.CLOSE, e)
                return
            except TRANSPORT_ERRORS as e:
                self.dispatch(SessionEvent.ERROR, e)
                return
            self.dispatch(SessionEvent.MESSAGE, data)

        if self._submitting and self._input_due(now):
            self._send_input()
            self._schedule_next_input(now)

    # -- state machine -----------------------------------------------------

    def dispatch(self, event: str, data=None):
        """Single entry point for connection events."""
        handler = self._handlers.get(event)
        if handler is None:
            raise ValueError(f"Unknown session event: {event!r}")
        handler(data)

    def _on_open(self, _data):
        if self.state != SessionState.CONNECTING:
            return
        self._set_state(SessionState.OPEN)
        print(f"[NET] Connected, joining as {self.name!r}")
        self._send(hello_message(self.name))

    def _on_message(self, data):
        if self.state != SessionState.OPEN:
            return
        self.total_bytes_recv += frame_size(data)
        try:
            tag, payload = decode_envelope(data)
        except ValueError:
            return
        if not isinstance(payload, dict):
            return

        msg_type = MessageType.inbound(tag)
        if msg_type == MessageType.WELCOME:
            self._handle_welcome(payload)
        elif msg_type == MessageType.STATE:
            self._handle_state(payload)

    def _on_close(self, reason):
        if self.state in SessionState.TERMINAL:
            return
        self._teardown()
        self._set_state(SessionState.CLOSED)
        print(f"[NET] Connection closed: {reason}")

    def _on_error(self, error):
        if self.state in SessionState.TERMINAL:
            return
        self.last_error = error
        self._teardown()
        self._set_state(SessionState.ERRORED)
        print(f"[NET] Connection error: {error}")

    # -- handshake ---------------------------------------------------------

    def _run_handshake(self, attempt: int, url: str):
        """Worker thread body: connect, then hand the outcome to the loop."""
        try:
            conn, error = self.connector(url), None
        except Exception as e:
            conn, error = None, e
        with self._handshake_lock:
            if attempt == self._attempt:
                self._handshake = (conn, error)
                return
        # Superseded by disconnect() or a newer join()
        if conn is not None:
            self._close_quietly(conn)

    def _collect_handshake(self):
        with self._handshake_lock:
            result, self._handshake = self._handshake, None
        if result is None:
            return
        conn, error = result
        if error is not None:
            self.dispatch(SessionEvent.ERROR, error)
            if not isinstance(error, TRANSPORT_ERRORS):
                raise error
            return
        self._conn = conn
        self.dispatch(SessionEvent.OPEN)

    # -- message handlers --------------------------------------------------

    def _handle_welcome(self, payload: dict):
        self.player_id = canonical_id(payload.get('playerId'))
        tick_hz = payload.get('tickHz')
        self.tick_hz = tick_hz if isinstance(tick_hz, (int, float)) else None
        print(f"[NET] Welcome! Player ID: {self.player_id}, "
              f"server tick rate: {self.tick_hz} Hz")
        self._start_submission()

    def _handle_state(self, payload: dict):
        received_at = self.clock()
        self.buffer.push(Snapshot.from_wire(payload), received_at)
        if self.metrics:
            self.metrics.log_snapshot_arrival(received_at)

    # -- input submission --------------------------------------------------

    def _start_submission(self):
        self._submitting = True
        self._next_send_time = None     # due on the next poll

    def _stop_submission(self):
        self._submitting = False

    def _input_due(self, now: float) -> bool:
        return self._next_send_time is None or now >= self._next_send_time

    def _schedule_next_input(self, now: float):
        if self._next_send_time is None:
            self._next_send_time = now
        self._next_send_time += self.send_interval
        # Fell behind (stalled frame): resume the cadence instead of bursting
        if self._next_send_time <= now:
            self._next_send_time = now + self.send_interval

    def _send_input(self):
        if self.input_source is not None:
            command = self.input_source.next_command()
        else:
            command = Command()
        if self._send(input_message(command)):
            self.inputs_sent += 1
            if self.metrics:
                self.metrics.log_input_sent()

    # -- low level ---------------------------------------------------------

    def _send(self, message: str) -> bool:
        conn = self._conn
        if conn is None:
            return False
        try:
            conn.send(message)
        except ConnectionClosed as e:
            self.dispatch(SessionEvent.CLOSE, e)
            return False
        except TRANSPORT_ERRORS as e:
            self.dispatch(SessionEvent.ERROR, e)
            return False
        self.total_bytes_sent += frame_size(message)
        return True

    def _teardown(self):
        self._stop_submission()
        with self._handshake_lock:
            self._attempt += 1
            self._handshake = None
        conn, self._conn = self._conn, None
        if conn is not None:
            self._close_quietly(conn)

    @staticmethod
    def _close_quietly(conn):
        try:
            conn.close()
        except TRANSPORT_ERRORS:
            pass
