"""
Unit tests for the transport session state machine, using an in-memory
connection in place of a real WebSocket.
"""

import collections
import json
import unittest

from websockets.exceptions import ConnectionClosedOK, InvalidURI

from common.protocol import Command
from client.input_sampler import Gesture, InputSampler, PointerSample
from client.snapshot_buffer import SnapshotBuffer
from client.transport import (
    SessionEvent, SessionState, TransportSession, build_url, frame_size
)


class FakeConnection:
    """Mimics the send/recv/close surface of a websockets sync connection."""

    def __init__(self):
        self.sent = []
        self.inbox = collections.deque()
        self.closed = False

    def feed(self, t: str, p):
        self.inbox.append(json.dumps({'t': t, 'p': p}))

    def send(self, message):
        if self.closed:
            raise ConnectionClosedOK(None, None)
        self.sent.append(json.loads(message))

    def recv(self, timeout=None):
        if self.inbox:
            item = self.inbox.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        raise TimeoutError

    def close(self):
        self.closed = True

    def sent_of_type(self, t: str) -> list:
        return [m for m in self.sent if m['t'] == t]


def run_inline(target, *args):
    """Run the handshake synchronously so join() completes in place."""
    target(*args)


class DeferredSpawn:
    """Holds handshake jobs until the test releases them."""

    def __init__(self):
        self.jobs = []

    def __call__(self, target, *args):
        self.jobs.append((target, args))

    def release(self, index: int = 0):
        target, args = self.jobs[index]
        target(*args)


class FakeConnector:

    def __init__(self):
        self.urls = []
        self.connections = []

    def __call__(self, url: str):
        self.urls.append(url)
        conn = FakeConnection()
        self.connections.append(conn)
        return conn


class TestBuildUrl(unittest.TestCase):

    def test_no_room(self):
        self.assertEqual(build_url('ws://h:1/ws'), 'ws://h:1/ws')

    def test_room_appended(self):
        self.assertEqual(build_url('ws://h:1/ws', 'ABC123'),
                         'ws://h:1/ws?room=ABC123')

    def test_existing_query_kept(self):
        self.assertEqual(build_url('ws://h:1/ws?x=1', 'R'),
                         'ws://h:1/ws?x=1&room=R')

    def test_room_replaced(self):
        self.assertEqual(build_url('ws://h:1/ws?room=OLD', 'NEW'),
                         'ws://h:1/ws?room=NEW')


class TestTransportSession(unittest.TestCase):
    """Test connection lifecycle and message dispatch."""

    def setUp(self):
        self.now = 1000.0
        self.buffer = SnapshotBuffer()
        self.sampler = InputSampler()
        self.connector = FakeConnector()
        self.transitions = []
        self.session = TransportSession(
            self.buffer, input_source=self.sampler, url='ws://test/ws',
            connector=self.connector, clock=lambda: self.now,
            send_interval=25.0, spawn=run_inline
        )
        self.session.subscribe(
            lambda old, new: self.transitions.append((old, new)))

    @property
    def conn(self) -> FakeConnection:
        return self.connector.connections[-1]

    def join_and_welcome(self):
        self.session.join('alice', 'ROOM1')
        self.conn.feed('welcome', {'playerId': 7, 'tickHz': 40})
        self.session.poll()

    # -- join / handshake --------------------------------------------------

    def test_join_opens_and_sends_hello(self):
        self.session.join('alice', 'ROOM1')
        self.assertEqual(self.session.state, SessionState.OPEN)
        self.assertTrue(self.session.connected)
        self.assertEqual(self.connector.urls, ['ws://test/ws?room=ROOM1'])
        self.assertEqual(self.conn.sent,
                         [{'t': 'hello', 'p': {'v': 1, 'name': 'alice'}}])
        self.assertEqual(self.transitions, [
            (SessionState.DISCONNECTED, SessionState.CONNECTING),
            (SessionState.CONNECTING, SessionState.OPEN),
        ])

    def test_join_while_open_resends_hello_only(self):
        self.session.join('alice')
        self.session.join('alice')
        self.assertEqual(len(self.connector.connections), 1)
        self.assertEqual(len(self.conn.sent_of_type('hello')), 2)

    def test_join_while_connecting_is_noop(self):
        self.session.state = SessionState.CONNECTING
        self.session.join('alice')
        self.assertEqual(self.connector.urls, [])
        self.assertEqual(self.session.state, SessionState.CONNECTING)

    def test_connect_failure_goes_to_errored(self):
        def failing(url):
            raise ConnectionRefusedError("refused")
        session = TransportSession(self.buffer, connector=failing,
                                   clock=lambda: self.now,
                                   spawn=run_inline)
        session.join('alice')
        self.assertEqual(session.state, SessionState.ERRORED)
        self.assertIsInstance(session.last_error, ConnectionRefusedError)
        self.assertFalse(session.connected)

    def test_invalid_url_goes_to_errored(self):
        def failing(url):
            raise InvalidURI(url, "not a websocket URI")
        session = TransportSession(self.buffer, connector=failing,
                                   spawn=run_inline)
        session.join('alice')
        self.assertEqual(session.state, SessionState.ERRORED)

    def test_join_does_not_wait_for_handshake(self):
        spawn = DeferredSpawn()
        session = TransportSession(self.buffer, connector=self.connector,
                                   clock=lambda: self.now, spawn=spawn)
        session.join('alice')
        self.assertEqual(session.state, SessionState.CONNECTING)
        self.assertEqual(self.connector.urls, [])
        session.poll()
        self.assertEqual(session.state, SessionState.CONNECTING)

        spawn.release()
        self.assertEqual(session.state, SessionState.CONNECTING)
        session.poll()
        self.assertEqual(session.state, SessionState.OPEN)
        self.assertEqual(len(self.conn.sent_of_type('hello')), 1)

    def test_second_join_during_handshake_opens_one_connection(self):
        spawn = DeferredSpawn()
        session = TransportSession(self.buffer, connector=self.connector,
                                   clock=lambda: self.now, spawn=spawn)
        session.join('alice')
        session.join('alice')
        self.assertEqual(len(spawn.jobs), 1)

        spawn.release()
        session.poll()
        session.join('alice')
        self.assertEqual(len(self.connector.connections), 1)
        self.assertEqual(session.state, SessionState.OPEN)
        self.assertEqual(len(self.conn.sent_of_type('hello')), 2)

    def test_disconnect_during_handshake_closes_late_connection(self):
        spawn = DeferredSpawn()
        session = TransportSession(self.buffer, connector=self.connector,
                                   clock=lambda: self.now, spawn=spawn)
        session.join('alice')
        session.disconnect()
        self.assertEqual(session.state, SessionState.CLOSED)

        spawn.release()
        session.poll()
        self.assertTrue(self.conn.closed)
        self.assertEqual(self.conn.sent, [])
        self.assertEqual(session.state, SessionState.CLOSED)

    def test_handshake_failure_reported_on_poll(self):
        def failing(url):
            raise ConnectionRefusedError("refused")
        spawn = DeferredSpawn()
        session = TransportSession(self.buffer, connector=failing, spawn=spawn)
        session.join('alice')
        spawn.release()
        session.poll()
        self.assertEqual(session.state, SessionState.ERRORED)
        self.assertIsInstance(session.last_error, ConnectionRefusedError)

    # -- welcome / input cadence -------------------------------------------

    def test_no_input_before_welcome(self):
        self.session.join('alice')
        for _ in range(5):
            self.now += 30.0
            self.session.poll()
        self.assertEqual(self.conn.sent_of_type('input'), [])
        self.assertFalse(self.session.submitting)

    def test_welcome_records_identity_and_starts_input(self):
        self.join_and_welcome()
        self.assertEqual(self.session.player_id, '7')
        self.assertEqual(self.session.tick_hz, 40)
        self.assertTrue(self.session.submitting)
        self.assertEqual(len(self.conn.sent_of_type('input')), 1)

    def test_capitalized_welcome_tag(self):
        self.session.join('alice')
        self.conn.feed('Welcome', {'playerId': 'abc', 'tickHz': 40})
        self.session.poll()
        self.assertEqual(self.session.player_id, 'abc')
        self.assertTrue(self.session.submitting)

    def test_fixed_cadence(self):
        self.join_and_welcome()
        # Many polls within one interval send nothing extra
        for _ in range(10):
            self.now += 2.0
            self.session.poll()
        self.assertEqual(len(self.conn.sent_of_type('input')), 1)
        self.now = 1025.0
        self.session.poll()
        self.assertEqual(len(self.conn.sent_of_type('input')), 2)

    def test_stall_does_not_burst(self):
        self.join_and_welcome()
        self.now += 1000.0
        self.session.poll()
        self.session.poll()
        self.assertEqual(len(self.conn.sent_of_type('input')), 2)

    def test_unchanged_command_resent(self):
        self.sampler.push_sample(PointerSample(0.75, 0.5, Gesture.CLOSED))
        self.join_and_welcome()
        self.now += 25.0
        self.session.poll()
        inputs = self.conn.sent_of_type('input')
        self.assertEqual(len(inputs), 2)
        self.assertEqual(inputs[0]['p'], inputs[1]['p'])
        self.assertTrue(inputs[0]['p']['shoot'])

    def test_out_of_range_command_clamped_on_wire(self):
        class WildSource:
            def next_command(self):
                cmd = Command()
                cmd.ax = 4.0
                cmd.ay = -9.0
                return cmd

        self.session.input_source = WildSource()
        self.join_and_welcome()
        payload = self.conn.sent_of_type('input')[0]['p']
        self.assertEqual(payload['ax'], 1.0)
        self.assertEqual(payload['ay'], -1.0)

    # -- state messages ----------------------------------------------------

    def test_state_pushed_to_buffer(self):
        self.join_and_welcome()
        self.conn.feed('state', {'tick': 1, 'players': [{'id': 1, 'x': 3}]})
        self.now = 1010.0
        self.session.poll()
        older, newer = self.buffer.latest_pair()
        self.assertIsNone(older)
        self.assertEqual(newer.snapshot.tick, 1)
        self.assertEqual(newer.received_at, 1010.0)
        self.assertEqual(newer.snapshot.players['1'].x, 3.0)

    def test_burst_of_states_keeps_last_two(self):
        self.join_and_welcome()
        for tick in range(1, 6):
            self.conn.feed('state', {'tick': tick})
        self.session.poll()
        older, newer = self.buffer.latest_pair()
        self.assertEqual((older.snapshot.tick, newer.snapshot.tick), (4, 5))

    def test_malformed_messages_dropped(self):
        self.join_and_welcome()
        self.conn.inbox.extend([
            '{broken', '[]', '{"p": {}}', '{"t": 3}',
            json.dumps({'t': 'state', 'p': 'not an object'}),
            json.dumps({'t': 'chat', 'p': {'text': 'hi'}}),
            b'\xff\xfe',
            '[' * 100000 + ']' * 100000,
            json.dumps({'t': 'state', 'p': {'tick': 10 ** 400}}),
        ])
        self.session.poll()
        self.assertEqual(len(self.buffer), 1)
        self.assertEqual(self.buffer.latest_pair()[1].snapshot.tick, 0)
        self.assertEqual(self.session.state, SessionState.OPEN)
        self.assertEqual(self.session.player_id, '7')

    def test_oversized_numbers_do_not_break_session(self):
        self.join_and_welcome()
        self.conn.feed('state', {'tick': 1, 'players': [{'id': 1, 'x': 10 ** 400}]})
        self.session.poll()
        self.assertEqual(self.session.state, SessionState.OPEN)
        self.assertEqual(self.buffer.latest_pair()[1].snapshot.players['1'].x, 0.0)

    def test_byte_counters_use_encoded_size(self):
        self.join_and_welcome()
        recv_before = self.session.total_bytes_recv
        frame = '{"t":"state","p":{"tick":1,"players":[{"id":1,"name":"zo\u00eb \u2603"}]}}'
        self.conn.inbox.append(frame)
        self.session.poll()
        self.assertEqual(self.session.total_bytes_recv - recv_before,
                         len(frame.encode('utf-8')))
        self.assertGreater(len(frame.encode('utf-8')), len(frame))

    def test_frame_size(self):
        self.assertEqual(frame_size('abc'), 3)
        self.assertEqual(frame_size('\u00eb'), 2)
        self.assertEqual(frame_size(b'\x00\x01'), 2)

    # -- close / error / disconnect ----------------------------------------

    def test_remote_close_stops_input_keeps_buffer(self):
        self.join_and_welcome()
        self.conn.feed('state', {'tick': 1, 'players': [{'id': 1}]})
        self.conn.inbox.append(ConnectionClosedOK(None, None))
        self.session.poll()
        self.assertEqual(self.session.state, SessionState.CLOSED)
        self.assertFalse(self.session.submitting)
        self.assertEqual(len(self.buffer), 1)

        sent_before = len(self.conn.sent)
        self.now += 100.0
        self.session.poll()
        self.assertEqual(len(self.conn.sent), sent_before)

    def test_transport_error_moves_to_errored(self):
        self.join_and_welcome()
        self.conn.inbox.append(OSError("reset by peer"))
        self.session.poll()
        self.assertEqual(self.session.state, SessionState.ERRORED)
        self.assertTrue(self.conn.closed)
        self.assertFalse(self.session.submitting)

    def test_send_failure_closes_session(self):
        self.join_and_welcome()
        self.conn.closed = True
        self.now += 25.0
        self.session.poll()
        self.assertEqual(self.session.state, SessionState.CLOSED)

    def test_no_auto_reconnect(self):
        self.join_and_welcome()
        self.conn.inbox.append(ConnectionClosedOK(None, None))
        for _ in range(5):
            self.now += 100.0
            self.session.poll()
        self.assertEqual(len(self.connector.connections), 1)

    def test_explicit_rejoin_after_close(self):
        self.join_and_welcome()
        self.session.dispatch(SessionEvent.CLOSE, 'server went away')
        self.session.join('alice', 'ROOM1')
        self.assertEqual(len(self.connector.connections), 2)
        self.assertEqual(self.session.state, SessionState.OPEN)
        self.assertIsNone(self.session.player_id)

    def test_disconnect_is_idempotent(self):
        self.join_and_welcome()
        conn = self.conn
        self.session.disconnect()
        self.session.disconnect()
        self.assertTrue(conn.closed)
        self.assertEqual(self.session.state, SessionState.CLOSED)
        self.assertFalse(self.session.submitting)

    def test_disconnect_before_join(self):
        self.session.disconnect()
        self.assertEqual(self.session.state, SessionState.DISCONNECTED)

    def test_unknown_event_rejected(self):
        with self.assertRaises(ValueError):
            self.session.dispatch('bogus')


if __name__ == '__main__':
    unittest.main()
