"""
Main game client: joins a room, samples the pointer, submits input at a
fixed rate, and renders the interpolated world state.

Three activities share one thread, each advanced once per loop iteration:
perception (pointer sample -> InputSampler), network (TransportSession.poll:
inbound drain + due input send) and rendering (WorldStateProvider ->
GameRenderer). None of them blocks the others.
"""

import time

from common.config import (
    DEFAULT_SERVER_URL, INPUT_SEND_INTERVAL_MS, RENDER_DELAY_MS,
    INPUT_DEADZONE, INPUT_MAX_RADIUS
)
from common.metrics_logger import MetricsLogger
from client.input_sampler import InputSampler
from client.interpolation import Interpolator
from client.renderer import GameRenderer
from client.snapshot_buffer import SnapshotBuffer
from client.transport import TransportSession, SessionState
from client.world_state import WorldStateProvider, now_ms


class GameClient:
    """
    Game client for the authoritative arena server.
    Pure delayed interpolation: the local player is drawn where the server
    says it is, never predicted.
    """

    def __init__(self, url: str = DEFAULT_SERVER_URL, name: str = 'player',
                 room_code: str = None, headless: bool = False,
                 render_delay: float = RENDER_DELAY_MS,
                 send_interval: float = INPUT_SEND_INTERVAL_MS,
                 deadzone: float = INPUT_DEADZONE,
                 max_radius: float = INPUT_MAX_RADIUS,
                 connector=None, spawn=None):
        self.name = name
        self.room_code = room_code
        self.headless = headless
        self.running = False

        # Core systems
        self.metrics = MetricsLogger()
        self.buffer = SnapshotBuffer()
        self.sampler = InputSampler(deadzone=deadzone, max_radius=max_radius)
        self.interpolator = Interpolator(render_delay)
        self.world = WorldStateProvider(self.buffer, self.interpolator,
                                        render_delay=render_delay)
        session_kwargs = {}
        if connector is not None:
            session_kwargs['connector'] = connector
        if spawn is not None:
            session_kwargs['spawn'] = spawn
        self.session = TransportSession(
            self.buffer, input_source=self.sampler, url=url,
            send_interval=send_interval, metrics=self.metrics,
            **session_kwargs
        )
        self.session.subscribe(self._on_state_change)

    def _on_state_change(self, old_state: str, new_state: str):
        if new_state in SessionState.TERMINAL:
            print(f"[CLIENT] Connection lost ({old_state} -> {new_state}); "
                  f"press Enter to rejoin")

    def get_metrics_display(self) -> dict:
        """Get metrics dict for HUD display."""
        metrics = {}
        metrics['State'] = self.session.state
        metrics['Player'] = str(self.session.player_id or '-')
        alpha = self.interpolator.last_alpha
        metrics['Alpha'] = f"{alpha:.2f}" if alpha is not None else '-'
        metrics['Jitter'] = f"{self.metrics.smoothed_jitter:.1f} ms"
        metrics['Buffered'] = str(len(self.buffer))
        metrics['Inputs'] = str(self.session.inputs_sent)
        return metrics

    def step(self, renderer: GameRenderer):
        """One pass over perception, network and rendering."""
        # 1. Perception
        sample = renderer.sample_pointer()
        self.sampler.push_sample(sample)
        if renderer.recenter_requested:
            self.sampler.recenter()
            renderer.recenter_requested = False

        # 2. Explicit rejoin after a dropped connection
        if renderer.rejoin_requested:
            renderer.rejoin_requested = False
            if self.session.state in SessionState.TERMINAL:
                self.session.join(self.name, self.room_code)

        # 3. Network: inbound drain + due input send
        self.session.poll(now_ms())

        # 4. Render
        world = self.world.get_world_state()
        self.metrics.log_alpha(self.interpolator.last_alpha)
        renderer.render(world, self.session.player_id, sample,
                        self.sampler.anchor, self.sampler.max_radius,
                        self.get_metrics_display())
        return world

    def run(self):
        """Main client loop."""
        self.running = True

        if self.headless:
            renderer = GameRenderer.headless_renderer()
        else:
            renderer = GameRenderer()

        self.session.join(self.name, self.room_code)

        last_bandwidth_time = time.perf_counter()
        last_bytes_sent = 0
        last_bytes_recv = 0

        try:
            while self.running:
                if renderer.check_quit():
                    break

                self.step(renderer)

                now = time.perf_counter()
                if now - last_bandwidth_time >= 1.0:
                    self.metrics.log_bandwidth(
                        self.session.total_bytes_sent - last_bytes_sent,
                        self.session.total_bytes_recv - last_bytes_recv
                    )
                    last_bytes_sent = self.session.total_bytes_sent
                    last_bytes_recv = self.session.total_bytes_recv
                    last_bandwidth_time = now

                # Yield CPU; the windowed renderer already caps the frame rate
                if renderer.headless:
                    time.sleep(0.001)

        except KeyboardInterrupt:
            print("\n[CLIENT] Interrupted")
        finally:
            self.session.disconnect()
            self.running = False
            renderer.close()

            self.metrics.save(f'client_{self.session.player_id or 0}_metrics.json')
            summary = self.metrics.get_summary()
            if summary:
                print(f"[CLIENT] Metrics summary: {summary}")


def main():
    """Entry point for running the client standalone."""
    import argparse
    parser = argparse.ArgumentParser(description='Flail Arena Client')
    parser.add_argument('--url', default=DEFAULT_SERVER_URL,
                        help='Server WebSocket endpoint')
    parser.add_argument('--name', default='player', help='Display name')
    parser.add_argument('--room', default=None, help='Room code to join')
    parser.add_argument('--headless', action='store_true',
                        help='Run without pygame (for bots/testing)')
    parser.add_argument('--render-delay', type=float, default=RENDER_DELAY_MS,
                        help='Interpolation delay behind real time (ms)')
    parser.add_argument('--send-interval', type=float,
                        default=INPUT_SEND_INTERVAL_MS,
                        help='Milliseconds between input messages')
    parser.add_argument('--deadzone', type=float, default=INPUT_DEADZONE,
                        help='Normalized pointer deadzone')
    parser.add_argument('--max-radius', type=float, default=INPUT_MAX_RADIUS,
                        help='Normalized pointer offset for full deflection')
    args = parser.parse_args()

    client = GameClient(
        url=args.url, name=args.name, room_code=args.room,
        headless=args.headless, render_delay=args.render_delay,
        send_interval=args.send_interval, deadzone=args.deadzone,
        max_radius=args.max_radius
    )
    client.run()


if __name__ == '__main__':
    main()
