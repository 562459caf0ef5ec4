"""
Metrics logging for performance analysis.
Logs snapshot arrival intervals, arrival jitter, interpolation alpha,
input send rate and bandwidth.
"""

import json
import os
import time


class MetricsLogger:
    """Collects and persists client-side network/interpolation metrics."""

    def __init__(self, log_dir: str = 'analysis/logs'):
        self.log_dir = log_dir
        self.start_time = time.time()
        self.data = {
            'snapshot_interval': [],
            'jitter': [],
            'alpha': [],
            'inputs': [],
            'bandwidth': [],
        }
        # Running jitter computation (RFC 3550)
        self._prev_arrival = None
        self._prev_interval = None
        self._smoothed_jitter = 0.0
        self._inputs_since_flush = 0
        # Per-frame alpha folded into one sample per flush
        self._alpha_sum = 0.0
        self._alpha_frames = 0
        self._alpha_saturated = 0

    def _elapsed(self) -> float:
        return round(time.time() - self.start_time, 4)

    def log_snapshot_arrival(self, received_at_ms: float):
        """Log a snapshot receipt time (local clock, ms)."""
        t = self._elapsed()
        if self._prev_arrival is not None:
            interval = received_at_ms - self._prev_arrival
            self.data['snapshot_interval'].append({
                't': t, 'interval_ms': round(interval, 3)
            })

            # Jitter is the variation between consecutive intervals
            if self._prev_interval is not None:
                diff = abs(interval - self._prev_interval)
                self._smoothed_jitter += (diff - self._smoothed_jitter) / 16.0
                self.data['jitter'].append({
                    't': t,
                    'jitter_ms': round(self._smoothed_jitter, 3),
                    'instant_jitter_ms': round(diff, 3)
                })
            self._prev_interval = interval
        self._prev_arrival = received_at_ms

    def log_alpha(self, alpha: float):
        if alpha is None:
            return
        self._alpha_sum += alpha
        self._alpha_frames += 1
        if alpha >= 1.0:
            self._alpha_saturated += 1

    def _flush_alpha(self, t: float):
        if not self._alpha_frames:
            return
        self.data['alpha'].append({
            't': t,
            'alpha': round(self._alpha_sum / self._alpha_frames, 4),
            'saturated': self._alpha_saturated,
            'frames': self._alpha_frames
        })
        self._alpha_sum = 0.0
        self._alpha_frames = 0
        self._alpha_saturated = 0

    def log_input_sent(self):
        self._inputs_since_flush += 1

    def log_bandwidth(self, bytes_sent: int, bytes_recv: int):
        """Log one interval's traffic; also flushes input and alpha samples."""
        t = self._elapsed()
        self.data['bandwidth'].append({
            't': t,
            'sent_bytes': bytes_sent,
            'recv_bytes': bytes_recv
        })
        self.data['inputs'].append({'t': t, 'count': self._inputs_since_flush})
        self._inputs_since_flush = 0
        self._flush_alpha(t)

    @property
    def smoothed_jitter(self) -> float:
        return self._smoothed_jitter

    def save(self, filename: str = 'metrics.json'):
        self._flush_alpha(self._elapsed())
        os.makedirs(self.log_dir, exist_ok=True)
        path = os.path.join(self.log_dir, filename)
        with open(path, 'w') as f:
            json.dump(self.data, f, indent=2)
        print(f"[METRICS] Saved to {path}")
        return path

    def get_summary(self) -> dict:
        """Compute summary statistics."""
        summary = {}
        intervals = [s['interval_ms'] for s in self.data['snapshot_interval']]
        if intervals:
            ordered = sorted(intervals)
            summary['interval_mean'] = sum(intervals) / len(intervals)
            summary['interval_min'] = ordered[0]
            summary['interval_max'] = ordered[-1]
            summary['interval_p50'] = ordered[len(ordered) // 2]
            summary['interval_p95'] = ordered[int(len(ordered) * 0.95)]

        jitters = [j['jitter_ms'] for j in self.data['jitter']]
        if jitters:
            summary['jitter_mean'] = sum(jitters) / len(jitters)

        samples = list(self.data['alpha'])
        if self._alpha_frames:
            samples.append({'alpha': self._alpha_sum / self._alpha_frames,
                            'saturated': self._alpha_saturated,
                            'frames': self._alpha_frames})
        frames = sum(a['frames'] for a in samples)
        if frames:
            summary['alpha_mean'] = \
                sum(a['alpha'] * a['frames'] for a in samples) / frames
            # Frames rendered at or past the newest snapshot (starved buffer)
            summary['alpha_saturated'] = \
                sum(a['saturated'] for a in samples) / frames

        counts = [i['count'] for i in self.data['inputs']]
        if counts:
            summary['inputs_per_sec_mean'] = sum(counts) / len(counts)

        return summary
