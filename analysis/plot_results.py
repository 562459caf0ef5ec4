"""
Analysis and visualization of client metrics.
Generates plots for snapshot arrival intervals, jitter, interpolation alpha
and bandwidth.
"""

import json
import os


def load_metrics(filepath: str) -> dict:
    """Load a metrics JSON file."""
    with open(filepath) as f:
        return json.load(f)


def plot_arrival_analysis(data: dict, output_dir: str = 'analysis'):
    """Generate snapshot arrival interval and jitter plots."""
    try:
        import matplotlib.pyplot as plt
        import numpy as np
    except ImportError:
        print("[ANALYSIS] matplotlib/numpy not available. Skipping plots.")
        return

    os.makedirs(output_dir, exist_ok=True)

    fig, axes = plt.subplots(2, 2, figsize=(14, 10))
    fig.suptitle('Snapshot Arrival Analysis', fontsize=14, fontweight='bold')

    # ── 1. Inter-arrival interval over time ──
    ax = axes[0][0]
    intervals = data.get('snapshot_interval', [])
    if intervals:
        times = [s['t'] for s in intervals]
        values = [s['interval_ms'] for s in intervals]
        ax.plot(times, values, linewidth=0.8, color='#2196F3')
        mean_iv = np.mean(values)
        ax.axhline(y=mean_iv, color='red', linestyle='--', linewidth=1,
                   label=f'Mean: {mean_iv:.1f} ms')
        ax.legend(fontsize=9)
    ax.set_title('Snapshot Inter-arrival Interval')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Interval (ms)')
    ax.grid(True, alpha=0.3)

    # ── 2. Jitter over time ──
    ax = axes[0][1]
    jitters = data.get('jitter', [])
    if jitters:
        jtimes = [j['t'] for j in jitters]
        jvalues = [j['jitter_ms'] for j in jitters]
        instant = [j.get('instant_jitter_ms', 0) for j in jitters]
        ax.plot(jtimes, instant, linewidth=0.5, alpha=0.5, color='orange',
                label='Instantaneous')
        ax.plot(jtimes, jvalues, linewidth=1.5, color='red',
                label='Smoothed (RFC 3550)')
        ax.legend(fontsize=9)
    ax.set_title('Arrival Jitter')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Jitter (ms)')
    ax.grid(True, alpha=0.3)

    # ── 3. Interval distribution ──
    ax = axes[1][0]
    if intervals:
        values = [s['interval_ms'] for s in intervals]
        ax.hist(values, bins=50, edgecolor='black', alpha=0.7, color='#4CAF50')
        arr = np.array(values)
        stats_text = (f'Mean: {np.mean(arr):.1f} ms\n'
                      f'Std:  {np.std(arr):.1f} ms\n'
                      f'P50:  {np.percentile(arr, 50):.1f} ms\n'
                      f'P95:  {np.percentile(arr, 95):.1f} ms')
        ax.text(0.95, 0.95, stats_text, transform=ax.transAxes,
                verticalalignment='top', horizontalalignment='right',
                fontsize=9, family='monospace',
                bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.8))
    ax.set_title('Interval Distribution')
    ax.set_xlabel('Interval (ms)')
    ax.set_ylabel('Frequency')
    ax.grid(True, alpha=0.3)

    # ── 4. Interpolation alpha ──
    ax = axes[1][1]
    alphas = data.get('alpha', [])
    if alphas:
        atimes = [a['t'] for a in alphas]
        avals = [a['alpha'] for a in alphas]
        ax.plot(atimes, avals, linewidth=0.5, color='purple')
        ax.set_ylim(-0.05, 1.05)
    ax.set_title('Interpolation Alpha, per-second mean (1.0 = buffer starved)')
    ax.set_xlabel('Time (s)')
    ax.set_ylabel('Alpha')
    ax.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, 'arrival_analysis.png')
    plt.savefig(path, dpi=150)
    print(f"[ANALYSIS] Saved: {path}")
    plt.close()


def plot_bandwidth(data: dict, output_dir: str = 'analysis'):
    """Plot bandwidth usage and input send rate over time."""
    try:
        import matplotlib.pyplot as plt
    except ImportError:
        return

    os.makedirs(output_dir, exist_ok=True)
    bw = data.get('bandwidth', [])
    if not bw:
        return

    fig, (ax, ax_in) = plt.subplots(2, 1, figsize=(10, 7), sharex=True)
    times = [b['t'] for b in bw]
    sent = [b['sent_bytes'] / 1024 for b in bw]
    recv = [b['recv_bytes'] / 1024 for b in bw]
    ax.plot(times, sent, label='Sent (KB/s)', color='#2196F3')
    ax.plot(times, recv, label='Received (KB/s)', color='#4CAF50')
    ax.set_title('Bandwidth Usage')
    ax.set_ylabel('KB/s')
    ax.legend()
    ax.grid(True, alpha=0.3)

    inputs = data.get('inputs', [])
    ax_in.step([i['t'] for i in inputs], [i['count'] for i in inputs],
               where='post', color='#FF5722')
    ax_in.set_title('Input Messages per Second')
    ax_in.set_xlabel('Time (s)')
    ax_in.set_ylabel('Messages')
    ax_in.grid(True, alpha=0.3)

    plt.tight_layout()
    path = os.path.join(output_dir, 'bandwidth_analysis.png')
    plt.savefig(path, dpi=150)
    print(f"[ANALYSIS] Saved: {path}")
    plt.close()


def analyze_all(filepath: str, output_dir: str = 'analysis'):
    """Run all analysis on a metrics file."""
    import numpy as np

    print(f"[ANALYSIS] Loading {filepath}...")
    data = load_metrics(filepath)

    plot_arrival_analysis(data, output_dir)
    plot_bandwidth(data, output_dir)

    # Print summary
    print("\n=== Metrics Summary ===")
    intervals = [s['interval_ms'] for s in data.get('snapshot_interval', [])]
    if intervals:
        arr = np.array(intervals)
        print(f"  Interval: mean={np.mean(arr):.1f} ms, "
              f"std={np.std(arr):.1f} ms, "
              f"P95={np.percentile(arr, 95):.1f} ms")

    jitters = [j['jitter_ms'] for j in data.get('jitter', [])]
    if jitters:
        print(f"  Jitter:   mean={np.mean(jitters):.1f} ms")

    alphas = data.get('alpha', [])
    frames = np.array([a['frames'] for a in alphas])
    if frames.sum():
        mean = np.average([a['alpha'] for a in alphas], weights=frames)
        saturated = sum(a['saturated'] for a in alphas) / frames.sum()
        print(f"  Alpha:    mean={mean:.2f}, "
              f"saturated={saturated * 100:.1f}% of frames")

    counts = [i['count'] for i in data.get('inputs', [])]
    if counts:
        print(f"  Inputs:   mean={np.mean(counts):.1f} msg/s")


if __name__ == '__main__':
    import argparse
    parser = argparse.ArgumentParser(description='Analyze client metrics')
    parser.add_argument('file', help='Metrics JSON file to analyze')
    parser.add_argument('--output', default='analysis', help='Output directory')
    args = parser.parse_args()
    analyze_all(args.file, args.output)
