#!/usr/bin/env python3
"""
Hotplate Run Visualization

Generates graphs from a logged reflow or calibration run (SampleLog CSV).
Shows element, predicted and reference temperatures against the profile
target, the commanded power, and the profile stages / calibration steps.

Usage:
    python plot_run.py <csv_file> [--output output.png]

Example:
    python plot_run.py logs/reflow_2025-01-15_14-30-00.csv
    python plot_run.py logs/calibration.csv --output calibration.png
"""

import sys
from pathlib import Path
import argparse

import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec

from hotplate.history import SampleLog


def load_run_data(csv_file):
    """
    Load hotplate run data from CSV file

    Args:
        csv_file: Path to CSV file written by SampleLog.write_csv()

    Returns:
        Dictionary with time, temp, target_temp, predicted, device_temp,
        power and stage lists (None where a tick has no value)
    """
    log = SampleLog.read_csv(csv_file)
    samples = log.timer_samples()
    if not samples:
        raise ValueError(f"No timer samples in {csv_file}")

    return {
        'time': [s.now for s in samples],
        'temp': [s.temperature for s in samples],
        'target_temp': [s.then_temperature for s in samples],
        'predicted': [s.predict_temperature for s in samples],
        'device_temp': [s.device_temperature for s in samples],
        'power': [s.get('set_power', 0) for s in samples],
        'stage': [s.stage or '' for s in samples],
    }


def detect_run_type(data):
    """
    Detect if this is a calibration run or a reflow profile

    Returns:
        'CALIBRATION' or 'REFLOW'
    """
    if any(name.startswith(('rising-', 'falling-')) for name in data['stage']):
        return 'CALIBRATION'
    return 'REFLOW'


def stage_transitions(data):
    """List of (start index, stage name) for each run of equal stage names"""
    transitions = []
    previous = None
    for i, name in enumerate(data['stage']):
        if name != previous:
            transitions.append((i, name))
            previous = name
    return transitions


def _series(data, key):
    """(time, value) lists with missing values dropped"""
    points = [(t, v) for t, v in zip(data['time'], data[key]) if v is not None]
    return [p[0] for p in points], [p[1] for p in points]


def plot_run(data, output_file=None):
    """
    Create visualization of a hotplate run

    Args:
        data: Dictionary with run data from load_run_data()
        output_file: Optional output file path (None = show interactive plot)

    Returns:
        The matplotlib figure
    """
    run_type = detect_run_type(data)
    transitions = stage_transitions(data)

    fig = plt.figure(figsize=(14, 10))
    gs = GridSpec(3, 1, height_ratios=[2, 1, 0.5], hspace=0.3)

    # Subplot 1: Temperatures vs Time
    ax1 = fig.add_subplot(gs[0])

    for start, _ in transitions[1:]:
        ax1.axvline(x=data['time'][start], color='gray', linestyle='--', alpha=0.4, linewidth=1)

    for key, style, label in (('temp', 'b-', 'Element (RTD)'),
                              ('predicted', 'c-', 'Predicted'),
                              ('device_temp', 'g-', 'Thermocouple'),
                              ('target_temp', 'r--', 'Target')):
        times, values = _series(data, key)
        if values:
            ax1.plot(times, values, style, linewidth=1.5, label=label)

    ax1.set_ylabel('Temperature (°C)', fontsize=12)
    ax1.set_title(f'Hotplate {run_type} - Temperature', fontsize=14, fontweight='bold')
    ax1.grid(True, alpha=0.3)
    ax1.legend(loc='upper left', fontsize=10)

    _, temps = _series(data, 'temp')
    if temps:
        ax1.text(0.98, 0.02,
                 f"Duration: {data['time'][-1]:.0f}s\nMax Temp: {max(temps):.1f}°C",
                 transform=ax1.transAxes,
                 fontsize=9,
                 verticalalignment='bottom',
                 horizontalalignment='right',
                 bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.5))

    # Subplot 2: Commanded power
    ax2 = fig.add_subplot(gs[1], sharex=ax1)
    ax2.fill_between(data['time'], 0, data['power'], alpha=0.3, color='orange')
    ax2.plot(data['time'], data['power'], 'orange', linewidth=1, label='Power (W)')
    ax2.set_ylabel('Power (W)', fontsize=12)
    ax2.grid(True, alpha=0.3)
    ax2.legend(loc='upper right', fontsize=10)

    # Subplot 3: Stage bands
    ax3 = fig.add_subplot(gs[2], sharex=ax1)
    for idx, (start, name) in enumerate(transitions):
        start_time = data['time'][start]
        end_time = data['time'][transitions[idx + 1][0]] if idx + 1 < len(transitions) else data['time'][-1]
        color = 'lightsteelblue' if idx % 2 == 0 else 'lavender'
        ax3.axvspan(start_time, end_time, alpha=0.4, color=color)
        if name:
            ax3.text((start_time + end_time) / 2, 0.5, name,
                     horizontalalignment='center', verticalalignment='center',
                     fontsize=8, weight='bold')
    ax3.set_yticks([])
    ax3.set_xlabel('Time (s)', fontsize=12)

    plt.tight_layout()

    if output_file:
        plt.savefig(output_file, dpi=150, bbox_inches='tight')
        print(f"✓ Graph saved to: {output_file}")
    else:
        plt.show()

    return fig


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='Visualize hotplate reflow or calibration run data',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python plot_run.py logs/reflow.csv
  python plot_run.py logs/calibration.csv --output calibration.png
        """
    )
    parser.add_argument('csv_file', help='CSV file with run data')
    parser.add_argument('--output', '-o', help='Output file path (default: show interactive plot)')

    args = parser.parse_args(argv)

    if not Path(args.csv_file).exists():
        print(f"\n❌ Error: File not found: {args.csv_file}")
        return 1

    print(f"\n📂 Loading data from: {args.csv_file}")

    try:
        data = load_run_data(args.csv_file)
    except (OSError, ValueError) as e:
        print(f"\n❌ Error: {e}")
        return 1

    print(f"✓ Loaded {len(data['time']):,} data points")
    print(f"✓ Run type: {detect_run_type(data)}")

    print("📊 Generating graph...")
    plot_run(data, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
