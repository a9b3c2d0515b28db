#!/usr/bin/env python3
"""
Predictor Tuning

Fits predictor parameters to a logged run that carries reference
thermocouple readings, and prints them as a PREDICTOR config entry.

Usage:
    python tune_predictor.py <csv_file> [--type lowpass] [--bias]

Example:
    python tune_predictor.py logs/calibration.csv --type double-lowpass
"""

import sys
import json
import argparse
import logging
from pathlib import Path

from hotplate.history import SampleLog
from hotplate.predictor import PREDICTOR_TYPES
from hotplate.numeric import SearchDepthError


def tune(csv_file, predictor_type='lowpass', expected='device_temperature', bias=False,
         time_cutoff=240, temperature_cutoff=120):
    """
    Tune one predictor type against a logged run

    Returns:
        Dictionary of fitted parameters plus 'type'
    """
    log = SampleLog.read_csv(csv_file)
    predictor = PREDICTOR_TYPES[predictor_type](time_cutoff=time_cutoff,
                                                temperature_cutoff=temperature_cutoff)

    result = predictor.tune(log, expected=expected, bias=bias)
    result['error'] = predictor.error(predictor.filter_samples(log, expected), expected=expected)
    return result


def main(argv=None):
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Fit predictor parameters to a logged hotplate run')
    parser.add_argument('csv_file', help='CSV file written by SampleLog.write_csv()')
    parser.add_argument('--type', default='lowpass', choices=sorted(PREDICTOR_TYPES),
                        help='Predictor type (default: lowpass)')
    parser.add_argument('--expected', default='device_temperature',
                        help='Reference temperature column (default: device_temperature)')
    parser.add_argument('--bias', action='store_true', help='Weight hot samples more')
    parser.add_argument('--time-cutoff', type=float, default=240)
    parser.add_argument('--temperature-cutoff', type=float, default=120)
    parser.add_argument('--verbose', '-v', action='store_true')

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s %(message)s')

    if not Path(args.csv_file).exists():
        print(f"\n❌ Error: File not found: {args.csv_file}")
        return 1

    try:
        result = tune(args.csv_file, args.type, args.expected, args.bias,
                      args.time_cutoff, args.temperature_cutoff)
    except (ValueError, SearchDepthError) as e:
        print(f"\n❌ Error: {e}")
        return 1

    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
