# hotplate/history.py
# Per-tick samples and the run history
#
# Every control tick (and every key press) produces one Sample. Pipeline
# stages fill in their fields in order and the loop freezes the sample once
# the tick is done. SampleLog keeps the samples so later stages (the
# predictor tuner, the calibration fits, the plotting scripts) can look back.

import csv
import logging
from collections import deque

logger = logging.getLogger(__name__)

# Column order used for CSV logs
CSV_FIELDS = [
    'now', 'period', 'voltage', 'current', 'resistance', 'temperature',
    'device_temperature', 'predict_temperature', 'then_temperature',
    'set_power', 'stage',
    'event', 'ambient', 'device_ambient', 'then', 'now_temperature',
    'step', 'step_end', 'key',
]

# Bookkeeping fields assigned by SampleLog.append()
INDEX_FIELDS = ('index', 'previous_index')

STRING_FIELDS = ('event', 'stage', 'key')


class FrozenSampleError(AttributeError):
    """Raised when a frozen sample is modified"""
    pass


class Sample:
    """
    Record of one control tick

    Unset fields read as None. After freeze() the sample rejects writes, so a
    logged tick can never be edited by a later stage.
    """

    def __init__(self, event='timer', **fields):
        object.__setattr__(self, '_frozen', False)
        object.__setattr__(self, '_fields', {})
        self.event = event
        for name, value in fields.items():
            setattr(self, name, value)

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        return self._fields.get(name)

    def __setattr__(self, name, value):
        if self._frozen:
            raise FrozenSampleError(f"Sample is frozen, cannot set '{name}'")
        self._fields[name] = value

    def freeze(self):
        object.__setattr__(self, '_frozen', True)
        return self

    @property
    def frozen(self):
        return self._frozen

    def get(self, name, default=None):
        value = self._fields.get(name)
        return default if value is None else value

    def as_dict(self):
        """Copy of the populated fields"""
        return dict(self._fields)

    def __str__(self):
        return f"Sample(event={self.event}, now={self.now}, temperature={self.temperature})"

    def __repr__(self):
        return self.__str__()


class SampleLog:
    """
    Append-only history of samples

    Samples are addressed by an absolute index that keeps counting even when
    a capacity is set and old samples have been dropped from the front.

    append() stamps each sample with its index and with previous_index, the
    index of the latest earlier sample of the same event category, so "the
    previous timer tick" is a constant time lookup.
    """

    def __init__(self, capacity=None):
        """
        Initialize sample log

        Args:
            capacity: Maximum number of samples kept (default: unlimited)
        """
        self.capacity = capacity
        self.samples = deque(maxlen=capacity)
        self.count = 0
        self.last_index = {}

    def append(self, sample):
        """
        Add sample to the log

        The sample must not be frozen yet.

        Returns:
            Absolute index of the sample
        """
        index = self.count
        sample.index = index
        sample.previous_index = self.last_index.get(sample.event)

        self.samples.append(sample)
        self.count += 1
        self.last_index[sample.event] = index
        return index

    def get(self, index):
        """Sample at absolute index, or None if out of range or dropped"""
        offset = index - (self.count - len(self.samples))
        if offset < 0 or offset >= len(self.samples) or index < 0:
            return None
        return self.samples[offset]

    def last(self, event='timer'):
        """Latest sample of an event category"""
        index = self.last_index.get(event)
        return None if index is None else self.get(index)

    def previous(self, sample):
        """
        Earlier sample of the same category

        Returns:
            Sample, or None for the first of its category or if it was dropped
        """
        if sample.previous_index is None:
            return None
        return self.get(sample.previous_index)

    def events(self, event='timer'):
        """List of kept samples of one category, oldest first"""
        return [s for s in self.samples if s.event == event]

    def timer_samples(self):
        """Periodic samples, oldest first"""
        return self.events('timer')

    def get_rate(self, window_seconds=30, field='temperature'):
        """
        Rate of change of a field over a time window

        Uses the newest timer sample and the oldest one still inside the
        window.

        Args:
            window_seconds: Time window in seconds (default: 30)
            field: Sample field to differentiate (default: 'temperature')

        Returns:
            Rate in units per second (positive = heating, negative = cooling)
        """
        readings = [(s.now, getattr(s, field)) for s in self.samples
                    if s.event == 'timer' and s.now is not None and getattr(s, field) is not None]
        if len(readings) < 2:
            return 0.0

        recent_time, recent_value = readings[-1]
        window = [r for r in readings if r[0] >= recent_time - window_seconds]
        old_time, old_value = window[0]

        dt = recent_time - old_time
        if dt == 0:
            return 0.0

        return (recent_value - old_value) / dt

    def clear(self):
        """Clear all history"""
        self.samples.clear()
        self.count = 0
        self.last_index = {}

    def __len__(self):
        return len(self.samples)

    def __iter__(self):
        return iter(self.samples)

    def write_csv(self, filename):
        """
        Write the log to a CSV file

        Args:
            filename: Path of the CSV file
        """
        with open(filename, 'w', newline='') as f:
            writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction='ignore')
            writer.writeheader()
            for sample in self.samples:
                row = {k: ('' if v is None else v) for k, v in sample.as_dict().items()}
                writer.writerow(row)

        logger.info(f"[SampleLog] Wrote {len(self.samples)} samples to {filename}")

    @classmethod
    def read_csv(cls, filename, capacity=None):
        """
        Load a log written by write_csv()

        Empty cells become None, numeric cells become floats. Loaded samples
        are frozen.

        Args:
            filename: Path of the CSV file
            capacity: Optional capacity of the returned log

        Returns:
            SampleLog instance
        """
        log = cls(capacity=capacity)

        with open(filename, 'r', newline='') as f:
            reader = csv.DictReader(f)
            for row in reader:
                fields = {}
                for name, value in row.items():
                    if name is None or value is None or value == '' or name in INDEX_FIELDS:
                        continue
                    if name in STRING_FIELDS:
                        fields[name] = value
                    else:
                        try:
                            fields[name] = float(value)
                        except ValueError:
                            fields[name] = value
                event = fields.pop('event', 'timer')
                sample = Sample(event, **fields)
                log.append(sample)
                sample.freeze()

        logger.info(f"[SampleLog] Loaded {len(log)} samples from {filename}")
        return log
