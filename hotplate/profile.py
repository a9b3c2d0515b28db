# hotplate/profile.py
# Reflow profile management

import json

# Default solder paste profile (stage name, end temperature °C, stage length s)
DEFAULT_STAGES = [
    {'name': 'preheat', 'temperature': 100, 'seconds': 30},
    {'name': 'soak', 'temperature': 175, 'seconds': 120},
    {'name': 'reflow', 'temperature': 205, 'seconds': 30},
    {'name': 'hold', 'temperature': 205, 'seconds': 10},
    {'name': 'cool', 'temperature': 100, 'seconds': 120},
]


class Profile:
    """
    Reflow profile as a list of timed stages

    Each stage ramps linearly from the previous stage's end temperature (or
    ambient, for the first stage) to its own temperature over `seconds`.

    JSON Format:
    {
        "name": "Lead-free SAC305",
        "description": "Optional description",
        "stages": [
            {"name": "preheat", "temperature": 150, "seconds": 90},
            {"name": "reflow", "temperature": 245, "seconds": 40,
             "disable_limits": true},           # Optional
            {"name": "cool", "temperature": 100, "seconds": 60}
        ]
    }
    """

    def __init__(self, json_data):
        """Initialize profile from JSON data (dict or string)"""
        if isinstance(json_data, str):
            json_data = json.loads(json_data)

        self.name = json_data.get('name', 'profile')
        self.description = json_data.get('description', '')

        if 'stages' not in json_data:
            raise ValueError("Profile must have 'stages' array")

        self.stages = json_data['stages']

        if not self.stages:
            raise ValueError("Profile must have at least one stage")

        for i, stage in enumerate(self.stages):
            if 'temperature' not in stage or 'seconds' not in stage:
                raise ValueError(f"Stage {i} must have 'temperature' and 'seconds': {stage}")
            if stage['seconds'] <= 0:
                raise ValueError(f"Stage {i} length must be positive, got {stage['seconds']}")
            stage.setdefault('name', f"stage-{i}")

        self.duration = sum(stage['seconds'] for stage in self.stages)

    @classmethod
    def from_stages(cls, stages, name='profile'):
        """Build a profile from a list of stage dictionaries"""
        return cls({'name': name, 'stages': [dict(stage) for stage in stages]})

    @classmethod
    def default(cls):
        return cls.from_stages(DEFAULT_STAGES, name='default')

    def boundaries(self):
        """
        Cumulative stage end times

        Returns:
            List of (end time s, stage dictionary) tuples
        """
        result = []
        elapsed = 0
        for stage in self.stages:
            elapsed += stage['seconds']
            result.append((elapsed, stage))
        return result

    def stage_at(self, elapsed_seconds):
        """Stage dictionary active at an elapsed time (last stage once finished)"""
        for end, stage in self.boundaries():
            if elapsed_seconds <= end:
                return stage
        return self.stages[-1]

    def is_complete(self, elapsed_seconds):
        """True once elapsed time is past the end of the last stage"""
        return elapsed_seconds > self.duration

    def get_progress(self, elapsed_seconds):
        """
        Get progress percentage

        Args:
            elapsed_seconds: Time since profile start

        Returns:
            Progress percentage (0-100)
        """
        if self.duration == 0:
            return 100.0
        return min(100.0, (elapsed_seconds / self.duration) * 100)

    def to_dict(self):
        """Convert profile to dictionary for JSON serialization"""
        return {
            'name': self.name,
            'description': self.description,
            'stages': self.stages,
            'duration': self.duration
        }

    @staticmethod
    def load_from_file(filename):
        """Load profile from JSON file"""
        with open(filename, 'r') as f:
            json_data = json.load(f)
        return Profile(json_data)

    def save_to_file(self, filename):
        """Save profile to JSON file"""
        with open(filename, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def __str__(self):
        return f"Profile(name='{self.name}', duration={self.duration}s, stages={len(self.stages)})"

    def __repr__(self):
        return self.__str__()
