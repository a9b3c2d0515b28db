# hotplate/sequencer.py
# Reflow profile sequencer
#
# Turns a Profile into a target temperature for each control tick. The
# target is taken one period ahead ("then") so the controller acts on where
# the profile is going rather than where it was.

import logging

from .curve import CalibrationCurve
from .profile import Profile

logger = logging.getLogger(__name__)


class SequencerState:
    """Sequencer state constants"""
    IDLE = 0        # Waiting for the first temperature reading
    RUNNING = 1     # Following the profile
    COMPLETE = 2    # Profile finished
    STOPPED = 3     # Aborted by the operator


class ReflowSequencer:
    """
    Profile sequencer

    The profile curve is built on the first tick that carries a temperature:
    a point (0, ambient) followed by each stage's (cumulative end time,
    temperature). Points are tagged with their stage so the stage name of a
    target comes straight from the curve.
    """

    def __init__(self, profile=None, controller=None, ambient=None):
        """
        Initialize sequencer

        Args:
            profile: Profile instance (default: Profile.default())
            controller: Optional PowerController whose limits/cutoff stages may disable
            ambient: Fixed start temperature; by default taken from the first sample
        """
        self.profile = profile if profile is not None else Profile.default()
        self.controller = controller
        self.ambient = ambient
        self.curve = None
        self.state = SequencerState.IDLE
        self.current_stage = None
        self.elapsed = 0.0
        self.target_temp = None
        self.start_time = None

    @classmethod
    def from_config(cls, config, controller=None):
        stages = getattr(config, 'PROFILE', None)
        profile = Profile.from_stages(stages) if stages else Profile.default()
        return cls(profile, controller=controller)

    def _build_curve(self, ambient):
        curve = CalibrationCurve()
        first = self.profile.stages[0]
        curve.add_hash_points('when', 'temperature', [dict(first, when=0, temperature=ambient)])
        curve.add_hash_points('when', 'temperature',
                              [dict(stage, when=end) for end, stage in self.profile.boundaries()])
        return curve

    def start(self, ambient):
        """Build the profile curve from a start temperature"""
        self.ambient = ambient
        self.curve = self._build_curve(ambient)
        self.state = SequencerState.RUNNING
        logger.info(f"[Sequencer] Starting {self.profile} from {ambient:.1f}°C")

    def target_at(self, when):
        """
        Profile temperature and stage name at an elapsed time

        Times past the last stage are clipped to the last stage's end.

        Returns:
            Tuple of (temperature °C, stage name)
        """
        when = min(when, self.profile.duration)
        temperature, stage = self.curve.estimate_with_attributes(when)
        return temperature, stage['name']

    def tick(self, sample):
        """
        Set the target for one tick

        Writes sample.then, then_temperature, now_temperature and stage.

        Args:
            sample: Sample with now, period and (on the first tick) temperature

        Returns:
            True while the profile runs, False once it is complete or stopped
        """
        if self.state in (SequencerState.COMPLETE, SequencerState.STOPPED):
            return False

        if self.state == SequencerState.IDLE:
            ambient = self.ambient
            if ambient is None:
                ambient = sample.ambient if sample.ambient is not None else sample.temperature
            if ambient is None:
                # No reading yet, nothing to anchor the profile to
                return True
            self.start(ambient)

        if self.start_time is None:
            self.start_time = sample.now

        now = sample.now - self.start_time
        self.elapsed = now

        if now > self.profile.duration:
            self.state = SequencerState.COMPLETE
            self.target_temp = None
            self._apply_stage(None)
            logger.info(f"[Sequencer] Profile '{self.profile.name}' complete after {now:.1f}s")
            return False

        then = now + (sample.period or 0)
        target, stage_name = self.target_at(then)
        now_temperature, _ = self.target_at(now)

        sample.then = then
        sample.then_temperature = target
        sample.now_temperature = now_temperature
        sample.stage = stage_name
        self.target_temp = target

        stage = self.profile.stage_at(then)
        if stage is not self.current_stage:
            logger.info(f"[Sequencer] Stage '{stage_name}' started at {now:.1f}s (target {stage['temperature']}°C)")
            self._apply_stage(stage)

        return True

    def _apply_stage(self, stage):
        self.current_stage = stage
        if self.controller is None:
            return

        if stage is not None and stage.get('disable_limits'):
            self.controller.disable_limits()
        else:
            self.controller.enable_limits()

        if stage is not None and stage.get('disable_cutoff'):
            self.controller.disable_cutoff()
        else:
            self.controller.enable_cutoff()

    def stop(self):
        """Operator abort - the sequence reports itself finished from now on"""
        if self.state in (SequencerState.IDLE, SequencerState.RUNNING):
            logger.info(f"[Sequencer] Stop requested (was in state {self.state})")
            self.state = SequencerState.STOPPED
            self.target_temp = None
            self._apply_stage(None)

    def is_running(self):
        return self.state in (SequencerState.IDLE, SequencerState.RUNNING)

    def get_status(self):
        """
        Get current status dictionary

        Returns:
            Dictionary with state, profile, stage and progress
        """
        return {
            'state': self.state,
            'profile': self.profile.name,
            'stage': self.current_stage['name'] if self.current_stage else None,
            'elapsed': round(self.elapsed, 1),
            'target_temp': round(self.target_temp, 2) if self.target_temp is not None else None,
            'progress': round(self.profile.get_progress(self.elapsed), 1),
        }

    def __str__(self):
        return f"ReflowSequencer(profile='{self.profile.name}', state={self.state})"

    def __repr__(self):
        return self.__str__()
