# hotplate/calibration.py
# Calibration power-step sequence and its analysis
#
# The calibration run applies a staircase of constant powers that climbs
# two steps and drops one (10, 20, 10, 30, 20, 40, 30, ...), so every power
# level is visited once while heating and once while cooling. Averaging the
# settled ends of both visits gives an equilibrium point per power level:
# a resistance/temperature pair for the RTD curve and a thermal resistance
# for the feed-forward model. Each step is also a step response, from which
# the heat capacity follows.

import logging
from collections import OrderedDict

from .numeric import mean
from .thermal import FirstOrderStepEstimator, FitError

logger = logging.getLogger(__name__)


class CalibrationStage:
    """Calibration stage constants"""
    RUNNING = "running"
    COMPLETE = "complete"
    STOPPED = "stopped"


class CalibrationSequencer:
    """
    Power staircase sequencer

    tick() stamps each sample with the current step, its end time and the
    requested power (sample.set_power) for a direct PowerController.
    """

    def __init__(self, power_step=10, step_duration=450, maximum_temperature=220, max_power=None):
        """
        Initialize calibration sequencer

        Args:
            power_step: Power increment between levels (W)
            step_duration: Length of each step (s)
            maximum_temperature: A rising step above this ends the run (°C)
            max_power: Optional highest power level; reaching it also ends the run
        """
        if power_step <= 0:
            raise ValueError(f"Power step must be positive, got {power_step}")
        if step_duration <= 0:
            raise ValueError(f"Step duration must be positive, got {step_duration}")

        self.power_step = power_step
        self.step_duration = step_duration
        self.maximum_temperature = maximum_temperature
        self.max_power = max_power

        self.stage = CalibrationStage.RUNNING
        self.start_time = None
        self.final = False
        self._reset_steps()

    @classmethod
    def from_config(cls, config):
        options = dict(getattr(config, 'CALIBRATION', None) or {})
        limits = getattr(config, 'POWER_LIMITS', None)
        if limits and 'max_power' not in options:
            options['max_power'] = limits[1]
        return cls(**options)

    def _reset_steps(self):
        self.step = 0
        self.power = self.power_step
        self.step_end = self.step_duration
        self.step_name = self._name(0, self.power)

    @staticmethod
    def _rising(step):
        return step == 0 or step % 2 == 1

    def _name(self, step, power):
        return f"{'rising' if self._rising(step) else 'falling'}-{power:g}"

    def _next_step(self):
        if self.step == 0 or not self._rising(self.step):
            self.power += self.power_step if self.step == 0 else 2 * self.power_step
        else:
            self.power -= self.power_step
        self.step += 1
        self.step_end += self.step_duration
        self.step_name = self._name(self.step, self.power)

    def _final_step(self, elapsed):
        # Falling step from wherever the run currently is
        self.final = True
        self.step += 1
        self.power = max(self.power - self.power_step, 0)
        self.step_end = elapsed + self.step_duration
        self.step_name = f"falling-{self.power:g}"

    def schedule(self, count):
        """
        First steps of the staircase

        Returns:
            List of (step, power, step_end, name) tuples
        """
        saved = (self.step, self.power, self.step_end, self.step_name)
        self._reset_steps()
        steps = []
        for _ in range(count):
            steps.append((self.step, self.power, self.step_end, self.step_name))
            self._next_step()
        self.step, self.power, self.step_end, self.step_name = saved
        return steps

    def tick(self, sample):
        """
        Advance the staircase for one tick

        Returns:
            True while calibrating, False once complete or stopped
        """
        if self.stage != CalibrationStage.RUNNING:
            return False

        if self.start_time is None:
            self.start_time = sample.now
            logger.info(f"[Calibration] Starting with {self.step_name} for {self.step_duration}s")

        elapsed = sample.now - self.start_time

        temperature = sample.device_temperature if sample.device_temperature is not None else sample.temperature
        if not self.final and self._rising(self.step) and temperature is not None \
                and self.maximum_temperature is not None and temperature > self.maximum_temperature:
            self._final_step(elapsed)
            logger.info(f"[Calibration] {temperature:.1f}°C above {self.maximum_temperature}°C, final step {self.step_name}")

        if elapsed >= self.step_end:
            if self.final:
                self.stage = CalibrationStage.COMPLETE
                logger.info(f"[Calibration] Complete after {self.step + 1} steps")
                return False

            self._next_step()
            if self.max_power is not None and self.power > self.max_power:
                # Finish with the falling visit of the highest level reached
                self.final = True
                self.power -= self.power_step
                self.step_name = f"falling-{self.power:g}"
            logger.info(f"[Calibration] Step {self.step} '{self.step_name}' until {self.step_end}s")

        sample.stage = self.step_name
        sample.step = self.step
        sample.step_end = self.step_end
        sample.set_power = self.power
        return True

    def stop(self):
        if self.stage == CalibrationStage.RUNNING:
            logger.info(f"[Calibration] Stop requested during {self.step_name}")
            self.stage = CalibrationStage.STOPPED

    def is_running(self):
        return self.stage == CalibrationStage.RUNNING

    def get_status(self):
        return {
            'stage': self.stage,
            'step': self.step,
            'step_name': self.step_name,
            'power': self.power,
            'step_end': self.step_end,
        }

    def __str__(self):
        return f"CalibrationSequencer(step={self.step}, power={self.power}, stage={self.stage})"


def _weighted(rising, falling, ratio):
    return (mean(rising) + mean(falling) * ratio) / (1 + ratio)


def equilibrium_points(samples, ambient=None, tail_samples=10, field='device_temperature'):
    """
    Equilibrium temperature and resistance for each calibrated power level

    For each power level visited both rising and falling, the last
    tail_samples of each visit are averaged. The visit whose tail spans the
    smaller temperature range is nearer equilibrium and gets the larger
    weight: (rising_mean + falling_mean * ratio) / (1 + ratio) with
    ratio = rising_range / falling_range.

    Args:
        samples: Logged calibration samples (stage names rising-P / falling-P)
        ambient: Ambient temperature (default: lowest sample ambient, else 25)
        tail_samples: Samples averaged at the end of each visit
        field: Reference temperature field ('temperature' for RTD only runs)

    Returns:
        List of {power, temperature, resistance, thermal_resistance}
        dictionaries sorted by power
    """
    buckets = OrderedDict()
    ambients = []
    for sample in samples:
        if sample.event != 'timer' or not sample.stage or sample.set_power is None:
            continue
        if sample.ambient is not None:
            ambients.append(sample.ambient)
        direction, _, power = sample.stage.partition('-')
        if direction not in ('rising', 'falling'):
            continue
        buckets.setdefault(float(power), {}).setdefault(direction, []).append(sample)

    if ambient is None:
        ambient = min(ambients) if ambients else 25.0

    points = []
    for power in sorted(buckets):
        visits = buckets[power]
        if 'rising' not in visits or 'falling' not in visits or power <= 0:
            continue

        rising = visits['rising'][-tail_samples:]
        falling = visits['falling'][-tail_samples:]

        rising_t = [getattr(s, field) for s in rising if getattr(s, field) is not None]
        falling_t = [getattr(s, field) for s in falling if getattr(s, field) is not None]
        if not rising_t or not falling_t:
            logger.warning(f"[Calibration] No {field} readings for {power:g}W, skipped")
            continue

        rising_range = max(rising_t) - min(rising_t)
        falling_range = max(falling_t) - min(falling_t)
        if falling_range == 0:
            ratio = 1.0 if rising_range == 0 else float('inf')
        else:
            ratio = rising_range / falling_range

        if ratio == float('inf'):
            temperature = mean(falling_t)
        else:
            temperature = _weighted(rising_t, falling_t, ratio)

        point = {
            'power': power,
            'temperature': temperature,
            'resistance': None,
            'thermal_resistance': (temperature - ambient) / power,
        }

        rising_r = [s.resistance for s in rising if s.resistance is not None]
        falling_r = [s.resistance for s in falling if s.resistance is not None]
        if rising_r and falling_r:
            if ratio == float('inf'):
                point['resistance'] = mean(falling_r)
            else:
                point['resistance'] = _weighted(rising_r, falling_r, ratio)

        logger.info(f"[Calibration] {power:g}W -> {temperature:.1f}°C, R_th={point['thermal_resistance']:.3f}°C/W")
        points.append(point)

    return points


def fit_step_responses(samples, resistance=None, threshold=0.632, field='device_temperature'):
    """
    Fit a first-order step response to every calibration step

    Args:
        samples: Logged calibration samples with step numbers
        resistance: Thermal resistance (°C/W) for the capacitance estimate
        threshold: Fraction of the step used by the fit
        field: Temperature field to fit

    Returns:
        List of fit dictionaries with step, name and power added; steps whose
        fit fails are skipped with a warning
    """
    estimator = FirstOrderStepEstimator(threshold)

    steps = OrderedDict()
    for sample in samples:
        if sample.event != 'timer' or sample.step is None or sample.now is None:
            continue
        steps.setdefault(sample.step, []).append(sample)

    results = []
    previous_end = None
    for step, step_samples in steps.items():
        data = [(s.now, getattr(s, field)) for s in step_samples if getattr(s, field) is not None]
        name = step_samples[0].stage

        # The step starts where the previous one settled
        initial = previous_end if previous_end is not None else (data[0][1] if data else None)
        previous_end = data[-1][1] if data else previous_end

        try:
            fit = estimator.fit_curve(data, initial=initial, resistance=resistance)
        except FitError as e:
            logger.warning(f"[Calibration] Step {step} '{name}' fit failed: {e}")
            continue

        fit.update({'step': step, 'name': name, 'power': step_samples[0].set_power})
        results.append(fit)

    return results
