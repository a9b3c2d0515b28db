# hotplate/controller.py
# Power controllers with safety limiting
#
# A controller turns the sample (current, predicted and target temperature)
# into a heater power in watts. get_power_limited() wraps every controller
# with the same safety layer: a hard cutoff temperature and a temperature
# dependent power ceiling.

import logging

from .curve import CalibrationCurve
from .thermal import ThermalModel

logger = logging.getLogger(__name__)

# A small idle power keeps the element current measurable
DEFAULT_POWER_LIMITS = (2, 100)


def _power_curve(points, name):
    """Build a temperature -> power curve from {temperature, power} dictionaries"""
    curve = CalibrationCurve()
    for i, point in enumerate(points or []):
        if 'temperature' not in point or 'power' not in point:
            raise ValueError(f"{name} entry {i} needs 'temperature' and 'power': {point}")
        if point['power'] < 0:
            raise ValueError(f"{name} entry {i} has negative power {point['power']}")
    curve.add_hash_points('temperature', 'power', points or [])
    return curve


class PowerController:
    """
    Direct power controller and base class

    The base controller passes through the power already requested on the
    sample (sample.set_power, e.g. from a calibration sequencer). Subclasses
    override get_required_power().
    """

    type_name = 'direct'

    def __init__(self, predictor=None, power_limits=DEFAULT_POWER_LIMITS, cutoff_temperature=None,
                 safety_limits=None):
        """
        Initialize controller

        Args:
            predictor: Predictor used when a sample has no prediction yet
            power_limits: (min, max) power tuple in watts (default: 2, 100)
            cutoff_temperature: Power is forced to zero at or above this (°C)
            safety_limits: List of {temperature, power} power ceilings
        """
        if len(power_limits) != 2 or power_limits[0] > power_limits[1]:
            raise ValueError(f"Invalid power limits: {power_limits}")

        self.predictor = predictor
        self.power_limits = tuple(power_limits)
        self.cutoff_temperature = cutoff_temperature
        self.safety_curve = _power_curve(safety_limits, 'Safety limit')
        self.limits_enabled = True
        self.cutoff_enabled = True
        self.cutoff_active = False

        self.stats = {
            'temperature': None,
            'predicted': None,
            'target': None,
            'power': 0,
            'cutoff': False,
            'limited': False,
        }

    @property
    def min_power(self):
        return self.power_limits[0]

    @property
    def max_power(self):
        return self.power_limits[1]

    def clamp(self, power):
        return max(min(power, self.max_power), self.min_power)

    def get_required_power(self, sample):
        """Power the control law asks for, before safety limiting"""
        if sample.set_power is None:
            return self.min_power
        return self.clamp(sample.set_power)

    def get_power_limited(self, sample):
        """
        Required power after the cutoff and safety ceiling

        Args:
            sample: Sample with temperature (and ideally predict_temperature)

        Returns:
            Power in watts
        """
        predicted = sample.predict_temperature
        if predicted is None and self.predictor is not None and sample.temperature is not None:
            predicted = self.predictor.predict_temperature(sample)

        temperature = sample.temperature
        hottest = max([t for t in (predicted, temperature) if t is not None], default=None)

        cutoff = (self.cutoff_enabled and self.cutoff_temperature is not None
                  and hottest is not None and hottest >= self.cutoff_temperature)

        if cutoff != self.cutoff_active:
            if cutoff:
                logger.warning(f"[Controller] Cutoff: {hottest:.1f}°C >= {self.cutoff_temperature}°C, power off")
            else:
                logger.info(f"[Controller] Cutoff released at {hottest}°C")
            self.cutoff_active = cutoff

        limited = False
        if cutoff:
            power = 0
        else:
            power = self.get_required_power(sample)

            if self.limits_enabled and len(self.safety_curve) and temperature is not None:
                ceiling = self.safety_curve.estimate(temperature)
                if power > ceiling:
                    logger.debug(f"[Controller] Power {power:.1f}W limited to {ceiling:.1f}W at {temperature:.1f}°C")
                    power = max(ceiling, 0)
                    limited = True

        self.stats = {
            'temperature': temperature,
            'predicted': predicted,
            'target': sample.then_temperature,
            'power': power,
            'cutoff': cutoff,
            'limited': limited,
        }
        return power

    def set_power_limit(self, temperature, power):
        """Add a safety power ceiling breakpoint"""
        self.safety_curve.add_hash_points('temperature', 'power', [{'temperature': temperature, 'power': power}])

    def enable_limits(self):
        self.limits_enabled = True

    def disable_limits(self):
        self.limits_enabled = False

    def enable_cutoff(self):
        self.cutoff_enabled = True

    def disable_cutoff(self):
        self.cutoff_enabled = False

    def get_stats(self):
        """Get last decision statistics dictionary"""
        return self.stats.copy()

    def __str__(self):
        return f"{self.__class__.__name__}(limits={self.power_limits}, cutoff={self.cutoff_temperature})"

    def __repr__(self):
        return self.__str__()


class BangBangController(PowerController):
    """
    On/off controller with hysteresis

    Switches on once the temperature falls more than `low` below the target
    and off once it reaches `high` above it; in between the previous state
    holds. While on, power comes from the power-level breakpoints (indexed by
    temperature) or the maximum power; while off, the minimum power.
    """

    type_name = 'bang-bang'

    def __init__(self, power_levels=None, hysteresis=None, **kwargs):
        """
        Initialize bang-bang controller

        Args:
            power_levels: List of {temperature, power} on-power breakpoints
            hysteresis: {low, high} dictionary or a number used for both sides
            **kwargs: PowerController arguments
        """
        super().__init__(**kwargs)
        self.power_levels = _power_curve(power_levels, 'Power level')
        self.low, self.high = self._hysteresis(hysteresis)
        self.on = True

    @staticmethod
    def _hysteresis(hysteresis):
        if hysteresis is None:
            return 0.5, 0.0
        if isinstance(hysteresis, bool):
            raise ValueError(f"Invalid hysteresis: {hysteresis!r}")
        if isinstance(hysteresis, (int, float)):
            return max(hysteresis, 0), max(hysteresis, 0)
        if isinstance(hysteresis, dict):
            unknown = set(hysteresis) - {'low', 'high'}
            if unknown:
                raise ValueError(f"Unknown hysteresis keys: {sorted(unknown)}")
            return max(hysteresis.get('low', 0.5), 0), max(hysteresis.get('high', 0.0), 0)
        raise ValueError(f"Hysteresis must be a number or {{low, high}} dictionary, got {hysteresis!r}")

    def set_power_level(self, temperature, power):
        """Add an on-power breakpoint"""
        self.power_levels.add_hash_points('temperature', 'power', [{'temperature': temperature, 'power': power}])

    def on_power(self, sample):
        temperature = sample.temperature
        if not len(self.power_levels):
            return self.max_power

        power = self.power_levels.estimate(temperature)

        # The plate reading, when supplied, can only lower the element's power level
        if sample.suggestion is not None:
            power = min(power, self.power_levels.estimate(sample.suggestion))

        return self.clamp(power)

    def get_required_power(self, sample):
        target = sample.then_temperature
        temperature = sample.temperature
        if target is None or temperature is None:
            return self.min_power

        error = temperature - target
        if error < -self.low:
            self.on = True
        elif error >= self.high:
            self.on = False

        return self.on_power(sample) if self.on else self.min_power

    def __str__(self):
        return f"BangBangController(low={self.low}, high={self.high}, levels={len(self.power_levels)})"


class FeedForwardController(PowerController):
    """
    Model based controller

    Uses a ThermalModel to compute the power that reaches the target in one
    period, optionally smoothed by a first order IIR filter.
    """

    type_name = 'feed-forward'

    def __init__(self, resistance=None, capacity=None, ambient=25.0, alpha=None, **kwargs):
        """
        Initialize feed-forward controller

        Args:
            resistance: Thermal resistance to ambient (°C/W), required
            capacity: Heat capacity (J/°C), required
            ambient: Ambient temperature (°C)
            alpha: Output smoothing factor in (0, 1], None for no smoothing
            **kwargs: PowerController arguments

        Raises:
            ValueError: If resistance or capacity is missing or not positive
        """
        if resistance is None or capacity is None:
            raise ValueError("Feed-forward controller requires thermal resistance and heat capacity")
        if alpha is not None and not 0 < alpha <= 1:
            raise ValueError(f"Smoothing alpha must be in (0, 1], got {alpha}")

        super().__init__(**kwargs)
        self.model = ThermalModel(resistance, capacity, ambient)
        self.alpha = alpha
        self.last_power = None

    def get_required_power(self, sample):
        target = sample.then_temperature
        temperature = sample.temperature
        if target is None or temperature is None or not sample.period:
            return self.min_power

        power = self.model.required_power(temperature, target, sample.period, sample.ambient)

        if self.alpha is not None and self.last_power is not None:
            power = self.alpha * power + (1 - self.alpha) * self.last_power

        power = self.clamp(power)
        self.last_power = power
        return power

    def __str__(self):
        return f"FeedForwardController({self.model})"


CONTROLLER_TYPES = {
    cls.type_name: cls
    for cls in (PowerController, BangBangController, FeedForwardController)
}
