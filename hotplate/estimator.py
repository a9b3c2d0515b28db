# hotplate/estimator.py
# Resistance based temperature estimation
#
# The heating element is its own thermometer: its resistance (V / I) rises
# with temperature. A CalibrationCurve maps resistance to temperature. When
# no calibration exists the curve is seeded from ambient and the nominal
# temperature coefficient of copper.

import logging

from .curve import CalibrationCurve

logger = logging.getLogger(__name__)

# Nominal temperature coefficient of copper (1/°C), quoted at 20°C
ALPHA_COPPER = 0.00393
REFERENCE_TEMPERATURE = 20.0


class TemperatureRateError(Exception):
    """Raised when the estimated temperature changes implausibly fast"""
    pass


class RTDEstimator:
    """
    Resistance temperature detector estimator

    Each call to get_temperature() reads the reference device (if any),
    computes the element resistance and maps it through the calibration
    curve. Results are written onto the sample.
    """

    def __init__(self, calibration=None, device=None, measurable_current=0.1,
                 ambient=25.0, alpha=ALPHA_COPPER, max_rate=30.0):
        """
        Initialize estimator

        Args:
            calibration: Iterable of {resistance, temperature} dictionaries
            device: Optional TemperatureDevice for reference readings
            measurable_current: Below this current (A) resistance is not computed
            ambient: Default ambient temperature (°C)
            alpha: Temperature coefficient of resistance (1/°C)
            max_rate: Largest plausible temperature change (°C/s), None to disable
        """
        if not alpha:
            raise ValueError("Temperature coefficient must be non-zero")
        if measurable_current is None or measurable_current <= 0:
            raise ValueError(f"Measurable current must be positive, got {measurable_current}")

        self.curve = CalibrationCurve().add_hash_points('resistance', 'temperature', calibration or [])
        self.device = device
        self.measurable_current = measurable_current
        self.ambient = ambient
        self.alpha = alpha
        self.max_rate = max_rate
        self.auto_calibrate = True
        self.last_temperature = None

    @classmethod
    def from_config(cls, config, device=None):
        return cls(
            calibration=getattr(config, 'CALIBRATION_TEMPERATURES', None),
            device=device,
            measurable_current=getattr(config, 'MEASURABLE_CURRENT', 0.1),
            ambient=getattr(config, 'AMBIENT_TEMP', 25.0),
            alpha=getattr(config, 'TEMPERATURE_COEFFICIENT', ALPHA_COPPER),
            max_rate=getattr(config, 'MAX_TEMPERATURE_RATE', 30.0),
        )

    def read_device(self, sample):
        """Copy the reference device reading onto the sample"""
        if self.device is None or sample.device_temperature is not None:
            return
        temperature, ambient = self.device.get_temperature()
        sample.device_temperature = temperature
        sample.device_ambient = ambient

    def get_ambient(self, sample):
        """
        Best guess of the ambient temperature for a sample

        Uses sample.ambient when already known. Otherwise the lowest of the
        device ambient, device temperature and estimated temperature that is
        still plausibly ambient (within 5°C of the default); failing that the
        default ambient.

        Returns:
            Ambient temperature in °C (also written to sample.ambient)
        """
        if sample.ambient is not None:
            return sample.ambient

        candidates = [t for t in (sample.device_ambient, sample.device_temperature, sample.temperature)
                      if t is not None and t < self.ambient + 5]
        ambient = min(candidates) if candidates else self.ambient

        sample.ambient = ambient
        return ambient

    def get_temperature(self, sample):
        """
        Estimate the element temperature for a sample

        Args:
            sample: Sample carrying voltage, current and period

        Returns:
            Temperature in °C, or None if the current is too small to measure
            resistance or no calibration is available

        Raises:
            TemperatureRateError: If the estimate moved faster than max_rate
        """
        self.read_device(sample)

        resistance = sample.resistance
        if resistance is None:
            if sample.current is None or sample.voltage is None or sample.current < self.measurable_current:
                logger.debug(f"[Estimator] Current {sample.current} below measurable {self.measurable_current}A")
                return None
            resistance = sample.voltage / sample.current
            sample.resistance = resistance

        if len(self.curve) == 0:
            if not self.auto_calibrate:
                return None
            ambient = self.get_ambient(sample)
            logger.warning(f"[Estimator] No calibration, assuming {resistance:.4f} ohm at ambient {ambient:.1f}°C")
            self.curve.add_named_point(resistance, ambient, 'ambient')

        if len(self.curve) == 1:
            self._add_companion_point()

        temperature = self.curve.estimate(resistance)

        if self.max_rate is not None and self.last_temperature is not None and sample.period:
            rate = abs(temperature - self.last_temperature) / sample.period
            if rate > self.max_rate:
                raise TemperatureRateError(
                    f"Temperature changed {rate:.1f}°C/s ({self.last_temperature:.1f} -> {temperature:.1f}°C), "
                    f"limit {self.max_rate}°C/s"
                )

        self.last_temperature = temperature
        sample.temperature = temperature
        return temperature

    def _add_companion_point(self):
        # Second point 1°C above the only one, following R = R20 * (1 + alpha * (T - 20))
        resistance, temperature = self.curve.get_points()[0]
        scale = 1 + self.alpha * (temperature - REFERENCE_TEMPERATURE)
        if scale <= 0:
            raise ValueError(f"Coefficient {self.alpha} gives no positive resistance at {temperature:.1f}°C")
        r20 = resistance / scale
        companion = r20 * (1 + self.alpha * (temperature + 1 - REFERENCE_TEMPERATURE))
        logger.warning(f"[Estimator] Single calibration point, adding {companion:.4f} ohm at {temperature + 1:.1f}°C")
        self.curve.add_named_point(companion, temperature + 1, 'coefficient')

    def set_temperature_point(self, temperature, resistance):
        """Add a measured calibration point"""
        logger.info(f"[Estimator] Calibration point {resistance:.4f} ohm = {temperature:.1f}°C")
        self.curve.add_hash_points('resistance', 'temperature',
                                   [{'resistance': resistance, 'temperature': temperature}])

    def temperature_points(self):
        """Calibration points as a list of {resistance, temperature} dictionaries"""
        return [{'resistance': r, 'temperature': t} for r, t in self.curve.get_points()]

    def reset_calibration(self, auto=False):
        """
        Discard the calibration curve

        Args:
            auto: Re-seed from ambient on the next reading (default: False)
        """
        self.curve.reset()
        self.auto_calibrate = auto
        self.last_temperature = None

    def __str__(self):
        return f"RTDEstimator(points={len(self.curve)}, alpha={self.alpha})"
