# hotplate/device.py
# Reference temperature devices
#
# An independent thermometer (thermocouple) read alongside the element. Its
# readings are the ground truth for calibrating the resistance curve and for
# tuning the predictor.

import logging
import time

logger = logging.getLogger(__name__)


class DeviceError(Exception):
    """Raised when a temperature device fails persistently"""
    pass


class TemperatureDevice:
    """
    Base class for reference thermometers

    Subclasses implement get_temperature() returning a tuple of
    (measured temperature, device ambient temperature); either may be None.
    """

    name = 'device'

    def start(self):
        pass

    def stop(self):
        pass

    def get_temperature(self):
        raise NotImplementedError

    def __str__(self):
        return f"{self.__class__.__name__}({self.name})"


class ManualTemperatureDevice(TemperatureDevice):
    """Device whose readings are set by hand (tests, replays, manual entry)"""

    name = 'manual'

    def __init__(self, temperature=None, ambient=None):
        self.temperature = temperature
        self.ambient = ambient

    def set_temperature(self, temperature, ambient=None):
        self.temperature = temperature
        if ambient is not None:
            self.ambient = ambient

    def get_temperature(self):
        return self.temperature, self.ambient


class MAX31856Device(TemperatureDevice):
    """
    MAX31856 thermocouple wrapper with fault detection

    Transient faults fall back to the last good reading; a run of
    max_consecutive_faults failures raises DeviceError.
    """

    name = 'max31856'

    def __init__(self, spi=None, cs_pin=None, thermocouple_type=None, offset=0.0,
                 max_consecutive_faults=10, sensor=None):
        """
        Initialize thermocouple device

        Args:
            spi: SPI bus instance
            cs_pin: Chip select pin
            thermocouple_type: Type of thermocouple (default: K-type)
            offset: Temperature offset for calibration (°C)
            max_consecutive_faults: Failures tolerated before raising (default: 10)
            sensor: Already constructed sensor object (skips driver setup)
        """
        self.offset = offset
        self.last_good_temp = None
        self.last_ambient = None
        self.initialized = False
        self.fault_count = 0
        self.max_consecutive_faults = max_consecutive_faults

        if sensor is not None:
            self.sensor = sensor
            return

        import adafruit_max31856
        from adafruit_max31856 import ThermocoupleType

        if thermocouple_type is None:
            thermocouple_type = ThermocoupleType.K

        self.sensor = adafruit_max31856.MAX31856(spi, cs_pin, thermocouple_type=thermocouple_type)

        # First conversion needs ~160ms after power-up
        logger.info("[MAX31856] Temperature sensor initializing...")
        time.sleep(0.2)

    @classmethod
    def from_config(cls, config, spi, cs_pin):
        return cls(spi, cs_pin,
                   offset=getattr(config, 'THERMOCOUPLE_OFFSET', 0.0),
                   max_consecutive_faults=getattr(config, 'MAX_CONSECUTIVE_FAULTS', 10))

    def get_temperature(self):
        """
        Read thermocouple and cold junction temperatures

        Returns:
            Tuple of (temperature °C, cold junction temperature °C)

        Raises:
            DeviceError: If never initialized or after too many consecutive faults
        """
        try:
            temp = self.sensor.temperature

            if temp is None:
                raise DeviceError("Sensor returned None")

            faults = self.sensor.fault
            if any(faults.values()):
                fault_list = [k for k, v in faults.items() if v]
                raise DeviceError(f"Thermocouple faults: {', '.join(fault_list)}")

            if temp < -50 or temp > 1500:
                raise DeviceError(f"Temperature {temp}°C out of reasonable range")

            temp += self.offset

            if not self.initialized:
                logger.info(f"[MAX31856] Temperature sensor initialized: {temp:.1f}°C")
                self.initialized = True

            if self.fault_count > 0:
                logger.info(f"[MAX31856] Sensor recovered (after {self.fault_count} faults)")
                self.fault_count = 0

            self.last_good_temp = temp
            self.last_ambient = self.sensor.reference_temperature
            return self.last_good_temp, self.last_ambient

        except (DeviceError, OSError, RuntimeError) as e:
            self.fault_count += 1

            if not self.initialized:
                raise DeviceError(f"Temperature sensor failed to initialize: {e}") from e

            logger.warning(f"[MAX31856] Read error ({self.fault_count}/{self.max_consecutive_faults}): {e}")

            if self.fault_count >= self.max_consecutive_faults:
                raise DeviceError(f"{self.max_consecutive_faults} consecutive sensor failures: {e}") from e

            return self.last_good_temp, self.last_ambient

    def reset_faults(self):
        """Reset fault counter"""
        self.fault_count = 0
