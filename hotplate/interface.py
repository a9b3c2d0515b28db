# hotplate/interface.py
# Power supply interface boundary
#
# The control core never talks to hardware directly. An Interface reports
# the element voltage and current and accepts a power command; the real
# programmable supply driver, a simulator and a log replay all sit behind it.

import logging

logger = logging.getLogger(__name__)


class Interface:
    """
    Base class for power supply interfaces

    Subclasses implement get_status() and set_power().
    """

    def __init__(self, power_limits=(0, 100), measurable_current=0.1):
        """
        Args:
            power_limits: (min, max) power the supply can deliver (W)
            measurable_current: Smallest current the supply measures reliably (A)
        """
        self.power_limits = tuple(power_limits)
        self.measurable_current = measurable_current
        self.power = 0

    def get_status(self):
        """
        Read the supply

        Returns:
            Dictionary with at least 'voltage' and 'current'; may also carry
            'device_temperature' and 'device_ambient'
        """
        raise NotImplementedError

    def set_power(self, power):
        raise NotImplementedError

    def shutdown(self):
        """Leave the supply in a safe state"""
        self.set_power(0)


class ReplayInterface(Interface):
    """
    Replays the electrical readings of a logged run

    Each get_status() returns the next recorded timer sample; commanded
    powers are collected in `commands` instead of reaching hardware.
    """

    def __init__(self, samples, **kwargs):
        super().__init__(**kwargs)
        self.samples = [s for s in samples if s.event == 'timer']
        self.position = 0
        self.commands = []

    @property
    def remaining(self):
        return len(self.samples) - self.position

    def get_status(self):
        """
        Next recorded reading

        Raises:
            EOFError: When the recording is exhausted
        """
        if self.position >= len(self.samples):
            raise EOFError("Replay exhausted")

        sample = self.samples[self.position]
        self.position += 1

        status = {'voltage': sample.voltage, 'current': sample.current}
        if sample.device_temperature is not None:
            status['device_temperature'] = sample.device_temperature
            status['device_ambient'] = sample.device_ambient
        return status

    def set_power(self, power):
        self.power = power
        self.commands.append(power)


class SimulatedInterface(Interface):
    """
    Hotplate simulation driven by a ThermalModel

    The element resistance follows R = R20 * (1 + alpha * (T - 20)), with R20
    chosen so the element reads r_ambient at the model ambient. The supply
    delivers the commanded power as V = sqrt(P * R). The plate temperature is
    reported as the reference device reading.
    """

    def __init__(self, model, r_ambient=2.0, alpha=0.00393, period=1.5, **kwargs):
        super().__init__(**kwargs)
        self.model = model
        self.r_ambient = r_ambient
        self.alpha = alpha
        self.period = period
        self.temperature = model.ambient
        # Idle power keeps the element current measurable
        self.power = self.power_limits[0]

    def resistance(self):
        r20 = self.r_ambient / (1 + self.alpha * (self.model.ambient - 20))
        return r20 * (1 + self.alpha * (self.temperature - 20))

    def get_status(self):
        resistance = self.resistance()
        voltage = (self.power * resistance) ** 0.5
        return {
            'voltage': voltage,
            'current': voltage / resistance,
            'device_temperature': self.temperature,
            'device_ambient': self.model.ambient,
        }

    def set_power(self, power):
        self.power = max(min(power, self.power_limits[1]), self.power_limits[0])
        self.temperature += self.model.temperature_delta(self.power, self.temperature, self.period)
