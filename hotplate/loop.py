# hotplate/loop.py
# Control loop
#
# One timer tick runs the pipeline estimator -> predictor -> sequencer ->
# controller on a fresh Sample, commands the resulting power and logs the
# frozen sample. Key presses are logged as their own event category.

import logging

from .calibration import CalibrationSequencer
from .controller import (CONTROLLER_TYPES, DEFAULT_POWER_LIMITS, BangBangController, FeedForwardController,
                         PowerController)
from .estimator import RTDEstimator, TemperatureRateError
from .history import Sample, SampleLog
from .predictor import PREDICTOR_TYPES
from .sequencer import ReflowSequencer

logger = logging.getLogger(__name__)

ABORT_KEYS = ('q', '\x1b')


def build_predictor(config):
    """
    Predictor selected by config.PREDICTOR

    PREDICTOR is a dictionary with a 'type' key (passthrough, lowpass,
    double-lowpass, difference) and that predictor's parameters.
    """
    options = dict(getattr(config, 'PREDICTOR', None) or {})
    kind = options.pop('type', 'passthrough')
    if kind not in PREDICTOR_TYPES:
        raise ValueError(f"Unknown predictor type '{kind}' (expected one of {sorted(PREDICTOR_TYPES)})")
    options.setdefault('ambient', getattr(config, 'AMBIENT_TEMP', 25.0))
    return PREDICTOR_TYPES[kind](**options)


def build_controller(config, predictor=None):
    """Power controller selected by config.CONTROLLER"""
    kind = getattr(config, 'CONTROLLER', BangBangController.type_name)
    if kind not in CONTROLLER_TYPES:
        raise ValueError(f"Unknown controller type '{kind}' (expected one of {sorted(CONTROLLER_TYPES)})")

    common = {
        'predictor': predictor,
        'power_limits': getattr(config, 'POWER_LIMITS', DEFAULT_POWER_LIMITS),
        'cutoff_temperature': getattr(config, 'CUTOFF_TEMPERATURE', None),
        'safety_limits': getattr(config, 'SAFETY_POWER_LIMITS', None),
    }

    if kind == BangBangController.type_name:
        return BangBangController(
            power_levels=getattr(config, 'POWER_LEVELS', None),
            hysteresis=getattr(config, 'HYSTERESIS', None),
            **common
        )
    if kind == FeedForwardController.type_name:
        return FeedForwardController(
            resistance=getattr(config, 'THERMAL_RESISTANCE', None),
            capacity=getattr(config, 'HEAT_CAPACITY', None),
            ambient=getattr(config, 'AMBIENT_TEMP', 25.0),
            alpha=getattr(config, 'FEED_FORWARD_ALPHA', None),
            **common
        )
    return PowerController(**common)


def build_estimator(config, device=None):
    return RTDEstimator.from_config(config, device=device)


class ControlLoop:
    """
    Periodic control loop

    Owns the sample log. Nothing here sleeps: a driver calls timer_event()
    every period (run() does so back to back for replays and simulations).
    """

    def __init__(self, interface, estimator, predictor, controller, sequencer,
                 period=1.5, log=None):
        """
        Initialize control loop

        Args:
            interface: Interface to the power supply
            estimator: RTDEstimator
            predictor: Predictor
            controller: PowerController
            sequencer: ReflowSequencer or CalibrationSequencer
            period: Tick period in seconds (default: 1.5)
            log: SampleLog to append to (default: new unbounded log)
        """
        self.interface = interface
        self.estimator = estimator
        self.predictor = predictor
        self.controller = controller
        self.sequencer = sequencer
        self.period = period
        self.log = log if log is not None else SampleLog()
        self.last_power = 0
        self.ambient = None
        self.running = True
        self.error_message = None

        if controller.min_power <= 0:
            logger.warning("[ControlLoop] Minimum power is 0W, resistance can not be measured while idle")

    @classmethod
    def from_config(cls, config, interface, device=None, calibrate=False):
        """
        Assemble a loop from a configuration object

        Args:
            config: Configuration object (see config.example.py)
            interface: Interface to the power supply
            device: Optional reference TemperatureDevice
            calibrate: Run the calibration staircase instead of the profile
        """
        estimator = build_estimator(config, device)
        predictor = build_predictor(config)

        if calibrate:
            estimator.reset_calibration(auto=True)
            controller = PowerController(
                predictor=predictor,
                power_limits=getattr(config, 'POWER_LIMITS', DEFAULT_POWER_LIMITS),
                cutoff_temperature=getattr(config, 'CUTOFF_TEMPERATURE', None),
            )
            sequencer = CalibrationSequencer.from_config(config)
        else:
            controller = build_controller(config, predictor)
            sequencer = ReflowSequencer.from_config(config, controller=controller)

        return cls(interface, estimator, predictor, controller, sequencer,
                   period=getattr(config, 'SAMPLE_PERIOD', 1.5))

    def _command(self, sample, power):
        sample.set_power = power
        self.interface.set_power(power)
        self.last_power = power

    def _finish(self, sample):
        self.log.append(sample)
        sample.freeze()

    def timer_event(self, now):
        """
        Run one control tick

        Args:
            now: Elapsed time in seconds

        Returns:
            True while the sequence continues, False once it is finished
        """
        if not self.running:
            return False

        status = self.interface.get_status()
        sample = Sample('timer', now=now, period=self.period,
                        voltage=status.get('voltage'), current=status.get('current'),
                        device_temperature=status.get('device_temperature'),
                        device_ambient=status.get('device_ambient'), ambient=self.ambient)

        try:
            temperature = self.estimator.get_temperature(sample)
        except TemperatureRateError as e:
            logger.error(f"[ControlLoop] {e}, aborting")
            self.error_message = str(e)
            self.abort()
            self._command(sample, 0)
            self._finish(sample)
            return False

        if temperature is not None:
            if self.ambient is None:
                self.ambient = self.estimator.get_ambient(sample)
                logger.info(f"[ControlLoop] Ambient {self.ambient:.1f}°C")
            self.predictor.predict_temperature(sample)

        running = self.sequencer.tick(sample)

        if not running:
            power = 0
        elif temperature is None:
            # The idle floor keeps the element current measurable
            power = max(self.last_power, self.controller.min_power)
            logger.debug(f"[ControlLoop] No temperature at {now:.1f}s, holding {power}W")
        else:
            power = self.controller.get_power_limited(sample)

        self._command(sample, power)
        self._finish(sample)

        logger.debug(f"[ControlLoop] t={now:.1f}s T={temperature} target={sample.then_temperature} P={power}")

        if not running:
            self.running = False
            logger.info(f"[ControlLoop] Sequence finished at {now:.1f}s")
        return running

    def key_event(self, key, now=None):
        """
        Handle an operator key press

        'q' or escape aborts the run and turns the power off.

        Returns:
            True if the key aborted the run
        """
        sample = Sample('key', key=key, now=now)
        aborted = key in ABORT_KEYS
        if aborted:
            logger.info(f"[ControlLoop] Abort key {key!r}")
            self.abort()
            self._command(sample, 0)
        self._finish(sample)
        return aborted

    def abort(self):
        self.sequencer.stop()
        self.running = False

    def start(self):
        """Start the reference device, if any, before the first tick"""
        if self.estimator.device is not None:
            self.estimator.device.start()

    def shutdown(self):
        """Turn the supply off and stop the reference device"""
        logger.info("[ControlLoop] Shutting down, power off")
        self.interface.shutdown()
        self.last_power = 0
        if self.estimator.device is not None:
            self.estimator.device.stop()

    def run(self, ticks=None, start=0.0):
        """
        Drive timer_event() back to back

        Stops when the sequence finishes, after `ticks` ticks, or when a
        replayed interface runs out of data. The supply is always left off.

        Returns:
            The SampleLog
        """
        now = start
        count = 0
        self.start()
        try:
            while ticks is None or count < ticks:
                if not self.timer_event(now):
                    break
                now += self.period
                count += 1
        except EOFError:
            logger.info(f"[ControlLoop] Interface exhausted after {count} ticks")
        finally:
            self.shutdown()
        return self.log

    def get_status(self):
        """Current status dictionary"""
        last = self.log.last('timer')
        return {
            'running': self.running,
            'temperature': last.temperature if last else None,
            'target': last.then_temperature if last else None,
            'power': self.last_power,
            'error': self.error_message,
            'sequencer': self.sequencer.get_status(),
            'controller': self.controller.get_stats(),
        }

    def __str__(self):
        return f"ControlLoop(period={self.period}s, samples={len(self.log)})"
