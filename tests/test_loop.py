import unittest
from types import SimpleNamespace

from hotplate.calibration import CalibrationSequencer
from hotplate.controller import BangBangController, FeedForwardController, PowerController
from hotplate.device import ManualTemperatureDevice
from hotplate.estimator import RTDEstimator
from hotplate.history import Sample
from hotplate.interface import Interface, ReplayInterface, SimulatedInterface
from hotplate.loop import ControlLoop, build_controller, build_predictor
from hotplate.predictor import LowPassPredictor, Predictor
from hotplate.profile import Profile
from hotplate.sequencer import ReflowSequencer, SequencerState
from hotplate.thermal import ThermalModel


SHORT_PROFILE = [
    {'name': 'heat', 'temperature': 60, 'seconds': 30},
    {'name': 'cool', 'temperature': 50, 'seconds': 30},
]


class ScriptedInterface(Interface):
    """Returns canned readings and records commanded powers"""

    def __init__(self, statuses, **kwargs):
        super().__init__(**kwargs)
        self.statuses = list(statuses)
        self.commands = []

    def get_status(self):
        return self.statuses.pop(0)

    def set_power(self, power):
        self.power = power
        self.commands.append(power)


def simulated_loop(stages=SHORT_PROFILE):
    interface = SimulatedInterface(ThermalModel(resistance=2.0, capacity=30.0, ambient=25.0),
                                   power_limits=(2, 100))
    predictor = Predictor()
    controller = BangBangController(predictor=predictor, power_limits=(2, 100), cutoff_temperature=250)
    sequencer = ReflowSequencer(Profile.from_stages(stages), controller=controller)
    return ControlLoop(interface, RTDEstimator(), predictor, controller, sequencer)


class TestControlLoop(unittest.TestCase):
    def test_simulated_reflow_follows_profile(self):
        loop = simulated_loop()
        log = loop.run()

        samples = log.timer_samples()
        # Ticks at 0 .. 60s follow the profile, the tick at 61.5s finishes it
        self.assertEqual(len(samples), 42)
        self.assertTrue(all(s.frozen for s in samples))
        self.assertFalse(loop.running)
        self.assertEqual(loop.sequencer.state, SequencerState.COMPLETE)
        self.assertEqual(samples[-1].set_power, 0)

        # The element matches the simulated plate, so the estimate is exact
        for sample in samples:
            self.assertAlmostEqual(sample.temperature, sample.device_temperature, places=6)

        self.assertLess(max(s.temperature for s in samples), 70)
        self.assertAlmostEqual(samples[-1].temperature, 50.0, delta=6.0)
        self.assertEqual(loop.ambient, 25.0)

    def test_samples_are_linked(self):
        loop = simulated_loop()
        log = loop.run(ticks=3)
        samples = log.timer_samples()
        self.assertEqual(len(samples), 3)
        self.assertIs(log.previous(samples[2]), samples[1])
        self.assertIsNone(log.previous(samples[0]))
        self.assertTrue(loop.running)

    def test_abort_key(self):
        loop = simulated_loop()
        loop.run(ticks=2)

        self.assertFalse(loop.key_event('x', now=2.0))
        self.assertTrue(loop.running)

        self.assertTrue(loop.key_event('q', now=2.5))
        self.assertFalse(loop.running)
        self.assertEqual(loop.sequencer.state, SequencerState.STOPPED)
        self.assertEqual(loop.log.last('key').key, 'q')
        self.assertEqual(loop.log.last('key').set_power, 0)
        self.assertFalse(loop.timer_event(3.0))
        self.assertEqual(len(loop.log.timer_samples()), 2)

    def test_rate_error_aborts(self):
        interface = ScriptedInterface([
            {'voltage': 2.0, 'current': 1.0},
            {'voltage': 2.2, 'current': 1.0},
        ])
        predictor = Predictor()
        controller = BangBangController(predictor=predictor)
        loop = ControlLoop(interface, RTDEstimator(max_rate=1.0), predictor, controller,
                           ReflowSequencer(controller=controller))

        self.assertTrue(loop.timer_event(0.0))
        self.assertFalse(loop.timer_event(1.5))

        self.assertFalse(loop.running)
        self.assertIn('limit 1.0', loop.error_message)
        self.assertEqual(interface.commands[-1], 0)
        self.assertEqual(loop.get_status()['error'], loop.error_message)
        self.assertTrue(loop.log.last('timer').frozen)

    def test_replay_holds_power_without_estimate(self):
        recorded = [
            Sample(voltage=2.0, current=1.0),
            Sample(voltage=0.1, current=0.05),
        ]
        interface = ReplayInterface(recorded)
        predictor = Predictor()
        controller = BangBangController(predictor=predictor)
        loop = ControlLoop(interface, RTDEstimator(), predictor, controller,
                           ReflowSequencer(controller=controller))

        log = loop.run()

        # The replay runs dry after two ticks; the sequence itself never finished
        self.assertEqual(len(log), 2)
        self.assertEqual(interface.commands, [100, 100, 0])
        self.assertIsNone(log.last('timer').temperature)
        self.assertTrue(loop.running)

    def test_default_power_limits_heat_the_plate(self):
        # No calibration and no POWER_LIMITS: the idle floor makes the element measurable
        config = SimpleNamespace(PROFILE=[{'name': 'heat', 'temperature': 100, 'seconds': 60}])
        interface = SimulatedInterface(ThermalModel(resistance=2.0, capacity=30.0, ambient=25.0))
        loop = ControlLoop.from_config(config, interface)
        log = loop.run(ticks=30)

        samples = log.timer_samples()
        self.assertEqual(samples[0].set_power, 2)
        self.assertIsNone(samples[0].temperature)
        temperatures = [s.temperature for s in samples if s.temperature is not None]
        self.assertEqual(len(temperatures), 29)
        self.assertGreater(max(temperatures), 50)
        self.assertEqual(loop.sequencer.state, SequencerState.RUNNING)

    def test_no_estimate_power_never_below_minimum(self):
        interface = ScriptedInterface([{'voltage': 0.0, 'current': 0.0}] * 3)
        predictor = Predictor()
        controller = BangBangController(predictor=predictor, power_limits=(5, 100))
        loop = ControlLoop(interface, RTDEstimator(), predictor, controller,
                           ReflowSequencer(controller=controller))
        for now in (0.0, 1.5, 3.0):
            loop.timer_event(now)
        self.assertEqual(interface.commands, [5, 5, 5])

    def test_run_leaves_supply_off(self):
        loop = simulated_loop()
        loop.run(ticks=3)
        self.assertTrue(loop.running)
        self.assertEqual(loop.last_power, 0)
        self.assertEqual(loop.get_status()['power'], 0)
        # The simulated supply clamps the off command to its idle floor
        self.assertEqual(loop.interface.power, 2)

    def test_run_starts_and_stops_device(self):
        events = []

        class RecordingDevice(ManualTemperatureDevice):
            def start(self):
                events.append('start')

            def stop(self):
                events.append('stop')

        loop = simulated_loop()
        loop.estimator.device = RecordingDevice(25.0, 25.0)
        loop.run(ticks=2)
        self.assertEqual(events, ['start', 'stop'])

    def test_status(self):
        loop = simulated_loop()
        loop.timer_event(0.0)
        status = loop.get_status()
        self.assertTrue(status['running'])
        self.assertEqual(status['temperature'], 25.0)
        self.assertEqual(status['power'], 100)
        self.assertEqual(status['sequencer']['stage'], 'heat')
        self.assertEqual(status['controller']['power'], 100)


class TestSimulatedInterface(unittest.TestCase):
    def test_resistance_referenced_to_20c(self):
        interface = SimulatedInterface(ThermalModel(resistance=2.0, capacity=30.0, ambient=25.0), alpha=0.004)
        self.assertAlmostEqual(interface.resistance(), 2.0)
        interface.temperature = 20.0
        self.assertAlmostEqual(interface.resistance(), 2.0 / 1.02)
        interface.temperature = 120.0
        self.assertAlmostEqual(interface.resistance(), 2.0 / 1.02 * 1.4)

    def test_shutdown_commands_minimum(self):
        interface = SimulatedInterface(ThermalModel(resistance=2.0, capacity=30.0, ambient=25.0),
                                       power_limits=(2, 100))
        interface.set_power(80)
        interface.shutdown()
        self.assertEqual(interface.power, 2)


class TestBuilders(unittest.TestCase):
    def test_default_predictor(self):
        predictor = build_predictor(SimpleNamespace(AMBIENT_TEMP=22.0))
        self.assertEqual(predictor.type_name, 'passthrough')
        self.assertEqual(predictor.ambient, 22.0)

    def test_configured_predictor(self):
        predictor = build_predictor(SimpleNamespace(PREDICTOR={'type': 'lowpass', 'tau': 12.0}))
        self.assertIsInstance(predictor, LowPassPredictor)
        self.assertEqual(predictor.tau, 12.0)

    def test_unknown_types(self):
        with self.assertRaises(ValueError):
            build_predictor(SimpleNamespace(PREDICTOR={'type': 'crystal-ball'}))
        with self.assertRaises(ValueError):
            build_controller(SimpleNamespace(CONTROLLER='pid'))

    def test_controllers(self):
        self.assertIsInstance(build_controller(SimpleNamespace()), BangBangController)
        self.assertIs(type(build_controller(SimpleNamespace(CONTROLLER='direct'))), PowerController)

        config = SimpleNamespace(CONTROLLER='feed-forward', THERMAL_RESISTANCE=2.0, HEAT_CAPACITY=30.0,
                                 POWER_LIMITS=(2, 80), CUTOFF_TEMPERATURE=240)
        controller = build_controller(config)
        self.assertIsInstance(controller, FeedForwardController)
        self.assertEqual(controller.power_limits, (2, 80))
        self.assertEqual(controller.cutoff_temperature, 240)

    def test_feed_forward_needs_model(self):
        with self.assertRaises(ValueError):
            build_controller(SimpleNamespace(CONTROLLER='feed-forward'))

    def test_from_config_reflow(self):
        config = SimpleNamespace(PROFILE=SHORT_PROFILE, SAMPLE_PERIOD=1.0,
                                 CALIBRATION_TEMPERATURES=[{'resistance': 2.0, 'temperature': 25.0},
                                                           {'resistance': 2.4, 'temperature': 76.0}])
        loop = ControlLoop.from_config(config, ScriptedInterface([]))
        self.assertEqual(loop.period, 1.0)
        self.assertIsInstance(loop.sequencer, ReflowSequencer)
        self.assertIs(loop.sequencer.controller, loop.controller)
        self.assertEqual(len(loop.estimator.temperature_points()), 2)

    def test_from_config_calibration(self):
        config = SimpleNamespace(POWER_LIMITS=(2, 60), CALIBRATION={'step_duration': 100},
                                 CALIBRATION_TEMPERATURES=[{'resistance': 2.0, 'temperature': 25.0}])
        loop = ControlLoop.from_config(config, ScriptedInterface([]), calibrate=True)
        self.assertIsInstance(loop.sequencer, CalibrationSequencer)
        self.assertIs(type(loop.controller), PowerController)
        self.assertEqual(loop.sequencer.max_power, 60)
        # Calibration starts from an empty curve seeded at ambient
        self.assertEqual(loop.estimator.temperature_points(), [])
        self.assertTrue(loop.estimator.auto_calibrate)

    def test_calibration_loop_commands_staircase(self):
        interface = SimulatedInterface(ThermalModel(resistance=2.0, capacity=30.0, ambient=25.0),
                                       power_limits=(2, 100))
        config = SimpleNamespace(POWER_LIMITS=(2, 100), CALIBRATION={'step_duration': 15})
        loop = ControlLoop.from_config(config, interface, calibrate=True)
        log = loop.run(ticks=25)

        powers = [s.set_power for s in log.timer_samples()]
        self.assertEqual(powers[:10], [10] * 10)
        self.assertEqual(powers[10:20], [20] * 10)
        self.assertEqual(powers[20:25], [10] * 5)


if __name__ == '__main__':
    unittest.main()
