import json
import os
import tempfile
import unittest

from hotplate.controller import PowerController
from hotplate.history import Sample
from hotplate.profile import DEFAULT_STAGES, Profile
from hotplate.sequencer import ReflowSequencer, SequencerState


def tick(now, period=1.5, temperature=25.0, ambient=25.0):
    return Sample(now=now, period=period, temperature=temperature, ambient=ambient)


class TestProfile(unittest.TestCase):
    def test_duration_is_sum_of_stages(self):
        self.assertEqual(Profile.default().duration, 310)

    def test_from_json_string(self):
        profile = Profile(json.dumps({'name': 'quick', 'stages': [{'temperature': 150, 'seconds': 60}]}))
        self.assertEqual(profile.name, 'quick')
        self.assertEqual(profile.stages[0]['name'], 'stage-0')

    def test_validation(self):
        with self.assertRaises(ValueError):
            Profile({'name': 'x'})
        with self.assertRaises(ValueError):
            Profile({'name': 'x', 'stages': []})
        with self.assertRaises(ValueError):
            Profile({'name': 'x', 'stages': [{'temperature': 100}]})
        with self.assertRaises(ValueError):
            Profile({'name': 'x', 'stages': [{'temperature': 100, 'seconds': 0}]})

    def test_boundaries_and_stage_lookup(self):
        profile = Profile.default()
        self.assertEqual([end for end, _ in profile.boundaries()], [30, 150, 180, 190, 310])
        self.assertEqual(profile.stage_at(30)['name'], 'preheat')
        self.assertEqual(profile.stage_at(30.1)['name'], 'soak')
        self.assertEqual(profile.stage_at(1000)['name'], 'cool')

    def test_progress(self):
        profile = Profile.default()
        self.assertEqual(profile.get_progress(155), 50.0)
        self.assertEqual(profile.get_progress(400), 100.0)
        self.assertFalse(profile.is_complete(310))
        self.assertTrue(profile.is_complete(310.5))

    def test_file_round_trip(self):
        profile = Profile.from_stages(DEFAULT_STAGES, name='sac305')
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'profile.json')
            profile.save_to_file(path)
            loaded = Profile.load_from_file(path)
        self.assertEqual(loaded.name, 'sac305')
        self.assertEqual(loaded.duration, 310)
        self.assertEqual(loaded.to_dict()['stages'], profile.to_dict()['stages'])


class TestReflowSequencer(unittest.TestCase):
    def setUp(self):
        self.sequencer = ReflowSequencer(Profile.default())

    def test_look_ahead_target(self):
        sample = tick(0)
        self.assertTrue(self.sequencer.tick(sample))
        self.assertAlmostEqual(sample.then, 1.5)
        self.assertAlmostEqual(sample.then_temperature, 28.75)
        self.assertAlmostEqual(sample.now_temperature, 25.0)
        self.assertEqual(sample.stage, 'preheat')

    def test_stage_names_follow_then(self):
        self.sequencer.tick(tick(0))
        sample = tick(29.0)
        self.sequencer.tick(sample)
        # then = 30.5 is already in the soak ramp
        self.assertEqual(sample.stage, 'soak')
        self.assertAlmostEqual(sample.then_temperature, 100 + 0.5 / 120 * 75)

    def test_completes_after_total_duration(self):
        self.assertTrue(self.sequencer.tick(tick(0)))
        self.assertTrue(self.sequencer.tick(tick(310.0)))
        self.assertFalse(self.sequencer.tick(tick(310.5)))
        self.assertEqual(self.sequencer.state, SequencerState.COMPLETE)
        self.assertFalse(self.sequencer.tick(tick(312.0)))

    def test_target_clipped_at_last_stage(self):
        self.sequencer.tick(tick(0))
        sample = tick(309.5)
        self.sequencer.tick(sample)
        self.assertAlmostEqual(sample.then_temperature, 100.0)

    def test_waits_for_first_temperature(self):
        sample = Sample(now=0, period=1.5)
        self.assertTrue(self.sequencer.tick(sample))
        self.assertIsNone(sample.then_temperature)
        self.assertEqual(self.sequencer.state, SequencerState.IDLE)

        # Elapsed time counts from the first anchored tick
        sample = tick(3.0, temperature=30.0, ambient=None)
        self.sequencer.tick(sample)
        self.assertAlmostEqual(sample.then_temperature, 30.0 + 1.5 / 30 * 70)

    def test_stop(self):
        self.sequencer.tick(tick(0))
        self.sequencer.stop()
        self.assertFalse(self.sequencer.tick(tick(1.5)))
        self.assertEqual(self.sequencer.get_status()['state'], SequencerState.STOPPED)

    def test_stage_flags_toggle_controller(self):
        stages = [
            {'name': 'heat', 'temperature': 150, 'seconds': 30},
            {'name': 'peak', 'temperature': 240, 'seconds': 30, 'disable_limits': True, 'disable_cutoff': True},
            {'name': 'cool', 'temperature': 100, 'seconds': 30},
        ]
        controller = PowerController()
        sequencer = ReflowSequencer(Profile.from_stages(stages), controller=controller)

        sequencer.tick(tick(0))
        self.assertTrue(controller.limits_enabled)
        sequencer.tick(tick(40))
        self.assertFalse(controller.limits_enabled)
        self.assertFalse(controller.cutoff_enabled)
        sequencer.tick(tick(70))
        self.assertTrue(controller.limits_enabled)
        self.assertTrue(controller.cutoff_enabled)

    def test_status(self):
        self.sequencer.tick(tick(0))
        self.sequencer.tick(tick(155.0))
        status = self.sequencer.get_status()
        self.assertEqual(status['stage'], 'reflow')
        self.assertEqual(status['progress'], 50.0)

    def test_from_config(self):
        class Config:
            PROFILE = [{'name': 'only', 'temperature': 120, 'seconds': 60}]

        sequencer = ReflowSequencer.from_config(Config)
        self.assertEqual(sequencer.profile.duration, 60)


if __name__ == '__main__':
    unittest.main()
