# hotplate/__init__.py
# Hotplate reflow control package

from .curve import CalibrationCurve
from .history import Sample, SampleLog
from .device import TemperatureDevice, ManualTemperatureDevice, MAX31856Device, DeviceError
from .estimator import RTDEstimator, TemperatureRateError, ALPHA_COPPER
from .difference import DifferenceTable
from .numeric import minimum_search, LinearRegression, SearchDepthError
from .predictor import Predictor, LowPassPredictor, DoubleLowPassPredictor, DifferencePredictor
from .thermal import ThermalModel, FirstOrderStepEstimator, FitError
from .controller import PowerController, BangBangController, FeedForwardController
from .profile import Profile
from .sequencer import ReflowSequencer, SequencerState
from .calibration import CalibrationSequencer, CalibrationStage, equilibrium_points, fit_step_responses
from .interface import Interface, ReplayInterface, SimulatedInterface
from .loop import ControlLoop, build_controller, build_predictor, build_estimator

__version__ = '0.1.0'

__all__ = [
    'CalibrationCurve',
    'Sample',
    'SampleLog',
    'TemperatureDevice',
    'ManualTemperatureDevice',
    'MAX31856Device',
    'DeviceError',
    'RTDEstimator',
    'TemperatureRateError',
    'ALPHA_COPPER',
    'DifferenceTable',
    'minimum_search',
    'LinearRegression',
    'SearchDepthError',
    'Predictor',
    'LowPassPredictor',
    'DoubleLowPassPredictor',
    'DifferencePredictor',
    'ThermalModel',
    'FirstOrderStepEstimator',
    'FitError',
    'PowerController',
    'BangBangController',
    'FeedForwardController',
    'Profile',
    'ReflowSequencer',
    'SequencerState',
    'CalibrationSequencer',
    'CalibrationStage',
    'equilibrium_points',
    'fit_step_responses',
    'Interface',
    'ReplayInterface',
    'SimulatedInterface',
    'ControlLoop',
    'build_controller',
    'build_predictor',
    'build_estimator',
]
