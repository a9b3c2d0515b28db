# hotplate/predictor.py
# Temperature prediction
#
# The element heats faster than the plate it sits under. Predictors turn the
# element temperature into a forecast of the plate temperature the controller
# should act on. Each predictor has a few parameters that tune() fits against
# a logged run with reference thermometer readings.

import logging
import math

from .difference import DifferenceTable
from .numeric import minimum_search

logger = logging.getLogger(__name__)


class Predictor:
    """
    Pass-through predictor and base class

    forecast() computes a prediction and advances internal state;
    predict_temperature() also writes the result to the sample.
    Subclasses define `parameters`, the tunable attribute names, and
    `bounds`, their (low, high) limits with None for an open side. Tuning
    starts from the current parameter values.
    """

    type_name = 'passthrough'
    parameters = ()
    bounds = ()

    def __init__(self, ambient=25.0, time_cutoff=240, temperature_cutoff=120):
        """
        Initialize predictor

        Args:
            ambient: Ambient temperature used when a sample carries none (°C)
            time_cutoff: Tuning uses samples up to this elapsed time (s)
            temperature_cutoff: ... or while the expected value exceeds this (°C)
        """
        self.ambient = ambient
        self.time_cutoff = time_cutoff
        self.temperature_cutoff = temperature_cutoff
        self.initialize()

    def initialize(self):
        """Reset internal state"""
        self.last_prediction = None

    def _input(self, sample):
        if sample.suggestion is not None:
            return sample.suggestion
        return sample.temperature

    def _ambient(self, sample):
        return self.ambient if sample.ambient is None else sample.ambient

    def forecast(self, sample):
        """
        Prediction for a sample without writing it back

        Returns:
            Predicted temperature, or None if the sample has no temperature
        """
        prediction = self._input(sample)
        if prediction is not None:
            self.last_prediction = prediction
        return prediction

    def predict_temperature(self, sample):
        """Predict and record the result as sample.predict_temperature"""
        prediction = self.forecast(sample)
        if prediction is not None:
            sample.predict_temperature = prediction
        return prediction

    def get_parameters(self):
        return {name: getattr(self, name) for name in self.parameters}

    def set_parameters(self, **params):
        for name, value in params.items():
            if name not in self.parameters:
                raise ValueError(f"Unknown parameter '{name}' for {self.type_name} predictor")
            setattr(self, name, value)
        self.initialize()

    def describe(self):
        params = ', '.join(f"{k}={v:.4g}" if isinstance(v, float) else f"{k}={v}"
                           for k, v in self.get_parameters().items())
        return f"{self.type_name}({params})"

    def filter_samples(self, samples, expected='device_temperature'):
        """
        Select the samples used for tuning

        Keeps timer samples with an expected value, up to and including the
        last one that is either early in the run or still hot.

        Args:
            samples: Iterable of samples (e.g. a SampleLog)
            expected: Field holding the reference temperature

        Returns:
            List of samples
        """
        timer = [s for s in samples
                 if s.event == 'timer' and s.temperature is not None and getattr(s, expected) is not None]

        last = -1
        for i, sample in enumerate(timer):
            if (sample.now is not None and sample.now < self.time_cutoff) \
                    or getattr(sample, expected) > self.temperature_cutoff:
                last = i

        return timer[:last + 1]

    def tune(self, samples, **options):
        """
        Fit the predictor parameters to a logged run

        The pass-through predictor has nothing to fit.

        Returns:
            Dictionary of the fitted parameters plus 'type'
        """
        if not self.parameters:
            return {'type': self.type_name}
        return self._tune(samples, **options)

    def error(self, samples, params=None, expected='device_temperature', bias=False, bias_scale=20):
        """
        Sum of squared prediction errors over samples

        Args:
            samples: Samples to replay (already filtered)
            params: Optional parameter dictionary to evaluate
            expected: Field holding the reference temperature
            bias: Weight hot samples more, by whole multiples of bias_scale above ambient
            bias_scale: Temperature step for the bias weighting (°C)
        """
        if params:
            for name, value in params.items():
                setattr(self, name, value)
        self.initialize()

        total = 0.0
        for sample in samples:
            prediction = self.forecast(sample)
            if prediction is None:
                continue
            reference = getattr(sample, expected)
            weight = 1
            if bias:
                weight = max(1, math.floor((reference - self._ambient(sample)) / bias_scale))
            total += weight * (prediction - reference) ** 2
        return total

    def _tune(self, samples, expected='device_temperature', bias=False, bias_scale=20, **search_options):
        selected = self.filter_samples(samples, expected)
        if not selected:
            raise ValueError("No samples with reference temperatures to tune against")

        original = self.get_parameters()

        def objective(*values):
            return self.error(selected, dict(zip(self.parameters, values)), expected, bias, bias_scale)

        try:
            values = minimum_search(
                objective,
                [original[name] for name in self.parameters],
                bounds=list(self.bounds),
                **search_options
            )
        except Exception:
            self.set_parameters(**original)
            raise

        tuned = dict(zip(self.parameters, values))
        self.set_parameters(**tuned)

        logger.info(f"[Predictor] Tuned {self.describe()} over {len(selected)} samples")
        return dict(tuned, type=self.type_name)

    def __str__(self):
        return self.describe()


class LowPassPredictor(Predictor):
    """
    Single pole low-pass filter toward the plate temperature

    prediction = ambient + (T - ambient) * loss_factor * a + (1 - a) * (last - ambient)
    with a = period / (period + tau). A loss_factor below 1 models heat lost
    between the element and the plate.
    """

    type_name = 'lowpass'
    parameters = ('tau', 'loss_factor')
    bounds = ((0, None), (0, 1.0))

    def __init__(self, tau=27.0, loss_factor=1.0, **kwargs):
        if tau < 0:
            raise ValueError(f"tau must be >= 0, got {tau}")
        self.tau = tau
        self.loss_factor = loss_factor
        super().__init__(**kwargs)

    def forecast(self, sample):
        temperature = self._input(sample)
        if temperature is None:
            return None

        if self.last_prediction is None or not sample.period:
            prediction = temperature
        else:
            ambient = self._ambient(sample)
            alpha = sample.period / (sample.period + self.tau)
            prediction = ambient + (temperature - ambient) * self.loss_factor * alpha \
                + (1 - alpha) * (self.last_prediction - ambient)

        self.last_prediction = prediction
        return prediction


class DoubleLowPassPredictor(Predictor):
    """Two cascaded low-pass stages (element -> plate -> surface)"""

    type_name = 'double-lowpass'
    parameters = ('inner_tau', 'outer_tau')
    bounds = ((0, None), (0, None))

    def __init__(self, inner_tau=27.0, outer_tau=10.0, **kwargs):
        if inner_tau < 0 or outer_tau < 0:
            raise ValueError(f"Time constants must be >= 0, got {inner_tau}, {outer_tau}")
        self.inner_tau = inner_tau
        self.outer_tau = outer_tau
        super().__init__(**kwargs)

    def initialize(self):
        super().initialize()
        self.inner = None

    def forecast(self, sample):
        temperature = self._input(sample)
        if temperature is None:
            return None

        if self.inner is None or not sample.period:
            self.inner = temperature
            self.last_prediction = temperature
            return temperature

        period = sample.period
        inner_alpha = period / (period + self.inner_tau)
        outer_alpha = period / (period + self.outer_tau)

        self.inner = inner_alpha * temperature + (1 - inner_alpha) * self.inner
        self.last_prediction = outer_alpha * self.inner + (1 - outer_alpha) * self.last_prediction
        return self.last_prediction


class DifferencePredictor(Predictor):
    """
    Polynomial extrapolation of the temperature series

    Forecasts `ahead` ticks into the future from a difference table of the
    given order.
    """

    type_name = 'difference'
    parameters = ('order', 'ahead')

    def __init__(self, order=2, ahead=1, **kwargs):
        if order < 0 or ahead < 0:
            raise ValueError(f"order and ahead must be >= 0, got {order}, {ahead}")
        self.order = int(order)
        self.ahead = int(ahead)
        super().__init__(**kwargs)

    def initialize(self):
        super().initialize()
        self.table = DifferenceTable(self.order)

    def forecast(self, sample):
        temperature = self._input(sample)
        if temperature is None:
            return None

        self.table.next(temperature)
        self.last_prediction = self.table.predict(self.ahead)
        return self.last_prediction

    def _tune(self, samples, expected='device_temperature', bias=False, bias_scale=20,
              max_order=3, max_ahead=10):
        # Integer parameters, so every combination is evaluated
        selected = self.filter_samples(samples, expected)
        if not selected:
            raise ValueError("No samples with reference temperatures to tune against")

        best = None
        best_error = math.inf
        for order in range(max_order + 1):
            for ahead in range(max_ahead + 1):
                self.order = order
                self.ahead = ahead
                error = self.error(selected, expected=expected, bias=bias, bias_scale=bias_scale)
                if error < best_error:
                    best = {'order': order, 'ahead': ahead}
                    best_error = error

        self.set_parameters(**best)
        logger.info(f"[Predictor] Tuned {self.describe()} over {len(selected)} samples")
        return dict(best, type=self.type_name)


PREDICTOR_TYPES = {
    cls.type_name: cls
    for cls in (Predictor, LowPassPredictor, DoubleLowPassPredictor, DifferencePredictor)
}
