"""
Thermal Model Fitting

First-order lumped thermal model of the hotplate (one heat capacity
losing heat to ambient through one thermal resistance) and the
step-response fit that recovers its time constant from calibration data.
"""

import logging
import math
from typing import Dict, Optional, Sequence, Tuple

from .numeric import LinearRegression

logger = logging.getLogger(__name__)


class FitError(ValueError):
    """Raised when a fit has too little or degenerate data"""
    pass


# =============================================================================
# Thermal Model
# =============================================================================

class ThermalModel:
    """
    Lumped first-order plant: C * dT/dt = P - (T - T_ambient) / R

    Args:
        resistance: Thermal resistance to ambient (°C/W)
        capacity: Heat capacity (J/°C)
        ambient: Ambient temperature (°C)
    """

    def __init__(self, resistance: float, capacity: float, ambient: float = 25.0):
        if resistance is None or resistance <= 0:
            raise ValueError(f"Thermal resistance must be positive, got {resistance}")
        if capacity is None or capacity <= 0:
            raise ValueError(f"Heat capacity must be positive, got {capacity}")
        self.resistance = resistance
        self.capacity = capacity
        self.ambient = ambient

    @property
    def time_constant(self) -> float:
        return self.resistance * self.capacity

    def temperature_delta(self, power: float, temperature: float, period: float,
                          ambient: Optional[float] = None) -> float:
        """Temperature change over one period at constant power."""
        if ambient is None:
            ambient = self.ambient
        return (period / self.capacity) * power \
            - (period / (self.capacity * self.resistance)) * (temperature - ambient)

    def required_power(self, temperature: float, target: float, period: float,
                       ambient: Optional[float] = None) -> float:
        """Power that moves temperature to target in one period."""
        if ambient is None:
            ambient = self.ambient
        delta = target - temperature
        return (delta + period / (self.capacity * self.resistance) * (temperature - ambient)) \
            * self.capacity / period

    def equilibrium_temperature(self, power: float, ambient: Optional[float] = None) -> float:
        if ambient is None:
            ambient = self.ambient
        return ambient + power * self.resistance

    def __str__(self):
        return f"ThermalModel(R={self.resistance:.4f}°C/W, C={self.capacity:.1f}J/°C, tau={self.time_constant:.1f}s)"


# =============================================================================
# Step Response Fit
# =============================================================================

class FirstOrderStepEstimator:
    """
    Fit y(t) = final - step * exp(-t / tau) to a step response.

    The distance to the final value decays exponentially, so its logarithm
    is linear in time. Points are used from the start of the step until the
    response has covered `threshold` of the way to the final value; later
    points are dominated by noise.
    """

    def __init__(self, threshold: float = 0.632):
        if not 0 < threshold < 1:
            raise ValueError(f"Threshold must be between 0 and 1, got {threshold}")
        self.threshold = threshold

    def fit_curve(self, data: Sequence[Tuple[float, float]],
                  initial: Optional[float] = None,
                  final: Optional[float] = None,
                  resistance: Optional[float] = None) -> Dict:
        """
        Fit one step response.

        Args:
            data: (time, value) pairs in time order
            initial: Value before the step (default: first value)
            final: Asymptotic value (default: last value)
            resistance: Thermal resistance for the capacitance estimate

        Returns:
            Dictionary with tau, step, initial, final, points and, when a
            resistance is given, capacitance

        Raises:
            FitError: If initial equals final or fewer than 2 points are usable
        """
        if not data:
            raise FitError("No data to fit")

        if initial is None:
            initial = data[0][1]
        if final is None:
            final = data[-1][1]

        if initial == final:
            raise FitError(f"Initial and final values are identical ({initial})")

        direction = 1.0 if final > initial else -1.0
        limit = abs(final - initial) * self.threshold
        start = data[0][0]

        regression = LinearRegression()
        for time, value in data:
            remaining = direction * (final - value)
            if remaining <= 0:
                break
            regression.add_data(time - start, math.log(remaining))
            if abs(value - initial) >= limit:
                break

        if regression.n < 2:
            raise FitError(f"Need at least 2 points before the threshold crossing, have {regression.n}")

        try:
            slope = regression.gradient
            intercept = regression.intercept
        except ValueError as e:
            raise FitError(str(e)) from e

        if slope >= 0:
            raise FitError(f"Response does not approach final value (slope {slope:.6f})")

        result = {
            'tau': -1.0 / slope,
            'step': math.exp(intercept) * direction,
            'initial': initial,
            'final': final,
            'points': regression.n,
        }
        if resistance:
            result['capacitance'] = result['tau'] / resistance

        logger.debug(f"[StepFit] tau={result['tau']:.1f}s over {regression.n} points")
        return result
