"""
Numeric Helpers

Least-squares line fitting and the bounded minimum search used to tune
predictor parameters.
"""

import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import scipy.optimize as opt

logger = logging.getLogger(__name__)


class SearchDepthError(RuntimeError):
    """Raised when minimum_search does not converge"""
    pass


# =============================================================================
# Linear Regression
# =============================================================================

class LinearRegression:
    """Incremental ordinary least squares fit of y = gradient * x + intercept."""

    def __init__(self):
        self.n: int = 0
        self.sum_x: float = 0.0
        self.sum_y: float = 0.0
        self.sum_xx: float = 0.0
        self.sum_xy: float = 0.0

    def add_data(self, x: float, y: float) -> None:
        self.n += 1
        self.sum_x += x
        self.sum_y += y
        self.sum_xx += x * x
        self.sum_xy += x * y

    def _denominator(self) -> float:
        if self.n < 2:
            raise ValueError(f"Linear regression needs at least 2 points, have {self.n}")
        denominator = self.n * self.sum_xx - self.sum_x * self.sum_x
        if denominator == 0:
            raise ValueError("Linear regression is degenerate (all x values equal)")
        return denominator

    @property
    def gradient(self) -> float:
        return (self.n * self.sum_xy - self.sum_x * self.sum_y) / self._denominator()

    @property
    def intercept(self) -> float:
        return (self.sum_y - self.gradient * self.sum_x) / self.n

    def predict(self, x: float) -> float:
        return self.gradient * x + self.intercept


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean, raising ValueError on an empty sequence."""
    if not values:
        raise ValueError("Mean of an empty sequence")
    return sum(values) / len(values)


# =============================================================================
# Bounded Minimum Search
# =============================================================================

def minimum_search(fn: Callable[..., float],
                   x0: Sequence[float],
                   bounds: Optional[Sequence[Tuple[Optional[float], Optional[float]]]] = None,
                   tolerance: float = 1e-6,
                   max_iterations: Optional[int] = None,
                   method: str = 'Powell') -> List[float]:
    """
    Find the parameters minimising fn with scipy.optimize.minimize.

    Powell's method needs no gradient, which suits objectives that replay a
    filter over logged samples.

    Args:
        fn: Objective, called as fn(*params)
        x0: Starting value of each parameter (clipped into bounds)
        bounds: Optional (low, high) pair per parameter, None for an open side
        tolerance: Convergence tolerance passed to the solver
        max_iterations: Optional iteration limit
        method: scipy.optimize.minimize method

    Returns:
        List with the best value of each parameter

    Raises:
        ValueError: On malformed starting values or bounds
        SearchDepthError: If the solver reports failure
    """
    if len(x0) == 0:
        raise ValueError("minimum_search needs at least one parameter")
    if tolerance <= 0:
        raise ValueError(f"tolerance must be positive, got {tolerance}")

    start = [float(v) for v in x0]
    if bounds is not None:
        if len(bounds) != len(start):
            raise ValueError("Bounds must match the number of parameters")
        for i, (low, high) in enumerate(bounds):
            if low is not None and high is not None and low > high:
                raise ValueError(f"Lower bound {low} above upper bound {high} for parameter {i}")
            if low is not None:
                start[i] = max(start[i], low)
            if high is not None:
                start[i] = min(start[i], high)
        if all(low is None and high is None for low, high in bounds):
            bounds = None

    options = {}
    if max_iterations is not None:
        options['maxiter'] = max_iterations

    result = opt.minimize(lambda x: fn(*x), np.array(start), method=method, bounds=bounds,
                          tol=tolerance, options=options)

    if not result.success:
        raise SearchDepthError(f"minimum_search did not converge: {result.message}")

    best = [float(v) for v in np.atleast_1d(result.x)]
    logger.debug(f"[Search] Converged after {result.nit} iterations: {best} -> {result.fun}")
    return best
