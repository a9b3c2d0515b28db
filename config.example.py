# config.example.py
# Configuration template for the hotplate reflow controller
# Copy this file to config.py and update with your settings

# ============================================================================
# REFERENCE THERMOCOUPLE (optional)
# ============================================================================

# MAX31856 thermocouple used as ground truth during calibration runs
THERMOCOUPLE_OFFSET = 0.0  # Calibration offset added to all readings (°C)

# ============================================================================
# ELEMENT / RESISTANCE ESTIMATION
# ============================================================================

AMBIENT_TEMP = 25.0            # Assumed room temperature (°C)
MEASURABLE_CURRENT = 0.1       # Below this current (A) resistance is not computed
TEMPERATURE_COEFFICIENT = 0.00393  # Element tempco (1/°C), copper nominal
MAX_TEMPERATURE_RATE = 30      # Faster estimated change aborts the run (°C/s)

# Measured resistance -> temperature points, e.g. the equilibrium_points()
# output of a calibration run.
# Leave empty to start from ambient and the nominal coefficient.
CALIBRATION_TEMPERATURES = [
    # {'resistance': 1.95, 'temperature': 25.0},
    # {'resistance': 2.62, 'temperature': 112.0},
]

# ============================================================================
# CONTROL LOOP TIMING
# ============================================================================

SAMPLE_PERIOD = 1.5  # Seconds between control ticks

# ============================================================================
# PREDICTOR
# ============================================================================

# type: passthrough, lowpass, double-lowpass or difference
# Fit the parameters with: python scripts/tune_predictor.py logs/run.csv --type lowpass
PREDICTOR = {
    'type': 'lowpass',
    'tau': 27.0,
    'loss_factor': 1.0,
}

# ============================================================================
# POWER CONTROL
# ============================================================================

# bang-bang, feed-forward or direct
CONTROLLER = 'bang-bang'

POWER_LIMITS = (2, 100)  # (idle, maximum) watts; idle keeps the current measurable

# Bang-bang "on" power by temperature (default: maximum power everywhere)
POWER_LEVELS = [
    # {'temperature': 20, 'power': 100},
    # {'temperature': 200, 'power': 60},
]

# Switch on below target - low, off at target + high (°C); a number sets both
HYSTERESIS = {'low': 0.5, 'high': 0.0}

# Feed-forward thermal model (from calibration)
THERMAL_RESISTANCE = None  # °C/W
HEAT_CAPACITY = None       # J/°C
FEED_FORWARD_ALPHA = None  # Output smoothing (0-1], None = off

# ============================================================================
# SAFETY
# ============================================================================

CUTOFF_TEMPERATURE = 250  # Power off at or above this temperature (°C)

# Temperature dependent power ceilings
SAFETY_POWER_LIMITS = [
    # {'temperature': 150, 'power': 100},
    # {'temperature': 250, 'power': 40},
]

# ============================================================================
# REFLOW PROFILE
# ============================================================================

PROFILE = [
    {'name': 'preheat', 'temperature': 100, 'seconds': 30},
    {'name': 'soak', 'temperature': 175, 'seconds': 120},
    {'name': 'reflow', 'temperature': 205, 'seconds': 30},
    {'name': 'hold', 'temperature': 205, 'seconds': 10},
    {'name': 'cool', 'temperature': 100, 'seconds': 120},
]

# ============================================================================
# CALIBRATION RUN
# ============================================================================

CALIBRATION = {
    'power_step': 10,            # Watts between staircase levels
    'step_duration': 450,        # Seconds per step
    'maximum_temperature': 220,  # Rising step above this ends the run (°C)
}
