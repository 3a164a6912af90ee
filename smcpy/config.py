"""
Processing parameters and decision tables.

All tunable values of the correction chain live in :class:`ProcessingConfig`.
The field defaults are the documented fallbacks used whenever a value is not
supplied. Instances are frozen; every engine works on its own copy.
"""

# =============================================================================
# IMPORTS
# =============================================================================
import dataclasses
import enum
import logging
import math
from typing import Any, Mapping, Optional, Tuple

from .exceptions import ConfigurationError

log = logging.getLogger(__name__)

# =============================================================================
# CONSTANTS
# =============================================================================

FROM_G_CONVERSION = 980.665  # cm/s^2 per g
NO_DATA_VALUE = -999.0
MAGNITUDE_EPSILON = 0.001
DELTA_T_EPSILON = 0.0001

# data unit codes -> (label, factor to cm/s^2)
UNIT_TABLE = {
    2: ("g", FROM_G_CONVERSION),
    4: ("cm/sec2", 1.0),
}
CANONICAL_UNIT_CODE = 4


class V2Status(str, enum.Enum):
    """Outcome of the V1 -> V2 correction."""
    GOOD = "GOOD"
    FAILQC = "FAILQC"
    NOEVENT = "NOEVENT"
    NOABC = "NOABC"


class MagnitudeType(enum.Enum):
    MOMENT = "Mw"
    LOCAL = "ML"
    SURFACE = "Ms"
    OTHER = "Mother"


# order in which the record magnitudes are considered
MAGNITUDE_PRECEDENCE = (
    MagnitudeType.MOMENT,
    MagnitudeType.LOCAL,
    MagnitudeType.SURFACE,
    MagnitudeType.OTHER,
)

# (minimum magnitude, low cutoff Hz, high cutoff Hz), checked top-down
MAGNITUDE_CUTOFF_TABLE = (
    (5.5, 0.1, 40.0),
    (4.5, 0.2, 35.0),
    (3.5, 0.3, 35.0),
    (-math.inf, 0.5, 25.0),
)

SUPPORTED_ONSET_METHODS = ("DE", "AIC")
SUPPORTED_DIFFERENTIATION_ORDERS = (3, 5, 7, 9)


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclasses.dataclass(frozen=True)
class ProcessingConfig:
    """Parameters of the V1 -> V2 correction chain.

    Parameters
    ----------
    data_unit_code : int
        Units of the input acceleration (2 = g, 4 = cm/s^2).
    bp_low_cutoff, bp_high_cutoff : float
        Band-pass corners (Hz) applied before event detection.
    num_poles : int
        Butterworth order passed to the filter design.
    taper_length : float
        Configured half-cosine taper length (s).
    event_onset_buffer : float
        Seconds subtracted from the pick to obtain the event start index.
    event_onset_method : str
        ``"DE"`` (damping energy) or ``"AIC"`` (statistical picker).
    qc_initial_velocity, qc_residual_velocity : float
        Velocity limits (cm/s) of the quality check.
    qc_residual_displacement : float
        Displacement limit (cm) of the quality check.
    first_poly_order_lower, first_poly_order_upper : int
        Polynomial orders tried for the pre-event baseline segment.
    third_poly_order_lower, third_poly_order_upper : int
        Polynomial orders tried for the trailing baseline segment.
    abc_break_interval : float
        Spacing (s) of the candidate break points of the baseline search.
    abc_min_tail : float
        Minimum span (s) left for the trailing baseline segment.
    strong_motion_threshold : float
        Peak acceleration (percent of g) above which a record is strong motion.
    differentiation_order : int
        Central difference stencil (3, 5, 7 or 9 points) for the final
        acceleration.
    """
    data_unit_code: int = 4
    bp_low_cutoff: float = 0.5
    bp_high_cutoff: float = 20.0
    num_poles: int = 2
    taper_length: float = 2.0
    event_onset_buffer: float = 0.0
    event_onset_method: str = "DE"
    qc_initial_velocity: float = 0.1
    qc_residual_velocity: float = 0.1
    qc_residual_displacement: float = 0.1
    first_poly_order_lower: int = 1
    first_poly_order_upper: int = 2
    third_poly_order_lower: int = 1
    third_poly_order_upper: int = 2
    abc_break_interval: float = 1.0
    abc_min_tail: float = 2.0
    strong_motion_threshold: float = 5.0
    differentiation_order: int = 3

    def __post_init__(self):
        method = str(self.event_onset_method).upper()
        if method not in SUPPORTED_ONSET_METHODS:
            raise ConfigurationError(
                f"Unknown event onset method '{self.event_onset_method}', "
                f"expected one of {SUPPORTED_ONSET_METHODS}")
        object.__setattr__(self, "event_onset_method", method)

        if self.differentiation_order not in SUPPORTED_DIFFERENTIATION_ORDERS:
            raise ConfigurationError(
                f"Differentiation order must be one of {SUPPORTED_DIFFERENTIATION_ORDERS}, "
                f"got {self.differentiation_order}")
        for lower, upper, name in ((self.first_poly_order_lower, self.first_poly_order_upper, "first"),
                                   (self.third_poly_order_lower, self.third_poly_order_upper, "third")):
            if not 1 <= lower <= upper <= 3:
                raise ConfigurationError(
                    f"Invalid {name} polynomial order range [{lower}, {upper}], "
                    "orders must satisfy 1 <= lower <= upper <= 3")
        if self.taper_length < 0 or self.event_onset_buffer < 0:
            raise ConfigurationError("Taper length and onset buffer must be non-negative")
        if self.abc_break_interval <= 0 or self.abc_min_tail <= 0:
            raise ConfigurationError("ABC break interval and minimum tail must be positive")

    @property
    def first_poly_orders(self) -> Tuple[int, ...]:
        return tuple(range(self.first_poly_order_lower, self.first_poly_order_upper + 1))

    @property
    def third_poly_orders(self) -> Tuple[int, ...]:
        return tuple(range(self.third_poly_order_lower, self.third_poly_order_upper + 1))

    def with_overrides(self, **changes: Any) -> "ProcessingConfig":
        """Returns an independent copy with the given fields replaced."""
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_mapping(cls, mapping: Optional[Mapping[str, Any]] = None) -> "ProcessingConfig":
        """Builds a configuration from a key/value mapping.

        Values may be strings (as read from a configuration file) or numbers.
        Missing keys keep their defaults, unknown keys are ignored with a
        warning.

        Raises
        ------
        ConfigurationError
            If a value cannot be converted to the type of its field.
        """
        if not mapping:
            return cls()

        fields = {f.name: f for f in dataclasses.fields(cls)}
        values = {}
        for key, raw in mapping.items():
            name = str(key).strip()
            if name not in fields:
                log.warning(f"Ignoring unknown configuration key '{name}'.")
                continue
            values[name] = _parse_value(name, fields[name].type, raw)
        return cls(**values)


def _parse_value(name: str, kind: Any, raw: Any) -> Any:
    """Converts a raw configuration value to the declared field type."""
    text = raw.strip() if isinstance(raw, str) else raw
    try:
        if kind in (int, "int"):
            if isinstance(text, str):
                number = float(text)
                if not number.is_integer():
                    raise ValueError(text)
                return int(number)
            return int(text)
        if kind in (float, "float"):
            value = float(text)
            if not math.isfinite(value):
                raise ValueError(text)
            return value
        return str(text)
    except (TypeError, ValueError) as e:
        log.error(f"Unparseable value {raw!r} for configuration key '{name}'.")
        raise ConfigurationError(f"Invalid value {raw!r} for '{name}'") from e


# =============================================================================
# DECISION TABLES
# =============================================================================

def unit_conversion_factor(unit_code: int) -> float:
    """Returns the factor converting ``unit_code`` data to cm/s^2."""
    try:
        return UNIT_TABLE[unit_code][1]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported data unit code {unit_code}, expected one of {sorted(UNIT_TABLE)}") from None


def magnitude_cutoffs(magnitude: float) -> Tuple[float, float]:
    """Band-pass corners (low, high) in Hz for an event magnitude."""
    for minimum, low, high in MAGNITUDE_CUTOFF_TABLE:
        if magnitude >= minimum - MAGNITUDE_EPSILON:
            return low, high
    # unreachable, the last row accepts everything
    return MAGNITUDE_CUTOFF_TABLE[-1][1:]
