"""
Exception types raised by smcpy.

Fatal problems (bad sample interval, unusable magnitudes, unsupported units,
filters that cannot be designed for the sampling rate) are raised. Outcomes
of processing such as a missing event or a failed quality check are not
exceptions: they are reported through ``V2Status`` on the result.
"""

__all__ = ["SmProcessingError", "ConfigurationError", "FilterDesignError"]


class SmProcessingError(Exception):
    """Base class for all smcpy errors."""


class ConfigurationError(SmProcessingError, ValueError):
    """Invalid record metadata or processing parameters."""


class FilterDesignError(SmProcessingError, ValueError):
    """Butterworth coefficients could not be calculated for the cutoffs."""
