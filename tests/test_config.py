import logging

import pytest

from smcpy.config import (FROM_G_CONVERSION, ProcessingConfig, magnitude_cutoffs,
                          unit_conversion_factor)
from smcpy.exceptions import ConfigurationError


class TestProcessingConfig:

    def test_defaults(self):
        config = ProcessingConfig()
        assert config.event_onset_method == 'DE'
        assert config.first_poly_orders == (1, 2)
        assert config.third_poly_orders == (1, 2)
        assert config.taper_length == 2.0

    def test_method_is_normalised(self):
        assert ProcessingConfig(event_onset_method='aic').event_onset_method == 'AIC'

    @pytest.mark.parametrize("changes", [
        dict(event_onset_method='STA/LTA'),
        dict(differentiation_order=4),
        dict(first_poly_order_lower=0),
        dict(third_poly_order_lower=3, third_poly_order_upper=2),
        dict(first_poly_order_upper=4),
        dict(taper_length=-1.0),
        dict(abc_break_interval=0.0),
    ])
    def test_invalid_values(self, changes):
        with pytest.raises(ConfigurationError):
            ProcessingConfig(**changes)

    def test_is_frozen(self):
        with pytest.raises(AttributeError):
            ProcessingConfig().taper_length = 3.0

    def test_with_overrides(self):
        base = ProcessingConfig()
        changed = base.with_overrides(event_onset_buffer=0.5)
        assert changed.event_onset_buffer == 0.5
        assert base.event_onset_buffer == 0.0

    def test_from_mapping_parses_strings(self):
        config = ProcessingConfig.from_mapping({
            'bp_low_cutoff': ' 0.3 ',
            'num_poles': '4',
            'event_onset_method': 'aic',
            'third_poly_order_upper': '3.0',
        })
        assert config.bp_low_cutoff == 0.3
        assert config.num_poles == 4
        assert config.event_onset_method == 'AIC'
        assert config.third_poly_orders == (1, 2, 3)

    def test_from_mapping_empty(self):
        assert ProcessingConfig.from_mapping(None) == ProcessingConfig()
        assert ProcessingConfig.from_mapping({}) == ProcessingConfig()

    @pytest.mark.parametrize("key, value", [
        ('taper_length', 'two'),
        ('num_poles', '2.5'),
        ('qc_residual_velocity', 'inf'),
    ])
    def test_from_mapping_bad_value(self, key, value):
        with pytest.raises(ConfigurationError):
            ProcessingConfig.from_mapping({key: value})

    def test_from_mapping_unknown_key(self, caplog):
        with caplog.at_level(logging.WARNING, logger='smcpy.config'):
            config = ProcessingConfig.from_mapping({'colour': 'blue'})
        assert config == ProcessingConfig()
        assert 'colour' in caplog.text


class TestDecisionTables:

    @pytest.mark.parametrize("magnitude, cutoffs", [
        (7.0, (0.1, 40.0)),
        (5.5, (0.1, 40.0)),
        (5.4995, (0.1, 40.0)),
        (5.49, (0.2, 35.0)),
        (4.5, (0.2, 35.0)),
        (4.0, (0.3, 35.0)),
        (3.5, (0.3, 35.0)),
        (3.49, (0.5, 25.0)),
        (0.0, (0.5, 25.0)),
    ])
    def test_magnitude_cutoffs(self, magnitude, cutoffs):
        assert magnitude_cutoffs(magnitude) == cutoffs

    def test_unit_factors(self):
        assert unit_conversion_factor(4) == 1.0
        assert unit_conversion_factor(2) == FROM_G_CONVERSION

    def test_unknown_unit(self):
        with pytest.raises(ConfigurationError):
            unit_conversion_factor(7)
