"""
Tests for final price blending and overall confidence.
"""

import pytest

from price_consensus.models.consensus import AnalysisQuality, FlagSeverity, ValidationFlag
from price_consensus.models.evidence import AuthorityData, EvidenceSummary
from price_consensus.pipeline.blender import (
    blend_final_price,
    market_weight_pct,
    price_range_for,
    round_cents,
)
from price_consensus.pipeline.confidence import calculate_confidence, quality_for_confidence


def _evidence(listings=0, authority=False, web=False) -> EvidenceSummary:
    return EvidenceSummary(
        listing_count=listings,
        authority=AuthorityData(source='nhtsa', verified=True) if authority else None,
        web_price_low=10.0 if web else 0.0,
        web_price_high=12.0 if web else 0.0,
    )


ERROR_FLAG = ValidationFlag(type='overvalued', severity=FlagSeverity.ERROR, message='Too high')
WARNING_FLAG = ValidationFlag(type='price_mismatch', message='Slightly high')


class TestRoundCents:
    @pytest.mark.parametrize('value,expected', [
        (1.005, 1.01),
        (2.675, 2.68),
        (46.999, 47.0),
        (10, 10.0),
    ])
    def test_half_up(self, value, expected):
        assert round_cents(value) == expected


class TestMarketWeight:
    """Test evidence-driven market weighting."""

    def test_base(self):
        assert market_weight_pct(_evidence()) == 50

    def test_listing_tiers(self):
        assert market_weight_pct(_evidence(listings=3)) == 60
        assert market_weight_pct(_evidence(listings=10)) == 70

    def test_capped(self):
        assert market_weight_pct(_evidence(listings=10, authority=True, web=True)) == 75


class TestBlendFinalPrice:
    """Test market / AI blending."""

    def test_seventy_percent_market(self):
        blend = blend_final_price(50.0, 40.0, _evidence(listings=10))

        assert blend.final_price == 47.0
        assert blend.price_method == 'evidence_blend_70pct_market'
        assert blend.market_weight_pct == 70
        assert blend.price_range.low == 32.0
        assert blend.price_range.high == 60.0

    def test_market_only(self):
        blend = blend_final_price(50.0, 0.0, _evidence(listings=10))

        assert blend.final_price == 50.0
        assert blend.price_method == 'market_only'

    def test_ai_only(self):
        blend = blend_final_price(0.0, 40.0, _evidence())

        assert blend.final_price == 40.0
        assert blend.price_method == 'ai_reasoning_only'

    def test_no_data(self):
        blend = blend_final_price(0.0, 0.0, _evidence())

        assert blend.final_price == 0.0
        assert blend.price_method == 'no_data'
        assert blend.price_range.low == 0.0
        assert blend.price_range.high == 0.0

    def test_error_flag_shifts_to_market(self):
        blend = blend_final_price(50.0, 40.0, _evidence(listings=10), [ERROR_FLAG])

        assert blend.final_price == 48.5
        assert blend.price_method == 'evidence_blend_70pct_market_validation_adjusted'

    def test_warning_flag_ignored(self):
        blend = blend_final_price(50.0, 40.0, _evidence(listings=10), [WARNING_FLAG])

        assert blend.price_method == 'evidence_blend_70pct_market'

    def test_error_flag_ignored_when_one_sided(self):
        blend = blend_final_price(0.0, 40.0, _evidence(), [ERROR_FLAG])

        assert blend.price_method == 'ai_reasoning_only'
        assert blend.final_price == 40.0

    def test_same_inputs_same_output(self):
        evidence = _evidence(listings=4, authority=True)

        first = blend_final_price(33.33, 21.17, evidence)
        second = blend_final_price(33.33, 21.17, evidence)

        assert first == second

    def test_price_range_single_side(self):
        price_range = price_range_for(0.0, 25.0)

        assert (price_range.low, price_range.high) == (20.0, 30.0)


class TestConfidence:
    """Test overall confidence and quality tiers."""

    def test_full_marks_capped(self):
        assert calculate_confidence(1.0, 100, True, 5) == 98

    def test_components(self):
        # 0.5*40 + 70*0.4 + (2/3)*10 + 10
        assert calculate_confidence(0.5, 70, True, 2) == 65

    def test_nothing(self):
        assert calculate_confidence(0.0, 0, False, 0) == 0

    def test_validation_worth_ten(self):
        assert calculate_confidence(0.0, 0, True, 0) == 10

    @pytest.mark.parametrize('confidence,quality', [
        (98, AnalysisQuality.EXCELLENT),
        (80, AnalysisQuality.EXCELLENT),
        (79, AnalysisQuality.GOOD),
        (65, AnalysisQuality.GOOD),
        (50, AnalysisQuality.FAIR),
        (49, AnalysisQuality.DEGRADED),
    ])
    def test_quality_tiers(self, confidence, quality):
        assert quality_for_confidence(confidence) is quality
