"""
Tests for provider response normalization.
"""

import pytest

from price_consensus.errors import ParseFailureError
from price_consensus.models.vote import Decision
from price_consensus.providers.parsers import (
    extract_json_object,
    normalize_confidence,
    normalize_decision,
    parse_analysis,
    parse_price,
    response_confidence,
)


class TestExtractJsonObject:
    """Test recovery of JSON objects from model output."""

    def test_fenced_json(self):
        raw = 'Here you go:\n```json\n{"itemName": "Pyrex bowl", "estimatedValue": 35}\n```'

        assert extract_json_object(raw) == {"itemName": "Pyrex bowl", "estimatedValue": 35}

    def test_trailing_comma_repaired(self):
        raw = '{"itemName": "Pyrex bowl", "estimatedValue": 35,}'

        assert extract_json_object(raw)['estimatedValue'] == 35

    def test_single_quotes_repaired(self):
        raw = "{'itemName': 'Lamp', 'decision': 'BUY'}"

        assert extract_json_object(raw)['decision'] == 'BUY'

    def test_empty_response_fails(self):
        with pytest.raises(ParseFailureError):
            extract_json_object('   ')

    def test_prose_without_json_fails(self):
        with pytest.raises(ParseFailureError):
            extract_json_object('I think this is worth about twenty dollars.')

    def test_unrecoverable_json_fails(self):
        with pytest.raises(ParseFailureError):
            extract_json_object('{"itemName": "Lamp" "value": }')


class TestFieldNormalizers:
    """Test price, confidence and decision coercion."""

    @pytest.mark.parametrize('value,expected', [
        (42, 42.0),
        (19.99, 19.99),
        ('$1,299.99', 1299.99),
        ('$50-$70', 60.0),
        ('about 15 dollars', 15.0),
        (-5, 0.0),
        ('-$5', 0.0),
        (None, 0.0),
        ('unknown', 0.0),
        (True, 0.0),
    ])
    def test_parse_price(self, value, expected):
        assert parse_price(value) == expected

    @pytest.mark.parametrize('value,expected', [
        (0.7, 0.7),
        (85, 0.85),
        ('90%', 0.9),
        ('high', 0.85),
        ('low', 0.35),
        (None, None),
        ('n/a', None),
    ])
    def test_normalize_confidence(self, value, expected):
        assert normalize_confidence(value) == expected

    @pytest.mark.parametrize('value,expected', [
        ('BUY', Decision.BUY),
        ('strong buy', Decision.BUY),
        ('Buy it', Decision.BUY),
        ('Buy.', Decision.BUY),
        ('BUY - strong margin', Decision.BUY),
        ('buy (good deal)', Decision.BUY),
        ('yes', Decision.BUY),
        ('SELL', Decision.SELL),
        ('HOLD', Decision.SELL),
        ('Pass', Decision.SELL),
        ('avoid, overpriced', Decision.SELL),
        ('NOT RECOMMENDED', Decision.SELL),
        ('not recommended for resale', Decision.SELL),
        ("Don't buy", Decision.SELL),
        ('Buyer beware', Decision.SELL),
        (None, Decision.SELL),
    ])
    def test_normalize_decision(self, value, expected):
        assert normalize_decision(value) is expected

    def test_decision_with_commentary(self):
        raw = '{"itemName": "Pyrex bowl", "estimatedValue": 40, "decision": "BUY - resale margin is strong"}'

        analysis = parse_analysis(raw, 'anthropic')

        assert analysis.decision is Decision.BUY


class TestParseAnalysis:
    """Test full response normalization."""

    def test_camel_case_response(self):
        raw = """{
            "itemName": "Pyrex Butterprint Bowl 403",
            "estimatedValue": "$35.00",
            "decision": "BUY",
            "confidence": 82,
            "category": "pyrex",
            "valuationFactors": ["Popular pattern", "Minor wear"],
            "summaryReasoning": "Sells well.",
            "marketAssessment": {"trend": "stable", "demandLevel": "high"}
        }"""

        analysis = parse_analysis(raw, 'anthropic')

        assert analysis.item_name == "Pyrex Butterprint Bowl 403"
        assert analysis.estimated_value == 35.0
        assert analysis.decision is Decision.BUY
        assert analysis.confidence == 0.82
        assert analysis.valuation_factors == ["Popular pattern", "Minor wear"]
        assert analysis.market_assessment == {"trend": "stable", "demandLevel": "high"}

    def test_unknown_keys_kept_as_extras(self):
        analysis = parse_analysis('{"itemName": "Lamp", "averagePrice": 20}', 'perplexity')

        assert analysis.extras == {"averagePrice": 20}

    def test_identifiers_keep_scalars_only(self):
        raw = '{"itemName": "Car", "identifiers": {"vin": "1HGCM82633A004352", "photos": [1, 2]}}'

        analysis = parse_analysis(raw, 'google')

        assert analysis.identifiers == {"vin": "1HGCM82633A004352"}
        assert analysis.extras["identifiers.photos"] == [1, 2]

    def test_single_flag_wrapped_in_list(self):
        analysis = parse_analysis('{"valid": false, "flags": "price too high"}', 'groq')

        assert analysis.valid is False
        assert analysis.flags == ["price too high"]

    def test_no_recognised_fields_fails(self):
        with pytest.raises(ParseFailureError) as exc_info:
            parse_analysis('{"foo": 1, "bar": 2}', 'mistral')

        assert exc_info.value.context['provider'] == 'mistral'

    def test_parse_failure_carries_provider(self):
        with pytest.raises(ParseFailureError) as exc_info:
            parse_analysis('no json here', 'deepseek')

        assert exc_info.value.context['provider'] == 'deepseek'


class TestResponseConfidence:
    """Test the confidence attached to a response."""

    def test_reported_confidence_wins(self):
        analysis = parse_analysis('{"itemName": "Lamp", "confidence": 0.3}', 'openai')

        assert response_confidence(analysis) == 0.3

    def test_completeness_fallback(self):
        analysis = parse_analysis('{"itemName": "Lamp", "estimatedValue": 20}', 'openai')

        assert response_confidence(analysis) == 0.6
