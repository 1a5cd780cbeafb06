"""
Response normalization: raw provider text -> ParsedAnalysis.

Providers answer in loosely-structured JSON (fenced, commented, with
trailing commas, camelCase or snake_case keys). Everything here either
produces a ParsedAnalysis that reflects what the provider actually said or
raises ParseFailureError. Nothing is ever filled in to make a broken
response look complete.
"""

import json
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..errors import ParseFailureError
from ..models.vote import Decision, ParsedAnalysis

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    'item_name': (
        'itemName', 'item_name', 'name', 'item', 'title',
        'productName', 'product_name', 'identifiedItem',
    ),
    'estimated_value': (
        'estimatedValue', 'estimated_value', 'value', 'price',
        'estimatedPrice', 'estimated_price', 'marketValue', 'market_value',
        'fairMarketValue',
    ),
    'decision': ('decision', 'recommendation', 'action', 'verdict'),
    'confidence': ('confidence', 'confidenceScore', 'confidence_score', 'certainty'),
    'category': ('category', 'itemCategory', 'item_category'),
    'condition': ('condition', 'itemCondition', 'item_condition'),
    'description': ('description', 'details'),
    'identifiers': ('identifiers', 'additionalDetails', 'additional_details'),
    'valuation_factors': (
        'valuation_factors', 'valuationFactors', 'factors', 'reasons',
    ),
    'summary_reasoning': (
        'summary_reasoning', 'summaryReasoning', 'summary', 'reasoning', 'explanation',
    ),
    'flags': ('flags', 'issues', 'warnings'),
    'valid': ('valid', 'isValid', 'is_valid'),
    'market_assessment': ('marketAssessment', 'market_assessment'),
}

DECISION_TERMS: dict[str, Decision] = {
    'BUY': Decision.BUY,
    'BUY IT': Decision.BUY,
    'STRONG BUY': Decision.BUY,
    'PURCHASE': Decision.BUY,
    'ACQUIRE': Decision.BUY,
    'YES': Decision.BUY,
    'GOOD DEAL': Decision.BUY,
    'RECOMMENDED': Decision.BUY,
    'SELL': Decision.SELL,
    'PASS': Decision.SELL,
    'SKIP': Decision.SELL,
    'AVOID': Decision.SELL,
    'NO': Decision.SELL,
    'OVERPRICED': Decision.SELL,
    'NOT RECOMMENDED': Decision.SELL,
}

# Phrase matching inside longer text. Negative phrases are tried first so
# "NOT RECOMMENDED" or "DON'T BUY" never match the bare BUY terms. YES/NO
# only count as the whole answer.
_SELL_PHRASES = (
    'NOT RECOMMENDED', 'DO NOT BUY', "DON'T BUY", 'NOT A BUY',
    'OVERPRICED', 'AVOID', 'PASS', 'SKIP', 'SELL',
)
_BUY_PHRASES = ('STRONG BUY', 'BUY IT', 'GOOD DEAL', 'RECOMMENDED', 'PURCHASE', 'ACQUIRE', 'BUY')
_PHRASE_RES = tuple(
    (re.compile(rf"(?<![A-Z']){re.escape(phrase)}(?![A-Z'])"), decision)
    for phrases, decision in ((_SELL_PHRASES, Decision.SELL), (_BUY_PHRASES, Decision.BUY))
    for phrase in phrases
)

_CONFIDENCE_WORDS = {'high': 0.85, 'medium': 0.6, 'moderate': 0.6, 'low': 0.35}

_FENCE_RE = re.compile(r'```(?:json|JSON)?')
_TRAILING_COMMA_RE = re.compile(r',\s*([}\]])')
_UNQUOTED_KEY_RE = re.compile(r'([{,]\s*)([A-Za-z_][A-Za-z0-9_]*)\s*:')
_NUMBER_RE = re.compile(r'\d[\d,]*(?:\.\d+)?')


def extract_json_object(raw: str) -> dict[str, Any]:
    """
    Pull the first JSON object out of free-form model output.

    Raises:
        ParseFailureError: If no JSON object can be recovered
    """
    if not raw or not raw.strip():
        raise ParseFailureError('Empty provider response')

    text = _FENCE_RE.sub('', raw).strip()
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end <= start:
        raise ParseFailureError(
            'No JSON object in provider response',
            context={'preview': text[:200]},
        )
    candidate = text[start:end + 1]

    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        try:
            data = json.loads(_repair_json(candidate))
        except json.JSONDecodeError as e:
            raise ParseFailureError(
                f'Malformed JSON in provider response: {e.msg}',
                context={'preview': candidate[:200]},
            ) from e

    if not isinstance(data, dict):
        raise ParseFailureError('Provider response JSON is not an object')
    return data


def _repair_json(candidate: str) -> str:
    """Fix the common defects: trailing commas, bare keys, single quotes."""
    fixed = _TRAILING_COMMA_RE.sub(r'\1', candidate)
    fixed = _UNQUOTED_KEY_RE.sub(r'\1"\2":', fixed)
    if '"' not in candidate:
        fixed = fixed.replace("'", '"')
    return fixed


def parse_price(value: Any) -> float:
    """
    Parse a price from a number or a money string.

    "$1,299.99" -> 1299.99; "$50-$70" -> 60.0. Negative or unparseable
    values yield 0.0 (no usable value).
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else 0.0
    if isinstance(value, str):
        if value.strip().startswith('-'):
            return 0.0
        numbers = [float(n.replace(',', '')) for n in _NUMBER_RE.findall(value)]
        if not numbers:
            return 0.0
        if len(numbers) >= 2 and '-' in value:
            return round((numbers[0] + numbers[1]) / 2, 2)
        return numbers[0]
    return 0.0


def normalize_confidence(value: Any) -> float | None:
    """Coerce a reported confidence into [0, 1]; values above 1 are percentages."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _CONFIDENCE_WORDS:
            return _CONFIDENCE_WORDS[word]
        numbers = _NUMBER_RE.findall(word)
        if not numbers:
            return None
        value = float(numbers[0].replace(',', ''))
    if not isinstance(value, (int, float)):
        return None
    number = float(value)
    if number > 1:
        number = number / 100
    return min(max(number, 0.0), 1.0)


def normalize_decision(value: Any) -> Decision:
    """
    Map free-form recommendation text to BUY/SELL.

    Exact table lookup first, then the first known phrase found in the text.
    Anything unrecognised is SELL.
    """
    if not isinstance(value, str):
        return Decision.SELL
    text = value.strip().upper().replace('’', "'")
    if text in DECISION_TERMS:
        return DECISION_TERMS[text]
    for pattern, decision in _PHRASE_RES:
        if pattern.search(text):
            return decision
    return Decision.SELL


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return [str(value)]


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    return None


def _canonicalize(data: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a raw object into canonical fields and leftover extras."""
    canonical: dict[str, Any] = {}
    consumed: set[str] = set()
    for field_name, aliases in FIELD_ALIASES.items():
        for alias in aliases:
            if alias in data and data[alias] is not None:
                canonical[field_name] = data[alias]
                consumed.add(alias)
                break
    extras = {k: v for k, v in data.items() if k not in consumed}
    return canonical, extras


def parse_analysis(raw: str, provider_name: str) -> ParsedAnalysis:
    """
    Normalize a raw provider response.

    Args:
        raw: Provider output text
        provider_name: For error context

    Returns:
        ParsedAnalysis reflecting only what the provider returned

    Raises:
        ParseFailureError: If the response has no recoverable structure
    """
    try:
        data = extract_json_object(raw)
    except ParseFailureError as e:
        e.context.setdefault('provider', provider_name)
        raise

    canonical, extras = _canonicalize(data)
    if not canonical:
        raise ParseFailureError(
            'Provider response has no recognised fields',
            context={'provider': provider_name, 'keys': sorted(data)[:20]},
        )

    identifiers_raw = canonical.get('identifiers')
    identifiers: dict[str, str] = {}
    if isinstance(identifiers_raw, dict):
        for key, value in identifiers_raw.items():
            if isinstance(value, (str, int, float)) and not isinstance(value, bool):
                identifiers[str(key)] = str(value)
            elif value is not None:
                extras.setdefault(f'identifiers.{key}', value)

    flags = canonical.get('flags')
    if flags is not None and not isinstance(flags, list):
        flags = [flags]

    market_assessment = canonical.get('market_assessment')
    if not isinstance(market_assessment, dict):
        market_assessment = None

    try:
        return ParsedAnalysis(
            item_name=str(canonical.get('item_name', '')).strip(),
            estimated_value=parse_price(canonical.get('estimated_value')),
            decision=normalize_decision(canonical.get('decision')),
            confidence=normalize_confidence(canonical.get('confidence')),
            category=_optional_str(canonical.get('category')),
            condition=_optional_str(canonical.get('condition')),
            description=_optional_str(canonical.get('description')),
            identifiers=identifiers,
            valuation_factors=_as_str_list(canonical.get('valuation_factors')),
            summary_reasoning=_optional_str(canonical.get('summary_reasoning')),
            flags=flags or [],
            valid=_as_bool(canonical.get('valid')),
            market_assessment=market_assessment,
            extras=extras,
        )
    except PydanticValidationError as e:
        raise ParseFailureError(
            'Provider response failed validation',
            context={'provider': provider_name, 'errors': e.errors()[:3]},
        ) from e


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def response_confidence(analysis: ParsedAnalysis) -> float:
    """
    Confidence to attach to a response.

    Uses the provider's own figure when it reported one, otherwise scores
    completeness of the core fields (0.4 base, +0.1 per field present).
    """
    if analysis.confidence is not None:
        return analysis.confidence
    present = sum([
        bool(analysis.item_name),
        analysis.estimated_value > 0,
        bool(analysis.valuation_factors),
        bool(analysis.summary_reasoning),
        bool(analysis.category),
    ])
    return round(0.4 + 0.1 * present, 2)
