"""
Evidence-grounded valuation and validation prompts.
"""

from ..models.consensus import ConsensusResult
from ..models.evidence import EvidenceSummary

# =============================================================================
# Reason Stage
# =============================================================================

VALUATION_RESPONSE_SCHEMA = """{
  "itemName": "...",
  "estimatedValue": 0.00,
  "decision": "BUY | SELL",
  "confidence": 0.0,
  "valuation_factors": ["factor 1", "factor 2"],
  "summary_reasoning": "two or three sentences",
  "marketAssessment": {"trend": "rising | stable | falling", "demandLevel": "high | medium | low"}
}"""


def build_valuation_prompt(
    item_name: str,
    category: str,
    condition: str,
    evidence: EvidenceSummary,
    buy_threshold: float,
    additional_context: str | None = None,
) -> str:
    """
    Build the Reason stage prompt.

    The evidence block is the same for every reasoning provider so their
    votes are comparable.
    """
    lines = [
        'You are valuing a physical item for resale.',
        '',
        f'ITEM: {item_name}',
        f'CATEGORY: {category}',
        f'CONDITION: {condition}',
    ]
    if additional_context:
        lines.append(f'CONTEXT: {additional_context}')
    lines += [
        '',
        evidence.formatted_evidence,
        '',
        'Instructions:',
        '- Ground your estimate in the market evidence above when it exists.',
        '  If it is missing, say so in valuation_factors and lower your confidence.',
        '- estimatedValue is the realistic resale price in USD for this condition.',
        f'- decision is BUY when the item is worth acquiring for resale '
        f'(realistic resale value of at least ${buy_threshold:.2f}), otherwise SELL.',
        '- confidence is 0.0 to 1.0.',
        '',
        'Respond with JSON only, in this shape:',
        VALUATION_RESPONSE_SCHEMA,
    ]
    return '\n'.join(lines)


# =============================================================================
# Validate Stage
# =============================================================================

VALIDATION_RESPONSE_SCHEMA = """{
  "valid": true,
  "flags": [
    {"type": "price_mismatch | category_mismatch | authority_conflict | condition_gap | data_insufficient | decision_inconsistent",
     "severity": "info | warning | error",
     "message": "what looks wrong",
     "suggestedAdjustment": 0.00}
  ]
}"""


def build_validation_prompt(
    consensus: ConsensusResult,
    category: str,
    evidence: EvidenceSummary,
) -> str:
    """Build the sanity-check prompt. The validator flags; it does not price."""
    lines = [
        'Sanity-check this valuation. Do NOT produce your own price.',
        '',
        f'ITEM: {consensus.item_name}',
        f'CATEGORY: {category}',
        f'CONSENSUS VALUE: ${consensus.estimated_value:.2f}',
        f'CONSENSUS DECISION: {consensus.decision.value}',
        f'CONSENSUS CONFIDENCE: {consensus.confidence}/100',
        '',
        evidence.formatted_evidence,
        '',
        'Flag anything anomalous, for example:',
        '- the value is far from the market median',
        '- the decision is inconsistent with the value',
        '- the value is implausible for the category',
        'Use severity "error" only for problems that make the value untrustworthy.',
        'Return an empty flags list when everything is consistent.',
        '',
        'Respond with JSON only, in this shape:',
        VALIDATION_RESPONSE_SCHEMA,
    ]
    return '\n'.join(lines)
