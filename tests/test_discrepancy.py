"""
Tests for discrepancy detection.
"""

from price_consensus.models.consensus import ConsensusResult, DiscrepancyType
from price_consensus.models.vote import Decision, ModelVote
from price_consensus.pipeline.discrepancy import CLEAN_EVENT, INTERESTING_EVENT, detect_discrepancies


def _vote(name, value, decision=Decision.BUY) -> ModelVote:
    return ModelVote(
        provider_name=name,
        decision=decision,
        estimated_value=value,
        confidence=0.8,
        weight=0.8,
        success=True,
    )


def _consensus(value, confidence=80) -> ConsensusResult:
    return ConsensusResult(item_name='Pyrex bowl', estimated_value=value, confidence=confidence)


def _types(report) -> set[DiscrepancyType]:
    return {d.type for d in report.discrepancies}


class TestDetectDiscrepancies:
    """Test the four discrepancy checks."""

    def test_spread_and_outlier(self):
        votes = [_vote('groq', 10.0), _vote('openai', 12.0), _vote('anthropic', 40.0)]

        report = detect_discrepancies(_consensus(20.67), votes)

        assert report.is_interesting is True
        assert report.suggested_event_type == INTERESTING_EVENT
        spread = next(d for d in report.discrepancies if d.type is DiscrepancyType.PRICE_SPREAD)
        assert spread.severity == 'high'
        assert spread.details['providers'] == ['groq', 'anthropic']
        outliers = [d for d in report.discrepancies if d.type is DiscrepancyType.OUTLIER_VOTE]
        assert 'anthropic' in {d.details['provider'] for d in outliers}
        assert report.narrator_context['outlier_provider'] == 'anthropic'
        assert report.narrator_context['outlier_value'] == 40.0
        assert report.narrator_context['high_provider'] == 'anthropic'
        assert report.narrator_context['low_value'] == 10.0
        assert 'Price spread of 300%' in report.narrator_prompt_hint

    def test_clean_run(self):
        votes = [_vote('groq', 20.0), _vote('openai', 22.0), _vote('anthropic', 21.0)]

        report = detect_discrepancies(_consensus(21.0), votes)

        assert report.is_interesting is False
        assert report.suggested_event_type == CLEAN_EVENT
        assert report.discrepancies == []
        assert report.narrator_prompt_hint == ''

    def test_needs_two_active_votes(self):
        votes = [_vote('groq', 20.0), ModelVote.failed('openai', 'timeout'), _vote('xai', 0.0)]

        report = detect_discrepancies(_consensus(20.0, confidence=10), votes)

        assert report.is_interesting is False
        assert report.narrator_context == {}

    def test_low_confidence(self):
        votes = [_vote('groq', 20.0), _vote('openai', 21.0)]

        report = detect_discrepancies(_consensus(20.5, confidence=25), votes)

        low = next(d for d in report.discrepancies if d.type is DiscrepancyType.LOW_CONFIDENCE)
        assert low.severity == 'high'

    def test_confidence_at_threshold_not_flagged(self):
        votes = [_vote('groq', 20.0), _vote('openai', 21.0)]

        report = detect_discrepancies(_consensus(20.5, confidence=50), votes)

        assert DiscrepancyType.LOW_CONFIDENCE not in _types(report)

    def test_two_of_five_split_not_flagged(self):
        # 3 of 5 agree: exactly 60%
        votes = [
            _vote('a', 20.0, Decision.BUY),
            _vote('b', 20.0, Decision.BUY),
            _vote('c', 20.0, Decision.SELL),
            _vote('d', 20.0, Decision.SELL),
            _vote('e', 20.0, Decision.SELL),
        ]

        report = detect_discrepancies(_consensus(20.0), votes)

        assert DiscrepancyType.DECISION_SPLIT not in _types(report)
        assert report.narrator_context['decision_agreement'] == 0.6

    def test_two_of_six_split_not_flagged(self):
        votes = [_vote(f'b{i}', 20.0, Decision.BUY) for i in range(2)]
        votes += [_vote(f's{i}', 20.0, Decision.SELL) for i in range(4)]

        report = detect_discrepancies(_consensus(20.0), votes)

        assert DiscrepancyType.DECISION_SPLIT not in _types(report)

    def test_even_split_flagged(self):
        votes = [_vote('a', 20.0, Decision.BUY), _vote('b', 20.0, Decision.SELL)]

        report = detect_discrepancies(_consensus(20.0), votes)

        split = next(d for d in report.discrepancies if d.type is DiscrepancyType.DECISION_SPLIT)
        assert split.description == 'Decision split: 1 say BUY, 1 say SELL'

    def test_votes_not_mutated(self):
        votes = [_vote('groq', 10.0), _vote('openai', 12.0), _vote('anthropic', 40.0)]
        before = [v.model_dump() for v in votes]

        detect_discrepancies(_consensus(20.67), votes)

        assert [v.model_dump() for v in votes] == before
