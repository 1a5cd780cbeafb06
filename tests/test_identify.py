"""
Tests for the Identify stage and its vote collector.
"""

import asyncio
import time

import pytest

from conftest import FakeProvider, analysis

from price_consensus.errors import MissingCredentialError, ProviderError
from price_consensus.models.vote import ModelVote
from price_consensus.pipeline.identify import (
    UNIDENTIFIED_ITEM,
    IdentifyStage,
    is_garbage_name,
    normalize_condition,
)
from price_consensus.pipeline.votes import VoteCollector


class TestGarbageNames:
    """Test rejection of non-identifications."""

    @pytest.mark.parametrize('name', [
        None,
        '',
        'ab',
        'Unknown',
        'Unidentified Item',
        'Claude Analysis',
        'Google Gemini result',
        'The analysis of this photo',
        'Gemini vision output',
    ])
    def test_garbage(self, name):
        assert is_garbage_name(name) is True

    @pytest.mark.parametrize('name', [
        'Pyrex Butterprint Mixing Bowl',
        'Grok trading card holo',
        'Nintendo Game Boy Color',
    ])
    def test_real_names(self, name):
        assert is_garbage_name(name) is False

    def test_normalize_condition(self):
        assert normalize_condition(None, 'Excellent shape') == 'excellent'
        assert normalize_condition('brand new in box') == 'mint'
        assert normalize_condition(None, None) == 'good'


class TestIdentifyStage:
    """Test the first-responder race."""

    @pytest.mark.asyncio
    async def test_first_valid_response_wins_without_waiting(self, sample_images):
        fast = FakeProvider('groq', analysis=analysis('Le Creuset Dutch Oven', category='kitchen'))
        slow = [FakeProvider(f'slow{i}', hang=True) for i in range(3)]
        stage = IdentifyStage([*slow, fast])

        started = time.perf_counter()
        result = await stage.run(sample_images, timeout=5.0)
        elapsed = time.perf_counter() - started

        assert elapsed < 1.0
        assert result.item_name == 'Le Creuset Dutch Oven'
        assert result.category == 'household'
        assert result.primary_provider == 'groq'
        assert result.degraded is False
        assert result.collector.pending_count == 3

        await result.collector.close(reason='test finished')
        assert all(p.cancelled for p in slow)
        abandoned = [v for v in result.votes if not v.success]
        assert len(abandoned) == 3
        assert all(v.error.startswith('abandoned') for v in abandoned)

    @pytest.mark.asyncio
    async def test_stragglers_abandoned_at_stage_deadline(self, sample_images):
        fast = FakeProvider('groq', analysis=analysis())
        slow = FakeProvider('anthropic', hang=True)
        stage = IdentifyStage([fast, slow])

        result = await stage.run(sample_images, timeout=0.1)
        await asyncio.sleep(0.2)

        assert result.collector.closed is True
        assert slow.cancelled is True
        assert [v.provider_name for v in result.votes] == ['groq', 'anthropic']

    @pytest.mark.asyncio
    async def test_late_votes_still_collected_before_deadline(self, sample_images):
        fast = FakeProvider('groq', analysis=analysis(confidence=0.9))
        late = FakeProvider('openai', analysis=analysis(confidence=0.7), delay=0.05)
        stage = IdentifyStage([fast, late])

        result = await stage.run(sample_images, timeout=2.0)
        await asyncio.sleep(0.1)

        successes = [v for v in result.votes if v.success]
        assert {v.provider_name for v in successes} == {'groq', 'openai'}
        await result.collector.close()

    @pytest.mark.asyncio
    async def test_garbage_name_is_failed_vote(self, sample_images):
        junk = FakeProvider('mistral', analysis=analysis('Mistral Analysis'))
        good = FakeProvider('xai', analysis=analysis('Vintage Seiko Watch'), delay=0.02)
        stage = IdentifyStage([junk, good])

        result = await stage.run(sample_images, timeout=2.0)

        assert result.item_name == 'Vintage Seiko Watch'
        assert result.category == 'watches'
        mistral_vote = next(v for v in result.votes if v.provider_name == 'mistral')
        assert mistral_vote.success is False
        assert 'unusable identification' in mistral_vote.error

    @pytest.mark.asyncio
    async def test_all_fail_degrades_to_hint(self, sample_images):
        stage = IdentifyStage([
            FakeProvider('openai', error=ProviderError('HTTP 500')),
            FakeProvider('google', error=RuntimeError('socket closed')),
            FakeProvider('anthropic', error=MissingCredentialError('no key')),
        ])

        result = await stage.run(sample_images, item_name_hint='Pikachu card', timeout=1.0)

        assert result.degraded is True
        assert result.item_name == 'Pikachu card'
        # Missing credentials never produce a vote
        assert sorted(v.provider_name for v in result.votes) == ['google', 'openai']
        assert all(not v.success for v in result.votes)
        assert result.collector.closed is True

    @pytest.mark.asyncio
    async def test_timeout_without_hint(self, sample_images):
        stage = IdentifyStage([FakeProvider('openai', hang=True)])

        result = await stage.run(sample_images, timeout=0.05)

        assert result.degraded is True
        assert result.item_name == UNIDENTIFIED_ITEM
        assert result.category == 'general'
        assert result.votes[0].error.startswith('abandoned')

    @pytest.mark.asyncio
    async def test_no_providers(self, sample_images):
        stage = IdentifyStage([FakeProvider('openai', available=False)])

        result = await stage.run(sample_images, item_name_hint='Lego set 10179')

        assert result.degraded is True
        assert result.category == 'lego'
        assert result.votes == []

    @pytest.mark.asyncio
    async def test_no_images(self):
        provider = FakeProvider('openai', analysis=analysis())
        stage = IdentifyStage([provider])

        result = await stage.run([], item_name_hint='Lamp')

        assert result.degraded is True
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_identifiers_and_vote_weight(self, sample_images):
        provider = FakeProvider(
            'openai',
            analysis=analysis('2003 Honda Accord', identifiers={'vin': '1HGCM82633A004352'}),
            confidence=0.8,
            base_weight=0.5,
        )

        result = await IdentifyStage([provider]).run(sample_images)

        assert result.identifiers['vin'] == '1HGCM82633A004352'
        assert result.category == 'vehicles'
        assert result.votes[0].weight == 0.4


class TestVoteCollector:
    """Test append-only collection and abandonment."""

    @pytest.mark.asyncio
    async def test_add_after_close_discarded(self):
        collector = VoteCollector('reason')
        collector.add(ModelVote.failed('a', 'x'))

        await collector.close()
        accepted = collector.add(ModelVote.failed('b', 'y'))

        assert accepted is False
        assert [v.provider_name for v in collector.votes] == ['a']

    @pytest.mark.asyncio
    async def test_votes_is_a_snapshot(self):
        collector = VoteCollector('identify')
        snapshot = collector.votes

        collector.add(ModelVote.failed('a', 'x'))

        assert snapshot == []

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        collector = VoteCollector('identify')
        task = asyncio.create_task(asyncio.Event().wait())
        collector.track(task, 'slow')

        await collector.close(reason='done')
        await collector.close(reason='again')

        assert task.cancelled()
        assert len(collector.votes) == 1
        assert collector.votes[0].error == 'abandoned: done'
