"""
Provider benchmarking: score every vote against market ground truth and
hand the records to a sink.
"""

from .scorer import (
    BenchmarkContext,
    BenchmarkRecord,
    accuracy_summary,
    score_vote,
    score_votes,
)
from .recorder import BenchmarkRecorder, BenchmarkSink, LoggingBenchmarkSink
from .postgres_sink import PostgresBenchmarkSink

__all__ = [
    'BenchmarkContext',
    'BenchmarkRecord',
    'accuracy_summary',
    'score_vote',
    'score_votes',
    'BenchmarkRecorder',
    'BenchmarkSink',
    'LoggingBenchmarkSink',
    'PostgresBenchmarkSink',
]
