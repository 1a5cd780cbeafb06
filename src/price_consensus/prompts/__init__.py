"""
Prompt builders for each pipeline stage.
"""

from .identify_item import build_identify_prompt
from .valuation import build_validation_prompt, build_valuation_prompt
from .web_search import build_web_search_prompt

__all__ = [
    'build_identify_prompt',
    'build_validation_prompt',
    'build_valuation_prompt',
    'build_web_search_prompt',
]
