"""
Consensus Engine -- deterministic aggregation of agent opinions.

Usage:
    from .consensus import ConsensusEngine

    decision = ConsensusEngine().aggregate(responses)
    decision.outcome  # consensus | decided | needs_input
"""

from .engine import ConsensusEngine
from .matching import PatternMatcher, extract_action, extract_tradeoff
from .similarity import is_critical, jaccard, mean_similarity, significant_words
