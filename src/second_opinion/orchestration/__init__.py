"""
Request coordination.

RequestCoordinator resolves which agents to ask, fans the question out
through the ConnectionManager, and hands the answers to the ConsensusEngine.
"""
from .coordinator import CoordinatorResult, RequestCoordinator, SecondOpinionRequest, render_decision
