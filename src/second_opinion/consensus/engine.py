"""
ConsensusEngine -- turn per-agent free-text opinions into one Decision.

Decision procedure:
  0 successful responses  -> needs_input (instructive message, no options)
  1 successful response   -> consensus, weak, that response's action
  2+ successful responses -> analyze:
      similarity > 0.8          -> strong consensus, shortest solid action
      0.5 < similarity <= 0.8   -> weak consensus, decided on the best action
      similarity <= 0.5:
          no critical keywords  -> decided on the best action
          critical keywords     -> needs_input with up to 3 options

Everything here is deterministic: the same responses always produce the
same Decision, regardless of the order agents finished in.
"""

import logging

from ..models import (
    AgentResponse,
    AnalysisResult,
    ConsensusStrength,
    Decision,
    DecisionMeta,
    DecisionOption,
    Outcome,
)
from .matching import (
    DEFAULT_ACTION_MATCHER,
    DEFAULT_TRADEOFF_MATCHER,
    PatternMatcher,
    extract_action,
    extract_tradeoff,
)
from .similarity import is_critical, mean_similarity

logger = logging.getLogger(__name__)

STRONG_THRESHOLD = 0.8
WEAK_THRESHOLD = 0.5
MAX_OPTIONS = 3
MAX_OPTION_LENGTH = 80
MIN_CONSENSUS_ACTION_LENGTH = 20
MIN_CANDIDATE_LENGTH = 50
LENGTH_WEIGHT = 0.3

NO_RESPONSES_ACTION = "All agents failed to respond. Check API keys or retry."
CONFLICT_ACTION = "Conflicting approaches on a critical decision."
WEAK_RATIONALE = "Approaches are similar. Going with the most direct solution."
NON_CRITICAL_RATIONALE = "Opinions differ but none involve critical/irreversible changes."


class ConsensusEngine:
    """
    Classify a set of agent responses into consensus / decided / needs_input.

    Usage:
        engine = ConsensusEngine()
        decision = engine.aggregate(responses)
        if decision.outcome is Outcome.NEEDS_INPUT:
            ask_human(decision.options)
    """

    def __init__(
        self,
        action_matcher: PatternMatcher = DEFAULT_ACTION_MATCHER,
        tradeoff_matcher: PatternMatcher = DEFAULT_TRADEOFF_MATCHER,
        strong_threshold: float = STRONG_THRESHOLD,
        weak_threshold: float = WEAK_THRESHOLD,
    ):
        self._action_matcher = action_matcher
        self._tradeoff_matcher = tradeoff_matcher
        self._strong_threshold = strong_threshold
        self._weak_threshold = weak_threshold

    def extract_action(self, text: str) -> str:
        return extract_action(text, self._action_matcher)

    def aggregate(self, responses: list[AgentResponse]) -> Decision:
        # Sorting by agent id makes the result independent of arrival order.
        successful = sorted(
            (r for r in responses if r.succeeded), key=lambda r: r.agent
        )
        failed = len(responses) - len(successful)
        if failed:
            logger.info(f"[ConsensusEngine] Ignoring {failed} failed response(s)")

        if not successful:
            return Decision(
                outcome=Outcome.NEEDS_INPUT,
                action=NO_RESPONSES_ACTION,
                meta=DecisionMeta(0, ConsensusStrength.NONE, 0.0),
            )

        if len(successful) == 1:
            only = successful[0]
            return Decision(
                outcome=Outcome.CONSENSUS,
                action=self.extract_action(only.response),
                meta=DecisionMeta(
                    agents_count=1,
                    consensus_strength=ConsensusStrength.WEAK,
                    time_ms=only.latency_ms,
                ),
            )

        analysis = self.analyze(successful)
        max_latency = max(r.latency_ms for r in successful)
        logger.info(
            f"[ConsensusEngine] {len(successful)} responses: "
            f"strength={analysis.consensus_strength.value}, can_decide={analysis.can_decide}"
        )

        if analysis.consensus_strength is ConsensusStrength.STRONG:
            return Decision(
                outcome=Outcome.CONSENSUS,
                action=analysis.consensus_action,
                meta=DecisionMeta(len(successful), ConsensusStrength.STRONG, max_latency),
            )

        if analysis.can_decide:
            return Decision(
                outcome=Outcome.DECIDED,
                action=analysis.best_action,
                rationale=analysis.rationale,
                meta=DecisionMeta(len(successful), analysis.consensus_strength, max_latency),
            )

        return Decision(
            outcome=Outcome.NEEDS_INPUT,
            action=CONFLICT_ACTION,
            options=analysis.options[:MAX_OPTIONS],
            meta=DecisionMeta(len(successful), ConsensusStrength.NONE, max_latency),
        )

    def analyze(self, responses: list[AgentResponse]) -> AnalysisResult:
        """Full analysis of two or more successful responses."""
        texts = [r.response for r in responses]
        similarity = mean_similarity(texts)
        logger.debug(f"[ConsensusEngine] Mean pairwise similarity: {similarity:.3f}")

        if similarity > self._strong_threshold:
            actions = [self.extract_action(t) for t in texts]
            return AnalysisResult(
                consensus_strength=ConsensusStrength.STRONG,
                consensus_action=self.merge_actions(actions, texts),
                can_decide=True,
            )

        if similarity > self._weak_threshold:
            return AnalysisResult(
                consensus_strength=ConsensusStrength.WEAK,
                can_decide=True,
                best_action=self.pick_best_action(responses),
                rationale=WEAK_RATIONALE,
            )

        if not is_critical(texts):
            return AnalysisResult(
                consensus_strength=ConsensusStrength.NONE,
                can_decide=True,
                best_action=self.pick_best_action(responses),
                rationale=NON_CRITICAL_RATIONALE,
            )

        return AnalysisResult(
            consensus_strength=ConsensusStrength.NONE,
            can_decide=False,
            options=self.extract_options(responses),
        )

    def merge_actions(self, actions: list[str], texts: list[str]) -> str:
        """Shortest action over 20 chars (first seen wins ties), else the longest answer's action."""
        qualifying = [a for a in actions if len(a) > MIN_CONSENSUS_ACTION_LENGTH]
        if qualifying:
            return min(qualifying, key=len)
        return self.extract_action(max(texts, key=len))

    def pick_best_action(self, responses: list[AgentResponse]) -> str:
        """
        Action of the best-ranked substantive response.

        Rank is `latency_ms + 0.3 * len(response)`, lower is better; a stable
        sort keeps input order on ties. Responses of 50 chars or fewer are
        not candidates; with no candidates the first response is used.
        """
        candidates = [r for r in responses if len(r.response) > MIN_CANDIDATE_LENGTH]
        if not candidates:
            return self.extract_action(responses[0].response)

        best = min(candidates, key=lambda r: r.latency_ms + LENGTH_WEIGHT * len(r.response))
        return self.extract_action(best.response)

    def extract_options(self, responses: list[AgentResponse]) -> list[DecisionOption]:
        return [
            DecisionOption(
                option=self.extract_action(r.response)[:MAX_OPTION_LENGTH],
                tradeoff=extract_tradeoff(r.response, self._tradeoff_matcher),
            )
            for r in responses
        ]
