"""Decision making for AgentCity agents.

Baseline strategies are synchronous and deterministic under a fixed seed; the
LLM decision source is asynchronous and may fail, in which case the dispatcher
substitutes the fallback baseline's choice.
"""

from typing import Optional

from ..context import RandomService
from .base import BaselineDecisionSource, BaselineStrategy, DecisionSource
from .llm import LLMDecisionSource
from .prompts import DEFAULT_PROMPTS, PromptLibrary, PromptTemplate, RenderedPrompt, render_prompt
from .qlearning import QLearningParams, QLearningStrategy
from .random_agent import RandomStrategy
from .rule_based import RuleBasedStrategy, RuleThresholds
from .sugarscape import SugarscapeParams, SugarscapeStrategy

BASELINES = {
    "random": RandomStrategy,
    "rule_based": RuleBasedStrategy,
    "sugarscape": SugarscapeStrategy,
    "qlearning": QLearningStrategy,
}


def create_baseline(kind: str, rng: Optional[RandomService] = None, **options) -> BaselineStrategy:
    """Instantiate a baseline strategy by name.

    ``options`` are forwarded to the strategy constructor (e.g. ``thresholds``
    for ``rule_based`` or ``params`` for ``qlearning``).
    """
    try:
        factory = BASELINES[kind]
    except KeyError:
        raise ValueError(
            f"Unknown baseline '{kind}'. Use one of: {', '.join(BASELINES)}."
        ) from None
    return factory(rng, **options)


__all__ = [
    "BASELINES",
    "BaselineDecisionSource",
    "BaselineStrategy",
    "DEFAULT_PROMPTS",
    "DecisionSource",
    "LLMDecisionSource",
    "PromptLibrary",
    "PromptTemplate",
    "QLearningParams",
    "QLearningStrategy",
    "RandomStrategy",
    "RenderedPrompt",
    "RuleBasedStrategy",
    "RuleThresholds",
    "SugarscapeParams",
    "SugarscapeStrategy",
    "create_baseline",
    "render_prompt",
]
