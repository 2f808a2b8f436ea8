"""LLM-backed decision source."""

from __future__ import annotations

import os
from typing import Optional

from ..config import Config
from ..llm_utils import call_structured_llm
from ..logging_utils import Color, colored
from ..schemas import Decision, Observation
from .prompts import DEFAULT_PROMPTS, PromptLibrary, render_prompt


class LLMDecisionSource:
    """Decision source that asks an LLM for the next action.

    Renders the observation into the ``decide`` prompt and makes one structured
    call validated into ``Decision``. There are no retries: a timeout, provider
    error or malformed response is the dispatcher's cue to fall back.

    Args:
        provider: Mirascope provider name (defaults to ``LLM_PROVIDER``)
        model: Model name (defaults to ``LLM_MODEL``)
        template_name: Template to render from ``prompt_library``
        prompt_library: Custom prompts (defaults to ``DEFAULT_PROMPTS``)
        agent_names: Optional agent id -> display name map used in prompts
    """

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        template_name: str = "decide",
        prompt_library: Optional[PromptLibrary] = None,
        agent_names: Optional[dict[str, str]] = None,
        name: str = "llm",
    ) -> None:
        self.provider = provider or Config.LLM_PROVIDER
        self.model = model or Config.LLM_MODEL
        self.template_name = template_name
        self.prompt_library = prompt_library or DEFAULT_PROMPTS
        self.agent_names = dict(agent_names or {})
        self.name = name

    def is_available(self) -> bool:
        return bool(self.provider and self.model)

    async def decide(self, observation: Observation) -> Decision:
        if not self.is_available():
            raise ValueError(
                f"LLMDecisionSource requires LLM configuration (agent: {observation.agent.id}). "
                "Set LLM_PROVIDER and LLM_MODEL environment variables, or assign the agent a baseline."
            )

        try:
            template = self.prompt_library.get(self.template_name)
        except KeyError:
            template = DEFAULT_PROMPTS.get("decide")
        rendered = render_prompt(
            observation, template, agent_name=self.agent_names.get(observation.agent.id, "")
        )

        debug_llm = os.getenv("DEBUG_LLM", "").lower() in ("1", "true", "yes")
        if debug_llm:
            print(colored(f"\n[LLM DECIDE] Agent: {observation.agent.id} tick {observation.tick}", Color.YELLOW))
            print(rendered.system)
            print("-" * 80)
            print(rendered.user)

        decision = await call_structured_llm(
            system_prompt=rendered.system,
            user_prompt=rendered.user,
            llm_provider=self.provider,
            llm_model=self.model,
            response_model=Decision,
        )

        if debug_llm:
            print(colored(f"[LLM RESPONSE] {decision.action} {decision.params} - {decision.reasoning}", Color.YELLOW))
        return decision
