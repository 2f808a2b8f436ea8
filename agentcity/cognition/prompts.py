"""Prompt templates for LLM decision sources, and their rendering."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Dict, Optional

from ..schemas import Observation


@dataclass
class PromptTemplate:
    """Represents a templated prompt with placeholders."""

    name: str
    system: str
    user: str
    description: str = ""


@dataclass
class RenderedPrompt:
    system: str
    user: str


class PromptLibrary:
    """Container for named prompt templates."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]


DEFAULT_PROMPTS = PromptLibrary()

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="decide",
        system=(
            "You are {{agent_name}}, a resident of a simulated city on a {{world_size}}x{{world_size}} grid. "
            "You must keep your hunger, energy and health up, earn CITY currency, and deal with the other "
            "residents however you see fit. Each turn you choose exactly one action from the catalogue.\n"
            "{{personality}}"
        ),
        user=(
            "Tick {{tick}}.\n\n"
            "Your situation:\n{{summary}}\n\n"
            "Full observation JSON:\n{{observation_json}}\n\n"
            "Recent events:\n{{recent_events}}\n\n"
            "Action catalogue (choose one): {{action_catalog}}\n\n"
            "Example output:\n"
            "{\n"
            "  \"action\": \"move\",\n"
            "  \"params\": {\"toX\": 12, \"toY\": 40},\n"
            "  \"reasoning\": \"Heading to the food spawn to the east\"\n"
            "}\n\n"
            "Respond with JSON only."
        ),
        description="Single-step action choice from a full observation.",
    )
)


def observation_summary(observation: Observation) -> str:
    """Short human-readable digest of an observation."""
    me = observation.agent
    lines = [
        f"- Position ({me.x}, {me.y}), state {me.state}",
        f"- Hunger {me.hunger:.0f}/100, energy {me.energy:.0f}/100, health {me.health:.0f}/100",
        f"- Balance {me.balance:g} CITY",
    ]
    if observation.inventory:
        items = ", ".join(f"{i.quantity}x {i.type}" for i in observation.inventory)
        lines.append(f"- Carrying {items}")
    if observation.nearby_agents:
        people = ", ".join(f"{a.name or a.id[:8]} ({a.distance} {a.direction})" for a in observation.nearby_agents)
        lines.append(f"- Nearby: {people}")
    if observation.nearby_resource_spawns:
        spawns = ", ".join(
            f"{s.resource_type} x{s.current_amount} at ({s.x}, {s.y})" for s in observation.nearby_resource_spawns
        )
        lines.append(f"- Resources: {spawns}")
    if observation.active_employments:
        lines.append(f"- Active contracts: {len(observation.active_employments)}")
    return "\n".join(lines)


def render_prompt(
    observation: Observation,
    template: Optional[PromptTemplate] = None,
    *,
    agent_name: str = "",
) -> RenderedPrompt:
    """Render ``template`` (default: ``decide``) for one observation.

    Placeholders use ``{{double_brace}}`` syntax so the JSON examples inside
    templates need no escaping.
    """
    if template is None:
        template = DEFAULT_PROMPTS.get("decide")

    me = observation.agent
    replacements = {
        "{{agent_name}}": agent_name or me.id,
        "{{world_size}}": str(observation.world_size),
        "{{personality}}": f"Your personality: {me.personality}." if me.personality else "",
        "{{tick}}": str(observation.tick),
        "{{summary}}": observation_summary(observation),
        "{{observation_json}}": json.dumps(observation.model_dump(mode="json"), indent=2),
        "{{recent_events}}": "\n".join(f"- {e}" for e in observation.recent_events) or "(none)",
        "{{action_catalog}}": ", ".join(observation.available_actions),
    }

    system, user = template.system, template.user
    for placeholder, value in replacements.items():
        system = system.replace(placeholder, value)
        user = user.replace(placeholder, value)
    return RenderedPrompt(system=system.strip(), user=user.strip())
