"""Unit tests for the structured LLM call helper and the LLM decision source."""

import pytest
from pydantic import BaseModel, ValidationError

from agentcity.cognition.llm import LLMDecisionSource
from agentcity.cognition.prompts import PromptLibrary, PromptTemplate
from agentcity.llm_utils import call_structured_llm, combine_prompts, describe_validation_error
from agentcity.schemas import Decision, Observation, SelfView


class DummyModel(BaseModel):
    content: str


def make_observation() -> Observation:
    return Observation(
        tick=7,
        world_size=50,
        agent=SelfView(id="alice", x=1, y=2, hunger=60.0, energy=70.0, health=90.0, balance=40.0, state="idle"),
        available_actions=["move", "sleep"],
    )


def install_fake_llm(monkeypatch, respond):
    """Route ``llm.call`` to ``respond(prompt)`` and record every call."""
    calls = []

    def fake_decorator(*, provider, model, response_model):
        def wrapper(fn):
            async def inner(prompt: str):
                calls.append({"provider": provider, "model": model, "response_model": response_model, "prompt": prompt})
                return respond(prompt)

            return inner

        return wrapper

    monkeypatch.setattr("agentcity.llm_utils.llm.call", fake_decorator)
    return calls


@pytest.mark.asyncio
async def test_call_structured_llm_success(monkeypatch):
    calls = install_fake_llm(monkeypatch, lambda prompt: DummyModel(content="ok"))

    result = await call_structured_llm(
        system_prompt="System context",
        user_prompt="What now?",
        llm_provider="openai",
        llm_model="gpt-5-nano",
        response_model=DummyModel,
    )

    assert result.content == "ok"
    assert len(calls) == 1
    assert calls[0]["prompt"] == "System context\n\nWhat now?"
    assert calls[0]["response_model"] is DummyModel


@pytest.mark.asyncio
async def test_call_structured_llm_does_not_retry(monkeypatch):
    try:
        DummyModel.model_validate({})
    except ValidationError as exc:
        validation_error = exc

    def respond(prompt):
        raise validation_error

    calls = install_fake_llm(monkeypatch, respond)

    with pytest.raises(ValidationError):
        await call_structured_llm(
            system_prompt="System",
            user_prompt="User",
            llm_provider="openai",
            llm_model="gpt-5-nano",
            response_model=DummyModel,
        )
    assert len(calls) == 1


def test_describe_validation_error_lists_each_issue():
    try:
        Decision.model_validate({"params": ["not", "a", "dict"]})
    except ValidationError as exc:
        issues = describe_validation_error(exc)

    assert any(issue.startswith("action: Field required") for issue in issues)
    params_issue = next(issue for issue in issues if issue.startswith("params:"))
    assert "[type=dict_type]" in params_issue
    assert "received=['not', 'a', 'dict']" in params_issue


def test_combine_prompts_skips_blank_sections():
    assert combine_prompts("  System  ", "User") == "System\n\nUser"
    assert combine_prompts("", "User") == "User"
    assert combine_prompts("System", "   ") == "System"


@pytest.mark.asyncio
async def test_llm_source_renders_the_observation(monkeypatch):
    calls = install_fake_llm(
        monkeypatch, lambda prompt: Decision(action="move", params={"to_x": 2, "to_y": 2}, reasoning="go")
    )
    source = LLMDecisionSource(provider="openai", model="gpt-5-nano", agent_names={"alice": "Alice Liddell"})

    decision = await source.decide(make_observation())

    assert decision.action == "move"
    prompt = calls[0]["prompt"]
    assert calls[0]["response_model"] is Decision
    assert "You are Alice Liddell" in prompt
    assert "50x50 grid" in prompt
    assert "Tick 7." in prompt
    assert "move, sleep" in prompt
    assert "{{" not in prompt


@pytest.mark.asyncio
async def test_llm_source_uses_custom_templates(monkeypatch):
    calls = install_fake_llm(monkeypatch, lambda prompt: Decision(action="sleep", params={"duration": 1}))
    library = PromptLibrary()
    library.register(PromptTemplate(name="terse", system="Agent {{agent_name}}", user="Options: {{action_catalog}}"))
    source = LLMDecisionSource(provider="openai", model="gpt-5-nano", template_name="terse", prompt_library=library)

    await source.decide(make_observation())
    assert calls[0]["prompt"] == "Agent alice\n\nOptions: move, sleep"


@pytest.mark.asyncio
async def test_llm_source_without_configuration(monkeypatch):
    monkeypatch.setattr("agentcity.cognition.llm.Config.LLM_PROVIDER", None)
    monkeypatch.setattr("agentcity.cognition.llm.Config.LLM_MODEL", None)
    source = LLMDecisionSource()

    assert not source.is_available()
    with pytest.raises(ValueError, match="requires LLM configuration"):
        await source.decide(make_observation())
