"""Helper utilities for structured LLM calls and their validation errors."""

from __future__ import annotations

from typing import Any, TypeVar

from mirascope import llm
from pydantic import BaseModel, ValidationError


ModelT = TypeVar("ModelT", bound=BaseModel)


def _truncate_preview(value: Any, *, limit: int = 80) -> str:
    """Return a compact preview of the offending input value."""

    if value is None:
        return "null"
    text = repr(value)
    if len(text) > limit:
        return text[: limit - 3] + "..."
    return text


def describe_validation_error(error: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into one readable line per issue.

    Each line carries the dotted field path, the message, the error type and a
    short preview of the value that was received.
    """

    issues: list[str] = []
    for err in error.errors(include_url=False):  # pragma: no branch - typically small
        loc = ".".join(str(part) for part in err.get("loc", [])) or "root"
        details = f"{loc}: {err.get('msg', 'validation error')}"
        err_type = err.get("type")
        if err_type:
            details += f" [type={err_type}]"
        if "input" in err:
            details += f" | received={_truncate_preview(err.get('input'))}"
        issues.append(details)

    if not issues:
        issues.append("root: response did not match the expected schema")
    return issues


def combine_prompts(system_prompt: str, user_prompt: str) -> str:
    sections = [section.strip() for section in (system_prompt, user_prompt) if section and section.strip()]
    return "\n\n".join(sections)


async def call_structured_llm(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_provider: str,
    llm_model: str,
    response_model: type[ModelT],
) -> ModelT:
    """Make exactly one structured LLM call and return the validated model.

    Nothing is retried here: a ``ValidationError`` (unparseable output) or any
    provider error propagates to the caller, which owns the deadline and the
    fallback policy.
    """

    @llm.call(provider=llm_provider, model=llm_model, response_model=response_model)
    async def _invoke(prompt: str) -> str:
        return prompt

    return await _invoke(combine_prompts(system_prompt, user_prompt))
