"""
LLM completion client.

A single request/response text completion over Anthropic or any
OpenAI-compatible endpoint. Consumers parse the text themselves with
parse_json_lenient and treat unparseable output as "no results".
"""
import json
import logging
import re
from typing import Any, Optional

from anthropic import AsyncAnthropic
from json_repair import repair_json
from openai import AsyncOpenAI

from prospector.core.config import settings
from prospector.core.cost_tracker import cost_tracker

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a precise B2B research analyst. Respond ONLY in valid JSON."


class LLMClient:
    """Thin wrapper that hides which provider is configured."""

    def __init__(
        self,
        anthropic_client: Optional[AsyncAnthropic] = None,
        openai_client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
    ):
        if not anthropic_client and not openai_client:
            raise ValueError("LLMClient needs an Anthropic or OpenAI-compatible client")
        self.anthropic_client = anthropic_client
        self.openai_client = openai_client
        if model:
            self.model = model
        else:
            self.model = settings.anthropic_model if anthropic_client else settings.llm_model

    async def complete(
        self,
        prompt: str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.2,
        max_tokens: int = 2000,
        purpose: str = "completion",
    ) -> str:
        """Return the raw completion text. Provider errors propagate."""
        if self.anthropic_client:
            response = await self.anthropic_client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}],
            )
            content = "".join(
                block.text for block in response.content if getattr(block, "type", "text") == "text"
            )
            if response.usage:
                cost_tracker.log_usage(
                    model=self.model,
                    input_tokens=response.usage.input_tokens,
                    output_tokens=response.usage.output_tokens,
                    purpose=purpose,
                )
            return content

        response = await self.openai_client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        content = response.choices[0].message.content or ""
        if response.usage:
            cost_tracker.log_usage(
                model=self.model,
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
                purpose=purpose,
            )
        return content


def build_llm_client() -> Optional[LLMClient]:
    """
    Build the LLM client from settings.
    Priority: anthropic > OpenAI-compatible. Returns None when nothing is configured.
    """
    if settings.anthropic_api_key:
        return LLMClient(
            anthropic_client=AsyncAnthropic(
                api_key=settings.anthropic_api_key,
                timeout=settings.llm_request_timeout,
            )
        )
    if settings.openai_api_key or settings.openai_api_base:
        return LLMClient(
            openai_client=AsyncOpenAI(
                api_key=settings.openai_api_key or "local",
                base_url=settings.openai_api_base,
                timeout=settings.llm_request_timeout,
            )
        )
    logger.warning("No LLM key configured. LLM signals and fallback suggestions are disabled.")
    return None


_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


def strip_code_fences(raw: str) -> str:
    s = (raw or "").strip()
    match = re.search(r"```(?:json)?\s*(.*?)```", s, flags=re.DOTALL)
    if match:
        return match.group(1).strip()
    return _FENCE_RE.sub("", s).strip()


def parse_json_lenient(raw: Optional[str]) -> Optional[Any]:
    """
    Parse JSON with tolerance for common LLM output errors:
    markdown fences, trailing commas, prose around the payload.
    Returns None when nothing usable can be recovered.
    """
    if not raw or not raw.strip():
        return None

    text = strip_code_fences(raw)

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Prose before/after the payload: take the outermost array or object
    for opener, closer in (("[", "]"), ("{", "}")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue

    if not any(ch in text for ch in "[{"):
        return None

    try:
        repaired = repair_json(text, return_objects=True)
    except Exception as e:
        logger.debug(f"json_repair failed: {e}")
        return None
    # repair_json returns "" for hopeless input
    if repaired in ("", None):
        return None
    return repaired
