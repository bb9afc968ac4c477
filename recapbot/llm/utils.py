"""Shared LLM utilities.

Provides:
- get_default_llm(): LLM cascade (Claude > OpenAI > Azure OpenAI)
- extract_json_from_llm_output(): Parse JSON from LLM responses
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from langchain_anthropic import ChatAnthropic
from langchain_openai import AzureChatOpenAI, ChatOpenAI

from recapbot.config import settings

logger = logging.getLogger(__name__)


def get_default_llm(temperature: float = 0.7, max_tokens: int = 1000):
    """Get default LLM following the cascade: Claude > OpenAI > Azure OpenAI.

    Args:
        temperature: Sampling temperature for generation
        max_tokens: Upper bound on the completion length

    Returns:
        LangChain chat model instance
    """
    if settings.has_anthropic:
        return ChatAnthropic(
            model=settings.anthropic_model,
            api_key=settings.anthropic_api_key,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    elif settings.has_openai:
        return ChatOpenAI(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    elif settings.has_azure_openai:
        return AzureChatOpenAI(
            azure_deployment=settings.azure_openai_deployment,
            azure_endpoint=settings.azure_openai_endpoint,
            api_key=settings.azure_openai_api_key,
            api_version=settings.azure_openai_api_version,
            temperature=temperature,
            max_tokens=max_tokens,
        )

    else:
        raise ValueError(
            "No LLM configured. Set ANTHROPIC_API_KEY, OPENAI_API_KEY, or AZURE_OPENAI_API_KEY + AZURE_OPENAI_ENDPOINT"
        )


def extract_json_from_llm_output(text: str) -> dict[str, Any] | None:
    """Extract a JSON object from LLM output, handling markdown code blocks.

    Args:
        text: Raw LLM response text

    Returns:
        Parsed JSON dict, or None if no object could be parsed
    """
    if not text:
        return None

    text = text.strip()

    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    # ```json ... ``` or bare ``` ... ```
    for pattern in (r"```json\s*(.*?)\s*```", r"```\s*(.*?)\s*```"):
        matches = re.findall(pattern, text, re.DOTALL)
        if matches:
            try:
                parsed = json.loads(matches[0].strip())
                if isinstance(parsed, dict):
                    return parsed
            except json.JSONDecodeError:
                pass

    # First balanced { ... }
    start = text.find("{")
    if start != -1:
        depth = 0
        in_string = False
        escape = False
        for i in range(start, len(text)):
            char = text[i]
            if escape:
                escape = False
                continue
            if char == "\\":
                escape = True
                continue
            if char == '"':
                in_string = not in_string
                continue
            if in_string:
                continue
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    try:
                        parsed = json.loads(text[start:i + 1])
                        return parsed if isinstance(parsed, dict) else None
                    except json.JSONDecodeError:
                        break

    logger.debug("No JSON object in LLM output (first 200 chars): %s", text[:200])
    return None
