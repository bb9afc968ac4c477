"""LLM-backed drafting of follow-up emails and social media posts."""

from __future__ import annotations

import logging

from langchain_core.messages import HumanMessage, SystemMessage

from recapbot.content.prompts import (
    FOLLOW_UP_EMAIL_SYSTEM_PROMPT,
    FOLLOW_UP_EMAIL_USER_PROMPT,
    SOCIAL_POST_USER_PROMPT,
    default_prompt_for_platform,
)
from recapbot.llm.utils import extract_json_from_llm_output, get_default_llm
from recapbot.models.schemas import MeetingStatus, SocialPostDraft
from recapbot.retry import retry_on_llm_error
from recapbot.storage.postgres_store import Meeting

logger = logging.getLogger(__name__)

EMAIL_TRANSCRIPT_LIMIT = 8000
SOCIAL_TRANSCRIPT_LIMIT = 6000
DEFAULT_IMAGE_PROMPT = "professional business meeting"
EMPTY_POST_PLACEHOLDER = "Unable to generate social media post"


class ContentGenerationError(Exception):
    """Content could not be generated (no transcript, or the LLM call failed)."""


def _require_transcript(meeting: Meeting) -> str:
    if meeting.status != MeetingStatus.COMPLETED.value or not meeting.transcript:
        raise ContentGenerationError(f"No transcript available for meeting {meeting.id}")
    return meeting.transcript


def _content_text(content) -> str:
    # Anthropic models may return a list of content blocks
    if isinstance(content, list):
        return "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return str(content or "")


def parse_social_post(raw: str) -> SocialPostDraft:
    """Turn a model reply into a draft; non-JSON replies become the post text."""
    data = extract_json_from_llm_output(raw)
    if data is None:
        content, image_prompt = raw.strip(), ""
    else:
        content = data.get("content") if isinstance(data.get("content"), str) else ""
        image_prompt = data.get("imagePrompt") or data.get("image_prompt") or ""
        if not isinstance(image_prompt, str):
            image_prompt = ""
    return SocialPostDraft(
        content=content.strip() or EMPTY_POST_PLACEHOLDER,
        image_prompt=image_prompt.strip() or DEFAULT_IMAGE_PROMPT,
    )


class ContentGenerator:
    """Drafts meeting follow-ups with the configured chat model."""

    def __init__(self, llm=None, max_attempts: int = 3) -> None:
        self._llm = llm
        self._max_attempts = max_attempts

    @property
    def llm(self):
        if self._llm is None:
            self._llm = get_default_llm()
        return self._llm

    async def _chat(self, system_prompt: str, user_prompt: str) -> str:
        messages = [
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ]
        invoke = retry_on_llm_error(self._max_attempts)(self.llm.ainvoke)
        try:
            response = await invoke(messages)
        except Exception as e:
            logger.error("LLM generation failed: %s", e)
            raise ContentGenerationError(f"LLM generation failed: {e}") from e
        text = _content_text(response.content)
        logger.info("LLM response: %d chars", len(text))
        return text

    async def generate_follow_up_email(self, meeting: Meeting) -> str:
        """Draft a follow-up email summarizing the meeting.

        Raises:
            ContentGenerationError: no transcript, or the model call failed.
        """
        transcript = _require_transcript(meeting)
        user_prompt = FOLLOW_UP_EMAIL_USER_PROMPT.format(
            title=meeting.title, transcript=transcript[:EMAIL_TRANSCRIPT_LIMIT]
        )
        email = await self._chat(FOLLOW_UP_EMAIL_SYSTEM_PROMPT, user_prompt)
        if not email.strip():
            raise ContentGenerationError("LLM returned an empty email")
        return email.strip()

    async def generate_social_post(
        self, meeting: Meeting, platform: str, prompt: str | None = None
    ) -> SocialPostDraft:
        """Draft a social media post for ``platform``.

        ``prompt`` (typically an automation's prompt) replaces the platform
        default system prompt.
        """
        transcript = _require_transcript(meeting)
        system_prompt = prompt or default_prompt_for_platform(platform)
        user_prompt = SOCIAL_POST_USER_PROMPT.format(
            title=meeting.title, transcript=transcript[:SOCIAL_TRANSCRIPT_LIMIT]
        )
        raw = await self._chat(system_prompt, user_prompt)
        return parse_social_post(raw)
