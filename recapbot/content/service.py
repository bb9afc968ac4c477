"""Persists generated drafts as meeting content."""

from __future__ import annotations

import logging

from recapbot.content.generator import ContentGenerationError, ContentGenerator
from recapbot.models.schemas import ContentStatus, ContentType
from recapbot.storage.postgres_store import Meeting, MeetingContent, PostgresStore

logger = logging.getLogger(__name__)


class ContentService:
    def __init__(self, store: PostgresStore, generator: ContentGenerator) -> None:
        self.store = store
        self.generator = generator

    async def create_follow_up_email(self, meeting: Meeting) -> MeetingContent:
        email = await self.generator.generate_follow_up_email(meeting)
        content = await self.store.create_meeting_content(
            meeting_id=meeting.id,
            type=ContentType.FOLLOW_UP_EMAIL,
            content=email,
            status=ContentStatus.DRAFT,
        )
        logger.info("Saved follow-up email draft %d for meeting %d", content.id, meeting.id)
        return content

    async def create_social_post(
        self,
        meeting: Meeting,
        platform: str,
        prompt: str | None = None,
        automation_id: int | None = None,
    ) -> MeetingContent:
        """Generate and save a social post draft.

        When ``automation_id`` is given, the automation's prompt is used
        unless ``prompt`` overrides it.

        Raises:
            LookupError: the automation does not exist or belongs to
                another user.
            ContentGenerationError: generation failed.
        """
        if automation_id is not None:
            automation = await self.store.get_automation(automation_id)
            if automation is None or automation.user_id != meeting.user_id:
                raise LookupError(f"Automation {automation_id} not found")
            prompt = prompt or automation.prompt
            platform = platform or automation.platform

        draft = await self.generator.generate_social_post(meeting, platform, prompt)
        content = await self.store.create_meeting_content(
            meeting_id=meeting.id,
            type=ContentType.SOCIAL_POST,
            platform=platform,
            automation_id=automation_id,
            content=draft.content,
            status=ContentStatus.DRAFT,
        )
        logger.info("Saved %s post draft %d for meeting %d", platform, content.id, meeting.id)
        return content

    async def run_automations(self, meeting: Meeting) -> list[MeetingContent]:
        """Draft one post per active automation of the meeting's owner.

        A failing automation is logged and skipped.
        """
        drafts = []
        for automation in await self.store.get_active_automations_by_user_id(meeting.user_id):
            try:
                drafts.append(await self.create_social_post(
                    meeting, automation.platform, automation.prompt, automation.id
                ))
            except ContentGenerationError as e:
                logger.warning("Automation %d failed for meeting %d: %s", automation.id, meeting.id, e)
        return drafts
