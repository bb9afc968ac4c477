"""Bot and meeting status state machines.

The Recall.ai status vocabulary is richer than ours and not contractually
fixed. Only the latest status-change code is mapped, unknown codes cause
no transition, and statuses only ever move forward:

    scheduled -> joining -> recording -> completed | failed

Meetings follow the same rule on their own scale:

    scheduled -> in_progress -> completed | failed
"""

from __future__ import annotations

from recapbot.models.schemas import BotStatus, MeetingStatus

PROVIDER_CODE_MAP: dict[str, BotStatus] = {
    "ready": BotStatus.SCHEDULED,
    "joining_call": BotStatus.JOINING,
    "in_waiting_room": BotStatus.JOINING,
    "in_call_not_recording": BotStatus.RECORDING,
    "in_call_recording": BotStatus.RECORDING,
    "call_ended": BotStatus.COMPLETED,
    "recording_done": BotStatus.COMPLETED,
    "done": BotStatus.COMPLETED,
    "failed": BotStatus.FAILED,
    "error": BotStatus.FAILED,
}

_BOT_RANK: dict[BotStatus, int] = {
    BotStatus.SCHEDULED: 0,
    BotStatus.JOINED: 1,
    BotStatus.JOINING: 1,
    BotStatus.RECORDING: 2,
    BotStatus.COMPLETED: 3,
    BotStatus.FAILED: 3,
}

_MEETING_RANK: dict[MeetingStatus, int] = {
    MeetingStatus.SCHEDULED: 0,
    MeetingStatus.IN_PROGRESS: 1,
    MeetingStatus.COMPLETED: 2,
    MeetingStatus.FAILED: 2,
}

TERMINAL_BOT_STATUSES = frozenset({BotStatus.COMPLETED, BotStatus.FAILED})
TERMINAL_MEETING_STATUSES = frozenset({MeetingStatus.COMPLETED, MeetingStatus.FAILED})

# Statuses the reconciler polls. JOINED only appears on legacy rows.
ACTIVE_BOT_STATUSES = (
    BotStatus.SCHEDULED,
    BotStatus.JOINED,
    BotStatus.JOINING,
    BotStatus.RECORDING,
)


def map_provider_code(code: str | None) -> BotStatus | None:
    """Map a Recall.ai status code to a bot status, or None if unrecognized."""
    if not code:
        return None
    return PROVIDER_CODE_MAP.get(code)


def is_terminal(status: BotStatus | str) -> bool:
    return BotStatus(status) in TERMINAL_BOT_STATUSES


def next_bot_status(current: BotStatus | str, code: str | None) -> BotStatus:
    """Apply one provider observation to the current bot status.

    Returns the current status when the code is unknown, when the bot is
    already terminal, or when the observation ranks behind the current
    status (a stale or out-of-order read).
    """
    current = BotStatus(current)
    observed = map_provider_code(code)
    if observed is None or current in TERMINAL_BOT_STATUSES:
        return current
    if _BOT_RANK[observed] <= _BOT_RANK[current]:
        return current
    return observed


def meeting_status_for_bot(status: BotStatus | str) -> MeetingStatus:
    """Project a bot status onto the meeting state machine."""
    status = BotStatus(status)
    if status in (BotStatus.JOINED, BotStatus.JOINING, BotStatus.RECORDING):
        return MeetingStatus.IN_PROGRESS
    if status == BotStatus.COMPLETED:
        return MeetingStatus.COMPLETED
    if status == BotStatus.FAILED:
        return MeetingStatus.FAILED
    return MeetingStatus.SCHEDULED


def next_meeting_status(current: MeetingStatus | str, target: MeetingStatus | str) -> MeetingStatus:
    """Move a meeting toward ``target`` without ever regressing it."""
    current = MeetingStatus(current)
    target = MeetingStatus(target)
    if current in TERMINAL_MEETING_STATUSES:
        return current
    if _MEETING_RANK[target] <= _MEETING_RANK[current]:
        return current
    return target
