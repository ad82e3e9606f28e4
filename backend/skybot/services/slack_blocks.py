from __future__ import annotations

from typing import Any

ACTION_CONFIRM_AI = "confirm_ai_yes"
ACTION_DECLINE_AI = "confirm_ai_no"


def confirmation_text(*, command_key: str, attempts: int) -> str:
    return (
        f"I couldn't find the command '{command_key}' after {attempts} attempts. "
        "Would you like to talk to a virtual agent instead?"
    )


def confirmation_blocks(*, command_key: str, attempts: int, thread_key: str) -> list[dict[str, Any]]:
    """Escalation prompt: a message plus yes/no buttons that carry the thread key."""
    return [
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": confirmation_text(command_key=command_key, attempts=attempts)},
        },
        {
            "type": "actions",
            "block_id": "confirm_ai",
            "elements": [
                {
                    "type": "button",
                    "action_id": ACTION_CONFIRM_AI,
                    "style": "primary",
                    "text": {"type": "plain_text", "text": "Yes, use the virtual agent"},
                    "value": str(thread_key),
                },
                {
                    "type": "button",
                    "action_id": ACTION_DECLINE_AI,
                    "style": "danger",
                    "text": {"type": "plain_text", "text": "No, thanks"},
                    "value": str(thread_key),
                },
            ],
        },
    ]
