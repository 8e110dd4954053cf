"""Default-locale text used in system generated posts and messages."""

from __future__ import annotations

from typing import Any, Final

MESSAGES: Final[dict[str, str]] = {
    "post_action_types.notify_moderators.email_title": 'A post in "{title}" requires staff attention',
    "post_action_types.notify_moderators.email_body": "{message}\n\n[Check the post]({link})",
    "post_action_types.notify_user.email_title": 'Your post in "{title}"',
    "post_action_types.notify_user.email_body": "{message}\n\n[See the post]({link})",
    "post_action_types.spam.email_title": 'Spam reported in "{title}"',
    "post_action_types.spam.email_body": "{message}\n\n[Check the post]({link})",
    "flags_dispositions.agreed": "Thanks for letting us know. We agree there is an issue and we're looking into it.",
    "flags_dispositions.agreed_and_deleted": "Thanks for letting us know. We agree there is an issue and we've removed the post.",
    "flags_dispositions.disagreed": "Thanks for letting us know. We're looking into it.",
    "flags_dispositions.deferred": "Thanks for letting us know. We're looking into it.",
    "flags_dispositions.deferred_and_deleted": "Thanks for letting us know. We've removed the post.",
    "temporarily_closed_due_to_flags": (
        "This topic is temporarily closed for at least {count} hours due to a large number "
        "of community flags."
    ),
    "flag_reasons.off_topic": "Your post was flagged as **off-topic**.",
    "flag_reasons.inappropriate": "Your post was flagged as **inappropriate**.",
    "flag_reasons.spam": "Your post was flagged as **spam**.",
    "flag_reasons.notify_moderators": "Your post was flagged **for moderator attention**.",
}


def t(key: str, **params: Any) -> str:
    """Return the catalog text for ``key`` formatted with ``params``.

    Unknown keys fall back to the key itself so a missing entry never breaks a flow.
    """
    template = MESSAGES.get(key, key)
    return template.format(**params) if params else template


def truncate_words(text: str, limit: int) -> str:
    """Shorten ``text`` to at most ``limit`` characters, cutting at whitespace."""
    if len(text) <= limit:
        return text
    omission = "..."
    cut = text[: max(limit - len(omission), 0)]
    if " " in cut:
        cut = cut.rsplit(" ", 1)[0]
    return f"{cut}{omission}"
