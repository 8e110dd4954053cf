"""Static registry of post action types, trust levels and hidden reasons.

The registry is the single place that declares which action types are flags,
which flags may trigger automatic hiding, and which types keep a denormalized
counter column on ``posts``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Final

SYSTEM_USER_ID: Final[int] = -1


class ActionType(IntEnum):
    """Identifiers stored in ``post_actions.post_action_type_id``."""

    BOOKMARK = 1
    LIKE = 2
    OFF_TOPIC = 3
    INAPPROPRIATE = 4
    VOTE = 5
    NOTIFY_USER = 6
    NOTIFY_MODERATORS = 7
    SPAM = 8

    @property
    def key(self) -> str:
        return self.name.lower()


class TrustLevel(IntEnum):
    NEWUSER = 0
    BASIC = 1
    MEMBER = 2
    REGULAR = 3
    LEADER = 4


class HiddenReason(IntEnum):
    FLAG_THRESHOLD_REACHED = 1
    FLAG_THRESHOLD_REACHED_AGAIN = 2
    NEW_USER_SPAM_THRESHOLD_REACHED = 3
    FLAGGED_BY_TL3_USER = 4
    FLAGGED_BY_TL4_USER = 5


@dataclass(frozen=True)
class ActionTypeSpec:
    """Behavioural description of a single action type."""

    type: ActionType
    is_flag: bool = False
    auto_action: bool = False
    counter_column: str | None = None

    @property
    def key(self) -> str:
        return self.type.key


ACTION_TYPES: Final[dict[ActionType, ActionTypeSpec]] = {
    spec.type: spec
    for spec in (
        ActionTypeSpec(ActionType.BOOKMARK, counter_column="bookmark_count"),
        ActionTypeSpec(ActionType.LIKE, counter_column="like_count"),
        ActionTypeSpec(
            ActionType.OFF_TOPIC, is_flag=True, auto_action=True, counter_column="off_topic_count"
        ),
        ActionTypeSpec(
            ActionType.INAPPROPRIATE,
            is_flag=True,
            auto_action=True,
            counter_column="inappropriate_count",
        ),
        ActionTypeSpec(ActionType.VOTE),
        ActionTypeSpec(ActionType.NOTIFY_USER, counter_column="notify_user_count"),
        ActionTypeSpec(
            ActionType.NOTIFY_MODERATORS, is_flag=True, counter_column="notify_moderators_count"
        ),
        ActionTypeSpec(ActionType.SPAM, is_flag=True, auto_action=True, counter_column="spam_count"),
    )
}

# Flag types that count toward moderation queues and share one uniqueness slot.
FLAG_TYPE_IDS: Final[tuple[int, ...]] = tuple(
    int(spec.type) for spec in ACTION_TYPES.values() if spec.is_flag
)
# Flag types that may hide a post without staff review.
AUTO_ACTION_FLAG_TYPE_IDS: Final[tuple[int, ...]] = tuple(
    int(spec.type) for spec in ACTION_TYPES.values() if spec.auto_action
)
# Types that open a private message when submitted with a message.
MESSAGE_ACTION_TYPES: Final[frozenset[ActionType]] = frozenset(
    {ActionType.NOTIFY_MODERATORS, ActionType.NOTIFY_USER, ActionType.SPAM}
)


def get_spec(action_type: int) -> ActionTypeSpec:
    """Return the registry entry for ``action_type``.

    Raises:
        ValueError: If the identifier is not a known action type.
    """
    return ACTION_TYPES[ActionType(action_type)]


def is_flag(action_type: int) -> bool:
    return int(action_type) in FLAG_TYPE_IDS


def is_auto_action_flag(action_type: int) -> bool:
    return int(action_type) in AUTO_ACTION_FLAG_TYPE_IDS
