"""Database models package."""

from friendrec.models.member import Member
from friendrec.models.blacklist import MemberBlacklist
from friendrec.models.friendship import Friendship
from friendrec.models.friend_event_dlq import FriendEventDlq, DlqEventType, DlqStatus

__all__ = ["Member", "MemberBlacklist", "Friendship", "FriendEventDlq", "DlqEventType", "DlqStatus"]
