"""Models package."""

from .anon_user import AnonUser
from .user_token import UserToken
from .token_ledger import TokenLedgerEntry
from .moderation_audit import ModerationAuditLog
from .confession import ConfessionPost, ConfessionComment
