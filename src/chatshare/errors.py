"""Summary: Error taxonomy for ChatShare.

Importance: Lets the API and CLI map failures to distinct user feedback.
Alternatives: Raise ValueError and RuntimeError everywhere.
"""

from __future__ import annotations


class ChatShareError(Exception):
    """Summary: Base class for all ChatShare errors.

    Importance: Gives entrypoints a single type to catch.
    Alternatives: Catch Exception at every boundary.
    """


class ValidationError(ChatShareError):
    """Summary: Raised when user input is empty or malformed."""


class NotFoundError(ChatShareError):
    """Summary: Raised when a conversation, message, or user email lookup misses."""


class PersistenceError(ChatShareError):
    """Summary: Raised when a store read or write fails.

    Importance: Separates storage failures from missing data.
    Alternatives: Let sqlite3 errors propagate to callers.
    """


class ConflictError(PersistenceError):
    """Summary: Raised when a conditional write keeps losing to other writers."""


class AIError(ChatShareError):
    """Summary: Raised by AI providers on transport or protocol failure.

    Importance: Providers raise it and the responder absorbs it, so callers never see it.
    Alternatives: Return sentinel strings from providers directly.
    """
