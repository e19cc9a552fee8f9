from __future__ import annotations


class AssistantBotError(Exception):
    """Base error for the assistant bot."""

    recoverable: bool = False
    severity: str = "error"


class TransientError(AssistantBotError):
    """Failure that may succeed if the same call is made again later."""

    recoverable = True
    severity = "warning"


class PermanentError(AssistantBotError):
    """Failure that will not resolve without a configuration or code change."""

    recoverable = False
    severity = "error"
