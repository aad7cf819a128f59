"""Completion notifications."""

from .notifier import CompletionNotifier, NullPushSender, PushMessage, PushSender

__all__ = ["CompletionNotifier", "NullPushSender", "PushMessage", "PushSender"]
