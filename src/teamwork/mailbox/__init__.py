"""Mailbox public API: per-actor inboxes for coordination messages."""

from teamwork.mailbox.mailbox import Mailbox

__all__ = ["Mailbox"]
