"""Inbound update processing for worker chats."""

from .dispatcher import process_update, dispatch_event
from .context import HandlerContext, StaleTaskError

__all__ = ['process_update', 'dispatch_event', 'HandlerContext', 'StaleTaskError']
