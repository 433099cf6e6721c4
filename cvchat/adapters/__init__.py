"""Adapters package - Bridge between the chat engine and remote services.

This package contains the realtime transport, the event bus that feeds
inbound frames to the dispatcher, the outbound frame encoders and the
REST clients for the auth, conversation and credential services.
"""
from __future__ import annotations

__all__ = [
    "RealtimeTransport",
    "EventBus",
    "ApiClient",
    "AuthAPI",
    "ContextAPI",
    "ConversationAPI",
]

from cvchat.adapters.api import ApiClient
from cvchat.adapters.auth_api import AuthAPI
from cvchat.adapters.context_api import ContextAPI
from cvchat.adapters.conversation_api import ConversationAPI
from cvchat.adapters.event_bus import EventBus
from cvchat.adapters.transport import RealtimeTransport
