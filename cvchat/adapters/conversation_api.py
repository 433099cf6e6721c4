"""Conversation service client."""
from __future__ import annotations

import logging

from cvchat.adapters.api import ApiClient, unwrap_data
from cvchat.engine.errors import ApiError
from cvchat.engine.identity import Identity

logger = logging.getLogger(__name__)


class ConversationAPI(ApiClient):
    """``POST /api/conversations`` on the Watson service."""

    async def create(self, identity: Identity) -> str:
        """Create a conversation and return its id."""
        payload = await self.request(
            "POST",
            "/api/conversations",
            json={
                "user_id": identity.user_id,
                "workspace_id": identity.workspace_id,
            },
        )
        data = unwrap_data(payload)
        conversation_id = data.get("id") if isinstance(data, dict) else None
        if not conversation_id:
            raise ApiError(
                f"{self.base_url}/api/conversations", 200,
                "response did not include a conversation id",
            )
        logger.info("Created conversation %s", conversation_id)
        return str(conversation_id)
