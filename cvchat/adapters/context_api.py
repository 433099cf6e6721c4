"""Context manager service client: workspace credentials and SSH keys."""
from __future__ import annotations

import logging
from urllib.parse import quote

from cvchat.adapters.api import ApiClient, unwrap_data
from cvchat.shared.models.secrets import CredentialData, SecretList, SSHKeyData
from cvchat.shared.services.token_store import TokenStore

logger = logging.getLogger(__name__)

SECRET_TYPES = ("credential", "ssh_key", "certificate")


class ContextAPI(ApiClient):
    """``/api/v1/context`` endpoints of the credential store."""

    def __init__(self, base_url: str, tokens: TokenStore, **kwargs) -> None:
        super().__init__(f"{base_url.rstrip('/')}/api/v1/context", tokens, **kwargs)

    async def store_credential(self, credential: CredentialData) -> dict:
        payload = await self.request(
            "POST", "/secret/credential", json=credential.to_payload(),
        )
        logger.info("Stored %s credential %s", credential.provider, credential.key)
        return payload or {}

    async def store_ssh_key(self, ssh_key: SSHKeyData) -> dict:
        payload = await self.request("POST", "/secret/ssh-key", json=ssh_key.to_payload())
        logger.info("Stored SSH key %s", ssh_key.key_name)
        return payload or {}

    async def list_secrets(self) -> SecretList:
        data = unwrap_data(await self.request("GET", "/secret/list"))
        return SecretList.from_dict(data if isinstance(data, dict) else None)

    async def delete_secret(self, secret_type: str, key: str) -> None:
        """Delete a stored secret; *secret_type* is one of SECRET_TYPES."""
        if secret_type not in SECRET_TYPES:
            raise ValueError(f"secret_type must be one of {', '.join(SECRET_TYPES)}")
        await self.request("DELETE", f"/secret/{secret_type}/{quote(key, safe='')}")
        logger.info("Deleted %s %s", secret_type, key)
