"""
Vault-held ledger secrets: database URL and email gateway credentials.

AppRole login from VAULT_ADDR / VAULT_ROLE_ID / VAULT_SECRET_ID. Every path is
read under the 'ledger/' KV v2 prefix, once per process.
"""

import logging
import os
from typing import Dict

import hvac
from hvac.exceptions import Forbidden, InvalidPath, Unauthorized

logger = logging.getLogger(__name__)

_SECRET_PREFIX = "ledger"
_EMAIL_FIELDS = ("gateway_url", "api_key", "hmac_secret")

_vault_client_instance: "VaultClient | None" = None
_secret_cache: Dict[str, Dict[str, str]] = {}


def reset_vault_client() -> None:
    """Drop the shared client and every cached secret."""
    global _vault_client_instance
    _vault_client_instance = None
    _secret_cache.clear()


class VaultClient:
    """AppRole-authenticated reader for secrets under ledger/."""

    def __init__(self):
        addr = os.getenv("VAULT_ADDR")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError("VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required")

        self.client = hvac.Client(url=addr)
        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error("Vault AppRole login failed: %s", e)
            raise PermissionError(f"AppRole authentication failed: {e}") from e
        self.client.token = login["auth"]["client_token"]

        if not self.client.is_authenticated():
            raise PermissionError("Vault authentication failed")
        logger.info("Vault client authenticated against %s", addr)

    def read(self, path: str) -> Dict[str, str]:
        """
        All fields of the secret at ledger/<path>.

        Raises:
            PermissionError: Path missing or access denied
        """
        full_path = f"{_SECRET_PREFIX}/{path}"
        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath as e:
            raise PermissionError(f"Secret path '{full_path}' not found in Vault") from e
        except (Unauthorized, Forbidden) as e:
            raise PermissionError(f"Access denied to secret '{full_path}': {e}") from e
        return response["data"]["data"]

    def get_secret(self, path: str, field: str) -> str:
        """
        One field of the secret at ledger/<path>.

        Raises:
            PermissionError: Path missing or access denied
            KeyError: Field not present in the secret
        """
        secret = self.read(path)
        if field not in secret:
            raise KeyError(
                f"Field '{field}' not found in secret '{_SECRET_PREFIX}/{path}'. "
                f"Available: {', '.join(secret)}"
            )
        return secret[field]


def _cached(path: str) -> Dict[str, str]:
    global _vault_client_instance
    if path not in _secret_cache:
        if _vault_client_instance is None:
            _vault_client_instance = VaultClient()
        _secret_cache[path] = _vault_client_instance.read(path)
    return _secret_cache[path]


def get_database_url() -> str:
    """PostgreSQL URL for the ledger store."""
    return _cached("database")["url"]


def get_email_config() -> Dict[str, str]:
    """Keyword arguments for EmailGatewayClient: gateway_url, api_key, hmac_secret."""
    secret = _cached("email")
    missing = [f for f in _EMAIL_FIELDS if f not in secret]
    if missing:
        raise KeyError(f"Secret '{_SECRET_PREFIX}/email' is missing: {', '.join(missing)}")
    return {f: secret[f] for f in _EMAIL_FIELDS}
