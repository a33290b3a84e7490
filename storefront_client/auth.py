"""Auth token accessor backed by the key-value store"""

import json
from typing import Any, Dict, Optional, Protocol

from .storage import KeyValueStore
from .utils.logger import get_logger

logger = get_logger(__name__)

AUTH_TOKEN_KEY = 'auth_token'
USER_DATA_KEY = 'user_data'


class LoginNavigator(Protocol):
    """Navigation capability used when the session expires"""

    def redirect_to_login(self) -> None: ...


class NullNavigator:
    """Navigator for headless embeddings; only records the redirect"""

    def __init__(self):
        self.redirects = 0

    def redirect_to_login(self) -> None:
        self.redirects += 1
        logger.info("[Auth] Session expired, login required")


class AuthSession:
    """Holds the bearer token and cached identity of the signed-in customer"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get_token(self) -> Optional[str]:
        return await self.store.get_item(AUTH_TOKEN_KEY)

    async def set_token(self, token: str) -> None:
        await self.store.set_item(AUTH_TOKEN_KEY, token)

    async def get_user(self) -> Optional[Dict[str, Any]]:
        raw = await self.store.get_item(USER_DATA_KEY)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("[Auth] Stored user data is not valid JSON, discarding")
            await self.store.remove_item(USER_DATA_KEY)
            return None

    async def save_login(self, token: str, customer: Optional[Dict[str, Any]] = None) -> None:
        """Persist the token and, when provided, the customer identity"""
        await self.set_token(token)
        if customer:
            await self.store.set_item(USER_DATA_KEY, json.dumps(customer))
        logger.info("[Auth] Login session stored")

    async def is_authenticated(self) -> bool:
        return bool(await self.get_token())

    async def logout(self) -> None:
        """Clear token and identity"""
        await self.store.multi_remove([AUTH_TOKEN_KEY, USER_DATA_KEY])
        logger.info("[Auth] Session cleared")
