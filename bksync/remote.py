"""
Remote backup store client.

The remote store is a REST "basket" keyed by an opaque account id: GET
returns the stored snapshot JSON, POST replaces it and answers with a
confirmation text.
"""
import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp

from bksync.config import SyncConfig, get_config
from bksync.errors import RemoteStoreError

logger = logging.getLogger(__name__)


class RemoteBackupStore:
    """Client for one basket of the remote backup store."""

    def __init__(
        self,
        account_id: str,
        basket: str,
        base_url: str,
        timeout: float = 10.0,
        user_agent: str = "bksync/1.0"
    ):
        if not account_id:
            raise RemoteStoreError("Account ID not set. Save your account ID first.")
        self.account_id = account_id
        self.basket = basket
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent

    @classmethod
    def from_config(cls, account_id: str, config: Optional[SyncConfig] = None) -> "RemoteBackupStore":
        config = config or get_config()
        return cls(
            account_id,
            basket=config.basket_name,
            base_url=config.remote_base_url,
            timeout=config.timeout,
            user_agent=config.user_agent,
        )

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.account_id}/basket/{self.basket}"

    @asynccontextmanager
    async def _session(self, session: Optional[aiohttp.ClientSession]) -> AsyncIterator[aiohttp.ClientSession]:
        if session is not None:
            yield session
            return
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            headers={"User-Agent": self.user_agent}
        ) as owned:
            yield owned

    async def fetch(self, session: Optional[aiohttp.ClientSession] = None) -> Dict[str, Any]:
        """
        Download the stored snapshot.

        Args:
            session: Optional aiohttp session to reuse

        Returns:
            Parsed snapshot envelope

        Raises:
            RemoteStoreError: On HTTP errors, timeouts or a non-object body
        """
        try:
            async with self._session(session) as s:
                async with s.get(self.url, headers={"Content-Type": "application/json"}) as response:
                    text = await response.text()
                    if response.status >= 400:
                        raise RemoteStoreError(
                            f"Remote store error ({response.status}): {text or response.reason}",
                            status=response.status
                        )
        except asyncio.TimeoutError:
            raise RemoteStoreError("Remote store request timed out")
        except aiohttp.ClientError as e:
            raise RemoteStoreError(f"Could not reach remote store: {e}")

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise RemoteStoreError(f"Invalid data received from remote store: {e}")
        if not isinstance(data, dict):
            raise RemoteStoreError("Invalid data received from remote store: not an object")

        logger.info("Fetched backup from basket %s", self.basket)
        return data

    async def push(self, data: Dict[str, Any],
                   session: Optional[aiohttp.ClientSession] = None) -> str:
        """
        Upload a snapshot, replacing the basket contents.

        Returns:
            Confirmation text from the store

        Raises:
            RemoteStoreError: On HTTP errors or timeouts
        """
        try:
            async with self._session(session) as s:
                async with s.post(self.url, json=data) as response:
                    text = await response.text()
                    if response.status >= 400:
                        raise RemoteStoreError(
                            f"Remote store error ({response.status}): {text or response.reason}",
                            status=response.status
                        )
        except asyncio.TimeoutError:
            raise RemoteStoreError("Remote store request timed out")
        except aiohttp.ClientError as e:
            raise RemoteStoreError(f"Could not reach remote store: {e}")

        logger.info("Remote store response: %s", text)
        return text
