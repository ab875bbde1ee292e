"""
MetaApi Connection Manager
--------------------------

This file contains the `MetaApiConnector` class, which has the
Single Responsibility of managing the lifecycle of one RPC session
to a remote MetaTrader terminal hosted by MetaApi:

    UNINITIALIZED -> ACCOUNT_RESOLVED -> DEPLOYING -> DEPLOYED
                  -> CONNECTED -> SYNCHRONIZED -> CLOSED

One connector exists per trading account. It is owned by the
application and injected into the gateway; there is no module-level
connection state. Concurrent callers of `connect()` share a single
in-flight bootstrap.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from .domain import ConnectionState
from .errors import DeploymentTimeout

logger = logging.getLogger(__name__)

DEPLOYED = "DEPLOYED"


class MetaApiConnector:
    """
    Handles the lifecycle of the MetaApi RPC connection.

    `api` is a `metaapi_cloud_sdk.MetaApi` instance (or anything exposing
    `metatrader_account_api.get_account`). `clock` and `sleep` are
    injectable so the deployment wait can be driven without wall time.
    """

    def __init__(self,
                 api: Any,
                 account_id: str,
                 deploy_timeout: float = 60.0,
                 poll_interval: float = 1.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self._api = api
        self._account_id = account_id
        self._deploy_timeout = deploy_timeout
        self._poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

        self._account: Optional[Any] = None
        self._connection: Optional[Any] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._state = ConnectionState.UNINITIALIZED

    @classmethod
    def from_config(cls, token: str, account_id: str, application_id: str, **kwargs) -> "MetaApiConnector":
        """Builds a connector backed by the real MetaApi cloud SDK."""
        from metaapi_cloud_sdk import MetaApi

        api = MetaApi(token, {"application": application_id})
        return cls(api, account_id, **kwargs)

    async def __aenter__(self):
        """Allows using the connector as an async context manager."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        """Closes the session on context exit."""
        await self.close()

    @property
    def account_id(self) -> str:
        return self._account_id

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        """Returns True once the session is terminal-ready."""
        return self._state == ConnectionState.SYNCHRONIZED

    async def resolve_account(self) -> Any:
        """
        Looks up the account once per connector lifetime and requests a
        deployment if it is not deployed yet. Idempotent.
        """
        if self._account is not None:
            return self._account

        account = await self._api.metatrader_account_api.get_account(self._account_id)
        self._account = account
        self._state = ConnectionState.ACCOUNT_RESOLVED
        logger.info(f"MetaApi account {self._account_id} resolved (state={account.state}).")

        if account.state != DEPLOYED:
            logger.info(f"Deploying MetaApi account {self._account_id}...")
            self._state = ConnectionState.DEPLOYING
            await account.deploy()

        return account

    async def await_deployment(self, account: Any, timeout: Optional[float] = None) -> None:
        """Polls the account state until DEPLOYED or the timeout elapses."""
        timeout = self._deploy_timeout if timeout is None else timeout
        started = self._clock()

        while account.state != DEPLOYED:
            if self._clock() - started > timeout:
                raise DeploymentTimeout(
                    f"MetaApi account {self._account_id} failed to deploy within {timeout:.0f}s "
                    f"(last state: {account.state})"
                )
            await self._sleep(self._poll_interval)
            await account.reload()

        self._state = ConnectionState.DEPLOYED

    async def connect(self) -> Any:
        """
        Returns the synchronized RPC connection, bootstrapping it on first use.
        Every concurrent caller awaits the same bootstrap task.
        """
        if self._connect_task is None:
            self._connect_task = asyncio.ensure_future(self._bootstrap())

        task = self._connect_task
        try:
            # Shielded so one cancelled caller cannot abort the shared bootstrap
            return await asyncio.shield(task)
        except Exception:
            # A failed bootstrap must not poison later cycles
            if self._connect_task is task and task.done():
                self._connect_task = None
            raise

    async def _bootstrap(self) -> Any:
        account = await self.resolve_account()
        await self.await_deployment(account)

        connection = account.get_rpc_connection()
        await connection.connect()
        self._state = ConnectionState.CONNECTED
        logger.info("MetaApi RPC connection established. Waiting for synchronization...")

        await connection.wait_synchronized()
        self._connection = connection
        self._state = ConnectionState.SYNCHRONIZED
        logger.info("MetaApi terminal synchronized.")
        return connection

    async def close(self) -> None:
        """Closes the session and resets the memoized bootstrap."""
        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                logger.debug("Pending MetaApi bootstrap discarded on close.")

        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("MetaApi connection closed.")

        self._state = ConnectionState.CLOSED
