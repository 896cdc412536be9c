"""
Action Dispatcher.

============================================================
PURPOSE
============================================================
Deliver emitted records to their configured actions.

PRINCIPLES:
- Fire-and-forget: dispatch() schedules and returns at once
- One attempt per record, no retry, no acknowledgement
- A failing action never reaches the monitor pipeline

============================================================
"""

import asyncio
import json
import logging
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Optional, Set

import aiohttp

from guardian.config import ActionConfig
from guardian.exceptions import ActionDispatchError


logger = logging.getLogger(__name__)


def serialize_record(record: Any) -> Any:
    """Convert an emitted record to JSON-compatible data."""
    if hasattr(record, "to_dict"):
        return record.to_dict()
    if is_dataclass(record) and not isinstance(record, type):
        return asdict(record)
    return record


class ActionDispatcher:
    """
    Posts records to action URLs.

    Usage:
        dispatcher = ActionDispatcher()
        dispatcher.dispatch(action, record, guardian_id="g", monitor="m", task="t")
        ...
        await dispatcher.close()
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._in_flight: Set[asyncio.Task] = set()

        # Stats
        self._sent = 0
        self._failed = 0

    # --------------------------------------------------------
    # DISPATCH
    # --------------------------------------------------------

    def dispatch(
        self,
        action: ActionConfig,
        record: Any,
        guardian_id: str,
        monitor: str,
        task: str,
    ) -> asyncio.Task:
        """Schedule delivery of one record to one action."""
        payload = {
            "guardian": guardian_id,
            "monitor": monitor,
            "task": task,
            "data": serialize_record(record),
        }
        delivery = asyncio.create_task(self._deliver(action, payload))
        self._in_flight.add(delivery)
        delivery.add_done_callback(self._in_flight.discard)
        return delivery

    async def _deliver(self, action: ActionConfig, payload: Dict[str, Any]) -> None:
        try:
            await self.send(action, payload)
            self._sent += 1
        except ActionDispatchError as e:
            self._failed += 1
            logger.warning(f"[{payload['guardian']}/{payload['monitor']}] Action failed: {e}")
        except Exception as e:
            self._failed += 1
            logger.exception(f"[{payload['guardian']}/{payload['monitor']}] Unexpected action error: {e}")

    async def send(self, action: ActionConfig, payload: Dict[str, Any]) -> None:
        """
        Send one payload.

        Raises:
            ActionDispatchError: Request failed or returned an error status
        """
        session = await self._get_session()
        headers = {"Content-Type": "application/json", **action.headers}

        try:
            async with session.request(
                action.method,
                action.url,
                data=json.dumps(payload, default=str),
                headers=headers,
            ) as response:
                if response.status >= 400:
                    body = await response.text()
                    raise ActionDispatchError(
                        f"HTTP {response.status}",
                        url=action.url,
                        status_code=response.status,
                        response_body=body[:500],
                        guardian_id=payload.get("guardian"),
                        monitor=payload.get("monitor"),
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ActionDispatchError(
                f"Request error: {e}",
                url=action.url,
                guardian_id=payload.get("guardian"),
                monitor=payload.get("monitor"),
                original_error=e,
            )

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            )
            self._owns_session = True
        return self._session

    async def cancel_pending(self) -> None:
        """Cancel deliveries that have not completed."""
        pending = [task for task in self._in_flight if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        await self.cancel_pending()
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def get_stats(self) -> Dict[str, int]:
        return {
            "sent": self._sent,
            "failed": self._failed,
            "in_flight": len(self._in_flight),
        }
