"""
Guardian - Lifecycle of one network connection and its monitors.

============================================================
PURPOSE
============================================================
A guardian owns one connection context and runs every monitor
configured for it.

STATE TRANSITIONS:
- CREATED -> SETTING_UP: first is_ready() (or start()) call
- SETTING_UP -> READY: setup() returned a context
- READY -> RUNNING: start() subscribed the monitors
- any -> STOPPED: stop() (terminal, idempotent)

ISOLATION:
- A monitor with an unknown task or invalid arguments is
  recorded in failures and skipped; the others still start
- A failing monitor stream ends only that monitor
- A failing action never reaches the monitor stream

setup() has no timeout. If it never completes, start() and
every monitor stay pending.

============================================================
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from functools import partial
from types import MappingProxyType
from typing import Any, AsyncIterator, ClassVar, Dict, List, Mapping, Optional, Type

from guardian.actions import ActionDispatcher
from guardian.config import GuardianConfig, MonitorConfig, validate_config
from guardian.exceptions import (
    GuardianError,
    GuardianStateError,
    UnknownTaskError,
    ValidationError,
)
from guardian.models import GuardianState
from guardian.tasks.base import Task


logger = logging.getLogger(__name__)


class Guardian(ABC):
    """
    Abstract base class for guardians.

    Subclasses implement:
    1. tasks() - task table, task name -> Task class
    2. setup() - open the connection, return the context

    and may override:
    - config_model - pydantic model for the guardian config
    - teardown() - release the context (default: context.close())
    """

    config_model: ClassVar[Type[GuardianConfig]] = GuardianConfig

    def __init__(
        self,
        guardian_id: str,
        config: Any,
        dispatcher: Optional[ActionDispatcher] = None,
    ) -> None:
        """
        Raises:
            ValidationError: Config does not satisfy config_model
        """
        self._id = guardian_id
        self._config = validate_config(
            self.config_model,
            config,
            f"config for guardian '{guardian_id}'",
            guardian_id=guardian_id,
        )

        self._dispatcher = dispatcher or ActionDispatcher()
        self._owns_dispatcher = dispatcher is None

        self._state = GuardianState.CREATED
        self._setup_task: Optional[asyncio.Task] = None
        self._context: Any = None

        self._subscriptions: Dict[str, asyncio.Task] = {}
        self._failures: Dict[str, List[Exception]] = {}
        self._emitted: Dict[str, int] = {}

    # --------------------------------------------------------
    # CONTRACT
    # --------------------------------------------------------

    @abstractmethod
    def tasks(self) -> Dict[str, Type[Task]]:
        """Task table: task name -> Task class."""
        pass

    @abstractmethod
    async def setup(self, config: GuardianConfig) -> Any:
        """
        Open the network connection.

        Returns:
            Connection context handed to every task
        """
        pass

    async def teardown(self, context: Any) -> None:
        """Release the connection context."""
        close = getattr(context, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    # --------------------------------------------------------
    # PROPERTIES
    # --------------------------------------------------------

    @property
    def guardian_id(self) -> str:
        return self._id

    @property
    def config(self) -> GuardianConfig:
        return self._config

    @property
    def state(self) -> GuardianState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == GuardianState.RUNNING

    @property
    def subscriptions(self) -> Mapping[str, asyncio.Task]:
        """Live monitor subscriptions by monitor name."""
        return MappingProxyType(self._subscriptions)

    @property
    def failures(self) -> Mapping[str, List[Exception]]:
        """Failures recorded per monitor name."""
        return MappingProxyType(self._failures)

    # --------------------------------------------------------
    # LIFECYCLE
    # --------------------------------------------------------

    async def is_ready(self) -> Any:
        """
        Run setup() once and return the connection context.

        Concurrent callers share the same setup.

        Raises:
            GuardianStateError: Guardian already stopped
        """
        if self._state == GuardianState.STOPPED:
            raise GuardianStateError(
                "Guardian is stopped",
                guardian_id=self._id,
                state=self._state.value,
            )

        if self._setup_task is None:
            self._state = GuardianState.SETTING_UP
            logger.info(f"[{self._id}] Setting up")
            self._setup_task = asyncio.create_task(self._run_setup())

        try:
            return await asyncio.shield(self._setup_task)
        except asyncio.CancelledError:
            if self._setup_task.cancelled() and self._state == GuardianState.STOPPED:
                raise GuardianStateError(
                    "Guardian stopped during setup",
                    guardian_id=self._id,
                    state=self._state.value,
                )
            raise

    async def _run_setup(self) -> Any:
        try:
            context = await self.setup(self._config)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[{self._id}] Setup failed: {e}")
            raise

        self._context = context
        if self._state == GuardianState.SETTING_UP:
            self._state = GuardianState.READY
            logger.info(f"[{self._id}] Ready")
        return context

    async def start(self) -> None:
        """
        Subscribe every configured monitor.

        Raises:
            GuardianStateError: Guardian already stopped
        """
        if self._state == GuardianState.STOPPED:
            raise GuardianStateError(
                "Cannot start a stopped guardian",
                guardian_id=self._id,
                state=self._state.value,
            )
        if self._state == GuardianState.RUNNING:
            logger.warning(f"[{self._id}] Already running")
            return

        context = await self.is_ready()
        if self._state != GuardianState.READY:
            return

        task_table = self.tasks()
        for name, monitor in self._config.monitors.items():
            try:
                self._start_monitor(name, monitor, task_table, context)
            except GuardianError as e:
                self._record_failure(name, e)
            except Exception as e:
                logger.exception(f"[{self._id}/{name}] Monitor failed to start")
                self._record_failure(name, e)

        self._state = GuardianState.RUNNING
        logger.info(
            f"[{self._id}] Running {len(self._subscriptions)}/"
            f"{len(self._config.monitors)} monitor(s)"
        )

    def _start_monitor(
        self,
        name: str,
        monitor: MonitorConfig,
        task_table: Dict[str, Type[Task]],
        context: Any,
    ) -> None:
        task_class = task_table.get(monitor.task)
        if task_class is None:
            raise UnknownTaskError(
                f"Unknown task '{monitor.task}'",
                task_name=monitor.task,
                guardian_id=self._id,
                monitor=name,
                available_tasks=sorted(task_table),
            )

        try:
            task = task_class(monitor.arguments, on_failure=partial(self._record_failure, name))
        except ValidationError as e:
            e.guardian_id = self._id
            e.monitor = name
            raise

        stream = task.start(context)
        subscription = asyncio.create_task(
            self._consume(name, monitor, stream),
            name=f"{self._id}:{name}",
        )
        self._subscriptions[name] = subscription
        subscription.add_done_callback(partial(self._on_subscription_done, name))
        logger.info(f"[{self._id}/{name}] Subscribed to {monitor.task}")

    async def _consume(self, name: str, monitor: MonitorConfig, stream: AsyncIterator[Any]) -> None:
        async for record in stream:
            if self._state == GuardianState.STOPPED:
                break
            self._on_record(name, monitor, record)

    def _on_record(self, name: str, monitor: MonitorConfig, record: Any) -> None:
        self._emitted[name] = self._emitted.get(name, 0) + 1
        for action in monitor.actions:
            try:
                self._dispatcher.dispatch(
                    action,
                    record,
                    guardian_id=self._id,
                    monitor=name,
                    task=monitor.task,
                )
            except Exception:
                logger.exception(f"[{self._id}/{name}] Action dispatch failed for {action.url}")

    def _on_subscription_done(self, name: str, subscription: asyncio.Task) -> None:
        if self._subscriptions.get(name) is subscription:
            del self._subscriptions[name]

        if subscription.cancelled():
            return

        error = subscription.exception()
        if error is not None:
            self._record_failure(name, error)
        else:
            logger.info(f"[{self._id}/{name}] Stream completed")

    def _record_failure(self, name: str, error: Exception) -> None:
        if isinstance(error, GuardianError):
            error.guardian_id = error.guardian_id or self._id
            error.monitor = error.monitor or name
        self._failures.setdefault(name, []).append(error)
        logger.error(f"[{self._id}/{name}] {error}")

    async def stop(self) -> None:
        """Cancel every subscription and release the context."""
        if self._state == GuardianState.STOPPED:
            return

        self._state = GuardianState.STOPPED
        logger.info(f"[{self._id}] Stopping")

        pending = list(self._subscriptions.values())
        self._subscriptions.clear()
        if self._setup_task is not None and not self._setup_task.done():
            pending.append(self._setup_task)

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if self._owns_dispatcher:
            await self._dispatcher.close()

        context, self._context = self._context, None
        if context is not None:
            await self.teardown(context)

        logger.info(f"[{self._id}] Stopped")

    # --------------------------------------------------------
    # STATUS
    # --------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            "guardian_id": self._id,
            "network_type": self._config.network_type,
            "state": self._state.value,
            "monitors": {
                name: {
                    "task": monitor.task,
                    "active": name in self._subscriptions,
                    "emitted": self._emitted.get(name, 0),
                    "failures": len(self._failures.get(name, [])),
                }
                for name, monitor in self._config.monitors.items()
            },
        }

    async def __aenter__(self) -> "Guardian":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self._id}, state={self._state.value})>"
