"""
Task - Base contract for monitoring computations.

============================================================
PURPOSE
============================================================
A task turns a guardian connection context into a live stream
of domain records.

Each task declares:
1. arguments_model - pydantic model describing its arguments
2. start() - builds the live record stream

A task is constructed fresh per monitor. Construction validates
the arguments (defaults applied) and fails with ValidationError
before any subscription exists. After that the task holds no
state; everything mutable lives inside the stream returned by
start(), and each call builds an independent subscription tree.

============================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, ClassVar, Generic, Mapping, Optional, Type, TypeVar

from guardian.config import ConfigModel, validate_config


logger = logging.getLogger(__name__)

A = TypeVar("A", bound=ConfigModel)
R = TypeVar("R")


class TaskArguments(ConfigModel):
    """Base class for task argument models."""


class Task(ABC, Generic[A, R]):
    """
    Abstract base class for tasks.

    Subclasses set arguments_model and implement start().
    """

    arguments_model: ClassVar[Type[ConfigModel]] = TaskArguments

    def __init__(
        self,
        arguments: Optional[Mapping[str, Any]] = None,
        on_failure: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        """
        Args:
            arguments: Raw task arguments
            on_failure: Receives failures of independent units of
                this task's stream. Defaults to logging them.

        Raises:
            ValidationError: Arguments do not satisfy arguments_model
        """
        self._arguments: A = validate_config(
            self.arguments_model,
            dict(arguments or {}),
            f"arguments for {type(self).__name__}",
        )
        self._on_failure = on_failure

    @property
    def arguments(self) -> A:
        return self._arguments

    @classmethod
    def validation_schema(cls) -> dict[str, Any]:
        """JSON schema of the accepted arguments."""
        return cls.arguments_model.model_json_schema(by_alias=True)

    @abstractmethod
    def start(self, context: Any) -> AsyncIterator[R]:
        """
        Build the live record stream.

        Args:
            context: Guardian connection context (read-only)

        Returns:
            Async iterator of records; never completes on its own
            while any underlying source is subscribed
        """
        pass

    def report_failure(self, error: Exception) -> None:
        """Report a failure of one independent unit of the stream."""
        if self._on_failure is not None:
            self._on_failure(error)
        else:
            logger.error(f"[{type(self).__name__}] Unit failed: {error}")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}({self._arguments!r})>"
