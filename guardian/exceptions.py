"""
Guardian Exceptions - Custom exception hierarchy.

Configuration errors are raised loudly at construction time.
Runtime errors are scoped to a single monitor or action.
"""

from datetime import datetime
from typing import Any, Optional


class GuardianError(Exception):
    """Base exception for all guardian errors."""

    def __init__(
        self,
        message: str,
        guardian_id: Optional[str] = None,
        monitor: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.guardian_id = guardian_id
        self.monitor = monitor
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "guardian_id": self.guardian_id,
            "monitor": self.monitor,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.guardian_id:
            parts.append(f"[guardian={self.guardian_id}]")
        if self.monitor:
            parts.append(f"[monitor={self.monitor}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class ValidationError(GuardianError):
    """Task arguments or guardian configuration failed their schema."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        constraint: Optional[str] = None,
        guardian_id: Optional[str] = None,
        monitor: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, guardian_id, monitor, original_error, context)
        self.field = field
        self.constraint = constraint

    @classmethod
    def from_pydantic(
        cls,
        error: Exception,
        subject: str,
        **kwargs: Any,
    ) -> "ValidationError":
        """Build from a pydantic ValidationError, keeping the first violation."""
        errors = error.errors() if hasattr(error, "errors") else []
        if not errors:
            return cls(f"Invalid {subject}: {error}", original_error=error, **kwargs)

        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        constraint = first.get("type")
        return cls(
            message=f"Invalid {subject}: '{field}' {first.get('msg', 'is invalid')}",
            field=field,
            constraint=constraint,
            original_error=error,
            context={"errors": [
                {"field": ".".join(str(p) for p in e.get("loc", ())), "type": e.get("type")}
                for e in errors
            ]},
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "field": self.field,
            "constraint": self.constraint,
        })
        return data


class UnknownGuardianTypeError(GuardianError):
    """No guardian class is registered for the network type."""

    def __init__(
        self,
        message: str,
        network_type: Optional[str] = None,
        registered_types: Optional[list[str]] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.network_type = network_type
        self.registered_types = registered_types or []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "network_type": self.network_type,
            "registered_types": self.registered_types,
        })
        return data


class UnknownTaskError(GuardianError):
    """A monitor names a task missing from the guardian's task table."""

    def __init__(
        self,
        message: str,
        task_name: Optional[str] = None,
        guardian_id: Optional[str] = None,
        monitor: Optional[str] = None,
        available_tasks: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, guardian_id, monitor)
        self.task_name = task_name
        self.available_tasks = available_tasks or []

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "task_name": self.task_name,
            "available_tasks": self.available_tasks,
        })
        return data


class GuardianRegistrationError(GuardianError):
    """A class passed to the registry does not implement the guardian contract."""

    def __init__(
        self,
        message: str,
        network_type: Optional[str] = None,
        missing: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.network_type = network_type
        self.missing = missing or []


class GuardianStateError(GuardianError):
    """Lifecycle operation not allowed in the current state."""

    def __init__(
        self,
        message: str,
        guardian_id: Optional[str] = None,
        state: Optional[str] = None,
    ) -> None:
        super().__init__(message, guardian_id)
        self.state = state


class SourceError(GuardianError):
    """A chain-state subscription failed or closed unexpectedly."""

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        code: Optional[int] = None,
        guardian_id: Optional[str] = None,
        monitor: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, guardian_id, monitor, original_error, context)
        self.source = source
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "source": self.source,
            "code": self.code,
        })
        return data


class ActionDispatchError(GuardianError):
    """A single action invocation failed."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        guardian_id: Optional[str] = None,
        monitor: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, guardian_id, monitor, original_error)
        self.url = url
        self.status_code = status_code
        self.response_body = response_body

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "url": self.url,
            "status_code": self.status_code,
            "response_body": self.response_body,
        })
        return data


class ConfigurationError(GuardianError):
    """Configuration file could not be read or parsed."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        config_key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message, original_error=original_error)
        self.path = path
        self.config_key = config_key

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "path": self.path,
            "config_key": self.config_key,
        })
        return data


class FixedPointError(GuardianError, ArithmeticError):
    """Invalid fixed-point input or operation."""
