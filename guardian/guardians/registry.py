"""
Guardian Registry - Network type to guardian class.

============================================================
PURPOSE
============================================================
Maps network-type identifiers to Guardian classes and creates
guardian instances from configuration.

- register() overwrites an existing binding (last write wins)
- Bindings are never removed
- create() returns an unstarted instance
- GuardianRegistry() is an independent, empty registry;
  get_default_registry() is the process-wide one holding the
  built-in network types

============================================================
USAGE
============================================================
```python
registry = GuardianRegistry()
registry.register("customChain", CustomGuardian)

guardian = registry.create("customChain", "custom-guardian", config)
await guardian.start()
```

============================================================
"""

import inspect
import logging
from typing import Any, Dict, List, Optional, Type

from guardian.exceptions import GuardianRegistrationError, UnknownGuardianTypeError
from guardian.guardians.base import Guardian


logger = logging.getLogger(__name__)


# Capabilities every guardian class must provide
GUARDIAN_CONTRACT = ("tasks", "setup", "is_ready", "start", "stop")


class GuardianRegistry:
    """Registry of guardian classes keyed by network type."""

    def __init__(self) -> None:
        self._guardians: Dict[str, Type[Guardian]] = {}

    def register(self, network_type: str, guardian_class: Type[Guardian]) -> None:
        """
        Bind a network type to a guardian class.

        Raises:
            GuardianRegistrationError: Class does not implement the contract
        """
        if not network_type:
            raise GuardianRegistrationError("Network type must not be empty")

        if not inspect.isclass(guardian_class):
            raise GuardianRegistrationError(
                f"Guardian for '{network_type}' must be a class, got {guardian_class!r}",
                network_type=network_type,
            )

        missing = [
            name for name in GUARDIAN_CONTRACT
            if not callable(getattr(guardian_class, name, None))
        ]
        if missing:
            raise GuardianRegistrationError(
                f"{guardian_class.__name__} does not implement: {', '.join(missing)}",
                network_type=network_type,
                missing=missing,
            )

        if inspect.isabstract(guardian_class):
            raise GuardianRegistrationError(
                f"{guardian_class.__name__} has unimplemented abstract methods: "
                f"{', '.join(sorted(guardian_class.__abstractmethods__))}",
                network_type=network_type,
                missing=sorted(guardian_class.__abstractmethods__),
            )

        previous = self._guardians.get(network_type)
        if previous is not None and previous is not guardian_class:
            logger.warning(
                f"Guardian type '{network_type}' already registered "
                f"({previous.__name__}), replacing with {guardian_class.__name__}"
            )

        self._guardians[network_type] = guardian_class
        logger.debug(f"Registered guardian type '{network_type}' -> {guardian_class.__name__}")

    def get(self, network_type: str) -> Optional[Type[Guardian]]:
        return self._guardians.get(network_type)

    def list_types(self) -> List[str]:
        return sorted(self._guardians)

    def create(
        self,
        network_type: str,
        guardian_id: str,
        config: Any,
        **kwargs: Any,
    ) -> Guardian:
        """
        Create an unstarted guardian.

        Args:
            network_type: Registered network type
            guardian_id: Instance identifier
            config: Guardian configuration (dict or model)
            **kwargs: Passed to the guardian constructor

        Raises:
            UnknownGuardianTypeError: Network type not registered
            ValidationError: Config rejected by the guardian class
        """
        guardian_class = self._guardians.get(network_type)
        if guardian_class is None:
            raise UnknownGuardianTypeError(
                f"Unknown guardian type '{network_type}'",
                network_type=network_type,
                registered_types=self.list_types(),
            )

        guardian = guardian_class(guardian_id, config, **kwargs)
        logger.info(f"Created {guardian_class.__name__} '{guardian_id}'")
        return guardian

    def __contains__(self, network_type: object) -> bool:
        return network_type in self._guardians

    def __repr__(self) -> str:
        return f"<GuardianRegistry(types={self.list_types()})>"


def register_builtin_guardians(registry: GuardianRegistry) -> GuardianRegistry:
    """Register the built-in network types."""
    from guardian.guardians.substrate import AcalaGuardian, LaminarGuardian

    registry.register("laminarChain", LaminarGuardian)
    registry.register("acalaChain", AcalaGuardian)
    return registry


# Singleton instance
_default_registry: Optional[GuardianRegistry] = None


def get_default_registry() -> GuardianRegistry:
    """Get or create the process-wide registry."""
    global _default_registry
    if _default_registry is None:
        _default_registry = register_builtin_guardians(GuardianRegistry())
    return _default_registry
