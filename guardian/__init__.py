"""
Chain Guardian - Live monitoring of ledger networks.

Watches chain state (pools, loans, balances, events), recomputes
risk snapshots as new state arrives and posts every snapshot to
the configured actions.

Quick Start:
    from guardian import get_default_registry

    async def main():
        registry = get_default_registry()
        guardian = registry.create("laminarChain", "laminar", {
            "networkType": "laminarChain",
            "nodeEndpoint": "ws://localhost:9944",
            "monitors": {
                "pools": {
                    "task": "synthetic.liquidityPool",
                    "arguments": {"poolId": "all", "currencyId": "fTokens"},
                    "actions": [{"method": "POST", "url": "http://localhost:8080"}],
                },
            },
        })
        await guardian.start()
        ...
        await guardian.stop()

Adding New Network Types:
    class CustomGuardian(Guardian):
        def tasks(self):
            return {"system.events": EventsTask}

        async def setup(self, config):
            return await connect(config)

    registry.register("customChain", CustomGuardian)
"""

from guardian.actions import ActionDispatcher
from guardian.config import (
    AcalaGuardianConfig,
    ActionConfig,
    AppConfig,
    GuardianConfig,
    LaminarGuardianConfig,
    MonitorConfig,
    SubstrateGuardianConfig,
    load_config,
)
from guardian.exceptions import (
    ActionDispatchError,
    ConfigurationError,
    FixedPointError,
    GuardianError,
    GuardianRegistrationError,
    GuardianStateError,
    SourceError,
    UnknownGuardianTypeError,
    UnknownTaskError,
    ValidationError,
)
from guardian.fixed_point import ONE, FixedPoint, from_permill
from guardian.guardians import (
    AcalaGuardian,
    Guardian,
    GuardianRegistry,
    LaminarGuardian,
    SubstrateGuardian,
    get_default_registry,
)
from guardian.models import GuardianState, LiquidityPool
from guardian.tasks import Task


__version__ = "0.1.0"

__all__ = [
    # Core
    "Guardian",
    "GuardianRegistry",
    "GuardianState",
    "Task",
    "get_default_registry",
    # Guardians
    "AcalaGuardian",
    "LaminarGuardian",
    "SubstrateGuardian",
    # Config
    "AcalaGuardianConfig",
    "ActionConfig",
    "AppConfig",
    "GuardianConfig",
    "LaminarGuardianConfig",
    "MonitorConfig",
    "SubstrateGuardianConfig",
    "load_config",
    # Values
    "FixedPoint",
    "LiquidityPool",
    "ONE",
    "from_permill",
    # Actions
    "ActionDispatcher",
    # Exceptions
    "ActionDispatchError",
    "ConfigurationError",
    "FixedPointError",
    "GuardianError",
    "GuardianRegistrationError",
    "GuardianStateError",
    "SourceError",
    "UnknownGuardianTypeError",
    "UnknownTaskError",
    "ValidationError",
]
