"""
Substrate Guardians - Laminar and Acala networks.

setup() connects an RpcClient to the configured node endpoints
and wraps it in the network's API class. The API object is the
connection context every task receives.
"""

import asyncio
import logging
from typing import Dict, Type

from guardian.chain.api import RpcAcalaApi, RpcLaminarApi, RpcSubstrateApi
from guardian.chain.rpc import RpcClient
from guardian.config import AcalaGuardianConfig, LaminarGuardianConfig, SubstrateGuardianConfig
from guardian.guardians.base import Guardian
from guardian.tasks import AccountBalanceTask, EventsTask, LiquidityPoolTask, LoanPositionTask
from guardian.tasks.base import Task


logger = logging.getLogger(__name__)


class SubstrateGuardian(Guardian):
    """Guardian for any substrate node: events and balances."""

    config_model = SubstrateGuardianConfig
    api_class: Type[RpcSubstrateApi] = RpcSubstrateApi

    def tasks(self) -> Dict[str, Type[Task]]:
        return {
            "system.events": EventsTask,
            "account.balance": AccountBalanceTask,
        }

    async def setup(self, config: SubstrateGuardianConfig) -> RpcSubstrateApi:
        client = RpcClient(config.endpoints, request_timeout=config.request_timeout)
        try:
            await client.connect()
        except (asyncio.CancelledError, Exception):
            await client.close()
            raise
        logger.info(
            f"[{self.guardian_id}] Connected to {config.network} "
            f"({client.endpoint}, confirmation={config.confirmation.value})"
        )
        return self.api_class(client, config.confirmation)


class LaminarGuardian(SubstrateGuardian):
    """Laminar network: synthetic liquidity pools."""

    config_model = LaminarGuardianConfig
    api_class = RpcLaminarApi

    def tasks(self) -> Dict[str, Type[Task]]:
        return {
            **super().tasks(),
            "synthetic.liquidityPool": LiquidityPoolTask,
        }


class AcalaGuardian(SubstrateGuardian):
    """Acala network: collateralized loans."""

    config_model = AcalaGuardianConfig
    api_class = RpcAcalaApi

    def tasks(self) -> Dict[str, Type[Task]]:
        return {
            **super().tasks(),
            "loans.position": LoanPositionTask,
        }
