"""
Tasks package - Computations a monitor can run.
"""

from guardian.tasks.acala.loans import LoanPositionTask
from guardian.tasks.base import Task, TaskArguments
from guardian.tasks.laminar.liquidity_pool import LiquidityPoolTask
from guardian.tasks.substrate.balances import AccountBalanceTask
from guardian.tasks.substrate.events import EventsTask


__all__ = [
    "AccountBalanceTask",
    "EventsTask",
    "LiquidityPoolTask",
    "LoanPositionTask",
    "Task",
    "TaskArguments",
]
