"""
Guardian Data Models - Chain state values and emitted records.

Chain state models mirror what the connection context delivers.
Record models are what tasks emit to actions; every field is a
plain JSON-friendly value so records can be posted as-is.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class GuardianState(Enum):
    """Lifecycle states of a guardian instance."""
    CREATED = "created"
    SETTING_UP = "setting_up"
    READY = "ready"
    RUNNING = "running"
    STOPPED = "stopped"


class Confirmation(Enum):
    """Which chain head storage subscriptions follow."""
    FINALIZE = "finalize"
    NEW_HEAD = "new_head"


# ─────────────────────────────────────────────────────────────
# Chain State
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PoolOption:
    """Per-currency option of a liquidity pool."""
    currency_id: str
    ask_spread: Optional[str] = None
    bid_spread: Optional[str] = None
    additional_collateral_ratio: Optional[str] = None
    synthetic_enabled: bool = False


@dataclass(frozen=True)
class PoolInfo:
    """Liquidity pool metadata."""
    owner: str
    balance: str
    options: tuple[PoolOption, ...] = ()


@dataclass(frozen=True)
class SyntheticPosition:
    """Synthetic debt and collateral held by a pool for one currency."""
    synthetic: str = "0"
    collateral: str = "0"


@dataclass(frozen=True)
class SyntheticRatio:
    """Risk ratio parameters of a synthetic currency (permill, None = unset)."""
    extreme: Optional[str] = None
    liquidation: Optional[str] = None
    collateral: Optional[str] = None


@dataclass(frozen=True)
class LoanState:
    """Collateral and debit of a loan position."""
    debit: str = "0"
    collateral: str = "0"


@dataclass(frozen=True)
class ChainEvent:
    """Decoded chain event."""
    section: str
    method: str
    args: tuple[Any, ...] = ()
    block_hash: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.section}.{self.method}"


# ─────────────────────────────────────────────────────────────
# Emitted Records
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LiquidityPool:
    """
    Liquidity pool risk snapshot for one (pool, currency).

    Produced fresh on every recomputation.
    """
    pool_id: str
    currency_id: str
    owner: str
    liquidity: str
    ask_spread: Optional[str] = None
    bid_spread: Optional[str] = None
    additional_collateral_ratio: Optional[str] = None
    enabled: bool = False
    collateral_ratio: str = "0"
    synthetic_issuance: str = "0"
    collateral_balance: str = "0"
    is_safe: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "poolId": self.pool_id,
            "currencyId": self.currency_id,
            "owner": self.owner,
            "liquidity": self.liquidity,
            "askSpread": self.ask_spread,
            "bidSpread": self.bid_spread,
            "additionalCollateralRatio": self.additional_collateral_ratio,
            "enabled": self.enabled,
            "collateralRatio": self.collateral_ratio,
            "syntheticIssuance": self.synthetic_issuance,
            "collateralBalance": self.collateral_balance,
            "isSafe": self.is_safe,
        }


@dataclass(frozen=True)
class Event:
    """Chain event matched by an events monitor."""
    name: str
    args: tuple[Any, ...] = field(default_factory=tuple)
    block_hash: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "args": [str(arg) for arg in self.args],
            "blockHash": self.block_hash,
        }


@dataclass(frozen=True)
class Balance:
    """Free balance of an account in one currency."""
    account: str
    currency_id: str
    free: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "currencyId": self.currency_id,
            "free": self.free,
        }


@dataclass(frozen=True)
class LoanPosition:
    """Loan position risk snapshot for one (account, collateral currency)."""
    account: str
    currency_id: str
    debit_amount: str = "0"
    collateral_amount: str = "0"
    collateral_ratio: str = "0"

    def to_dict(self) -> dict[str, Any]:
        return {
            "account": self.account,
            "currencyId": self.currency_id,
            "debitAmount": self.debit_amount,
            "collateralAmount": self.collateral_amount,
            "collateralRatio": self.collateral_ratio,
        }
