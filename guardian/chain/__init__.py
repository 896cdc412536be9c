"""
Chain package - Node transport and connection contexts.
"""

from guardian.chain.api import (
    AcalaApi,
    LaminarApi,
    RpcAcalaApi,
    RpcLaminarApi,
    RpcMethods,
    RpcSubstrateApi,
    SubstrateApi,
)
from guardian.chain.rpc import RpcClient


__all__ = [
    "AcalaApi",
    "LaminarApi",
    "RpcAcalaApi",
    "RpcClient",
    "RpcLaminarApi",
    "RpcMethods",
    "RpcSubstrateApi",
    "SubstrateApi",
]
