"""
Guardians package - Guardian lifecycle, network types and registry.
"""

from guardian.guardians.base import Guardian
from guardian.guardians.registry import (
    GuardianRegistry,
    get_default_registry,
    register_builtin_guardians,
)
from guardian.guardians.substrate import AcalaGuardian, LaminarGuardian, SubstrateGuardian


__all__ = [
    "AcalaGuardian",
    "Guardian",
    "GuardianRegistry",
    "LaminarGuardian",
    "SubstrateGuardian",
    "get_default_registry",
    "register_builtin_guardians",
]
