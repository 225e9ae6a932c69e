"""
Deploy decision audit log.

Insert-only records of gate decisions and the overrides applied to them.
"""

from slogate.policies.audit import DeployDecision, DeployOverride
from slogate.policies.repository import DecisionRepository

__all__ = [
    "DecisionRepository",
    "DeployDecision",
    "DeployOverride",
]
