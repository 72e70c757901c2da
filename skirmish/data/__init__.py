"""
Static Data - Read-only rule tables consumed by the engine.
"""

from .static_data import (
    StaticData,
    DeploymentCardStats,
    AttackProfile,
    CommandCardData,
    MapGeometry,
    MissionRules,
)

__all__ = [
    "StaticData",
    "DeploymentCardStats",
    "AttackProfile",
    "CommandCardData",
    "MapGeometry",
    "MissionRules",
]
