"""
Data models for the world generation pipeline
"""

from worldgen.models.artifacts import (
    ArtifactKind,
    ChapterArtifact,
    Dialogue,
    DialogueResponse,
    DialogueStep,
    Enemy,
    EnemyAttack,
    Item,
    LootEntry,
    ObjectiveType,
    Quest,
    QuestObjective,
    QuestReward,
    QuestType,
    Room,
    RoomAction,
    RoomCombat,
    RoomExit,
)
from worldgen.models.config import (
    GenerationSettings,
    ProviderConfig,
    WorldBrief,
    WorldGenerationConfig,
)
from worldgen.models.graph import EXIT_BUDGETS, RoomGraph, RoomKind, RoomNode
from worldgen.models.outline import (
    ChapterOutline,
    EnemySummary,
    LocationSummary,
    NPCSummary,
    QuestSummary,
)
from worldgen.models.report import (
    ErrorKind,
    GenerationReport,
    IntegrityReport,
    ReportEntry,
    Severity,
    ValidationResult,
)

__all__ = [
    # Config
    "WorldBrief",
    "GenerationSettings",
    "ProviderConfig",
    "WorldGenerationConfig",
    # Outline
    "ChapterOutline",
    "LocationSummary",
    "QuestSummary",
    "NPCSummary",
    "EnemySummary",
    # Graph
    "RoomKind",
    "RoomNode",
    "RoomGraph",
    "EXIT_BUDGETS",
    # Artifacts
    "ArtifactKind",
    "Room",
    "RoomAction",
    "RoomExit",
    "RoomCombat",
    "Dialogue",
    "DialogueStep",
    "DialogueResponse",
    "Quest",
    "QuestType",
    "QuestObjective",
    "QuestReward",
    "ObjectiveType",
    "Enemy",
    "EnemyAttack",
    "LootEntry",
    "Item",
    "ChapterArtifact",
    # Reports
    "ErrorKind",
    "Severity",
    "ValidationResult",
    "IntegrityReport",
    "ReportEntry",
    "GenerationReport",
]
