"""
Generated artifact models - rooms, quests, enemies, items and chapters.

These are the typed parse targets for model output. Field names follow the
documents the game runtime reads: rooms are snake_case, everything else is
camelCase. Every model tolerates extra keys so the persisted document keeps
everything the model produced.

Required-field and range rules live in worldgen.core.schema_validator, not
here, so that a document with cosmetic defects still parses and can be kept.
"""

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from worldgen.models.config import CamelModel

# All generated ids are snake_case
ID_PATTERN = re.compile(r"^[a-z0-9]+(_[a-z0-9]+)*$")

# next_step value that ends a conversation
END_DIALOGUE = -1


class ArtifactKind(str, Enum):
    """Kinds of document the pipeline produces"""
    OUTLINE = "outline"
    GRAPH = "graph"
    ROOM = "room"
    QUEST = "quest"
    ENEMY = "enemy"
    ITEM = "item"
    CHAPTER = "chapter"


class ObjectiveType(str, Enum):
    GO_TO_ROOM = "GoToRoom"
    TALK_TO_NPC = "TalkToNPC"
    COLLECT_ITEM = "CollectItem"
    DELIVER_ITEM = "DeliverItem"
    DEFEAT_ENEMY = "DefeatEnemy"
    DEFEAT_COUNT = "DefeatCount"
    SET_FLAG = "SetFlag"
    USE_ITEM = "UseItem"
    CUSTOM = "Custom"

    @classmethod
    def values(cls) -> list[str]:
        return [t.value for t in cls]


# Objective types grouped by what their targetId points at
ROOM_OBJECTIVES = {ObjectiveType.GO_TO_ROOM.value}
NPC_OBJECTIVES = {ObjectiveType.TALK_TO_NPC.value}
ENEMY_OBJECTIVES = {ObjectiveType.DEFEAT_ENEMY.value, ObjectiveType.DEFEAT_COUNT.value}
ITEM_OBJECTIVES = {
    ObjectiveType.COLLECT_ITEM.value,
    ObjectiveType.DELIVER_ITEM.value,
    ObjectiveType.USE_ITEM.value,
}


class QuestType(str, Enum):
    MAIN = "Main"
    SIDE = "Side"


class ItemCategory(str, Enum):
    WEAPON = "weapon"
    ARMOR = "armor"
    CONSUMABLE = "consumable"
    KEY = "key"
    QUEST = "quest"


class EffectType(int, Enum):
    DAMAGE = 0
    HEAL = 1
    BLESS = 2
    CURE_POISON = 3
    OPEN = 4


class EffectTarget(int, Enum):
    NPC = 0
    SELF = 1
    LOCK = 2
    NONE = 3


# =============================================================================
# Rooms (snake_case wire format)
# =============================================================================

class RoomDocument(BaseModel):
    model_config = ConfigDict(extra="allow")


class RoomAction(RoomDocument):
    action_id: str = ""
    action_description: str = ""


class DialogueResponse(RoomDocument):
    text: str = ""
    next_step: int = -1


class DialogueStep(RoomDocument):
    message: str = ""
    responses: list[DialogueResponse] = Field(default_factory=list)


class Dialogue(RoomDocument):
    """A dialogue tree; npc_name must equal the action_id that opens it"""
    npc_name: str = ""
    dialogue_image: str = ""
    dialogues: list[DialogueStep] = Field(default_factory=list)


class RoomExit(RoomDocument):
    exit_name: str = ""
    leads_to: str = ""
    conditions: list[str] = Field(default_factory=list)
    conditions_not: list[str] = Field(default_factory=list)


class RoomCombat(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    enemy_id: str = Field(default="", alias="enemyId")
    is_boss: bool = Field(default=False, alias="isBoss")
    defeat_flag: str = Field(default="", alias="defeatFlag")


class Room(RoomDocument):
    """Full content for one room"""
    room_id: str = ""
    room_type: str = ""
    description: str = ""
    npcs: list[str] = Field(default_factory=list)
    items: list[str] = Field(default_factory=list)
    actions: list[RoomAction] = Field(default_factory=list)
    dialogues: list[Dialogue] = Field(default_factory=list)
    exits: list[RoomExit] = Field(default_factory=list)
    combat: RoomCombat | None = None
    events: list = Field(default_factory=list)

    @property
    def action_ids(self) -> set[str]:
        return {action.action_id for action in self.actions}

    @property
    def speaker_ids(self) -> set[str]:
        return {dialogue.npc_name for dialogue in self.dialogues}


# =============================================================================
# Quests, enemies, items (camelCase wire format)
# =============================================================================

class ArtifactDocument(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class QuestObjective(ArtifactDocument):
    objective_id: str = ""
    description: str = ""
    type: str = ""
    target_id: str = ""
    target_count: int = 1
    is_optional: bool = False


class FlagReward(ArtifactDocument):
    flag_name: str = ""
    flag_value: bool = True


class QuestReward(ArtifactDocument):
    experience_points: int = 0
    gold: int = 0
    item_ids: list[str] = Field(default_factory=list)
    flags_to_set: list[FlagReward] = Field(default_factory=list)


class Quest(ArtifactDocument):
    quest_id: str = ""
    quest_name: str = ""
    quest_description: str = ""
    quest_giver: str = ""
    quest_giver_location: str = ""
    quest_type: str = QuestType.SIDE.value
    chapter_number: int = 1
    difficulty: int = 1
    prerequisite_quests: list[str] = Field(default_factory=list)
    prerequisite_flags: list[str] = Field(default_factory=list)
    objectives: list[QuestObjective] = Field(default_factory=list)
    reveals_on_accept: list[str] = Field(default_factory=list)
    reveals_on_complete: list[str] = Field(default_factory=list)
    rewards: QuestReward | None = None
    state: str = "NotStarted"

    @property
    def is_main(self) -> bool:
        return self.quest_type == QuestType.MAIN.value


class EnemyAttack(ArtifactDocument):
    attack_name: str = ""
    attack_description: str = ""
    damage_min: int = 0
    damage_max: int = 0
    hit_bonus: int = 0


class LootEntry(ArtifactDocument):
    item_id: str = ""
    drop_chance: float = 0.0


class Enemy(ArtifactDocument):
    enemy_id: str = ""
    enemy_name: str = ""
    description: str = ""
    enemy_image: str = ""
    max_hit_points: int = 0
    current_hit_points: int = 0
    armor_class: int = 0
    experience_value: int = 0
    gold_drop: int = 0
    attacks: list[EnemyAttack] = Field(default_factory=list)
    loot_table: list[LootEntry] = Field(default_factory=list)


class Item(ArtifactDocument):
    item_id: str = ""
    short_description: str = ""
    description: str = ""
    usage_success: str = ""
    usage_fail: str = ""
    category: str = ItemCategory.QUEST.value
    effect_type: int = EffectType.DAMAGE.value
    effect_amount: int = 0
    target: int = EffectTarget.NONE.value
    stacking: bool = False
    max_stack: int = 1
    buy_price: int = 0
    sell_price: int = 0
    image: str = ""
    combat_usable: bool = False


# =============================================================================
# Chapters
# =============================================================================

class ChapterArtifact(ArtifactDocument):
    """
    Persisted record for one chapter.

    Built by the orchestrator once the chapter's sub-artifacts are known.
    Only the unlock/completion quest back-references are set afterwards.
    """

    chapter_id: str
    chapter_name: str = ""
    chapter_number: int = Field(ge=1)
    chapter_description: str = ""

    # Progression
    unlock_quest_id: str | None = None
    completion_quest_id: str | None = None
    unlock_flags: list[str] = Field(default_factory=list)

    # Difficulty band, derived from chapter_number
    base_difficulty: int = 0
    min_enemy_cr: int = Field(default=0, alias="minEnemyCR")
    max_enemy_cr: int = Field(default=0, alias="maxEnemyCR")

    # Contents
    location_ids: list[str] = Field(default_factory=list)
    quest_ids: list[str] = Field(default_factory=list)
    main_quest_ids: list[str] = Field(default_factory=list)
    enemy_ids: list[str] = Field(default_factory=list)
    item_ids: list[str] = Field(default_factory=list)
    npc_ids: list[str] = Field(default_factory=list)

    # Narrative
    chapter_intro: str = ""
    chapter_outro: str = ""
    main_quest_summary: str = ""

    # Map
    map_id: str = ""
    hub_location_id: str = ""
    entry_location_id: str = ""
    exit_location_id: str = ""

    # Generation metadata
    generated_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    is_generated: bool = True
    is_validated: bool = False
    validation_errors: list[str] = Field(default_factory=list)

    def calculate_difficulty(self) -> None:
        """Set the difficulty band from the chapter number."""
        n = self.chapter_number
        self.base_difficulty = n * 2
        self.min_enemy_cr = max(1, n - 1)
        self.max_enemy_cr = n + 2
