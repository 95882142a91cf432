"""
Chapter outline models - the per-chapter plan produced before any full content.

An outline scopes every later stage of a chapter: the room graph is built
from its locations, quests and enemies fan out from its summaries.
"""

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from worldgen.models.config import CamelModel


class OutlineModel(CamelModel):
    """Outline documents keep whatever extra keys the model produced"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class LocationSummary(OutlineModel):
    location_id: str = ""
    location_name: str = ""
    location_type: str = ""         # hub|exploration|dungeon|boss|transition
    description: str = ""
    always_visible: bool = False
    connected_to: list[str] = Field(default_factory=list)


class QuestSummary(OutlineModel):
    quest_id: str = ""
    quest_name: str = ""
    description: str = ""
    quest_giver: str = ""
    task_location: str = ""
    difficulty: int = 1


class NPCSummary(OutlineModel):
    npc_id: str = ""
    npc_name: str = ""
    role: str = ""                  # quest_giver|merchant|mentor|antagonist|citizen
    personality: str = ""
    location_id: str = ""


class EnemySummary(OutlineModel):
    enemy_id: str = ""
    enemy_name: str = ""
    enemy_type: str = ""
    challenge_rating: int = 1
    description: str = ""


class ChapterOutline(OutlineModel):
    """Summary of one chapter's content"""

    chapter_id: str = ""
    chapter_name: str = ""
    chapter_description: str = ""
    chapter_intro: str = ""
    hub_location_id: str = ""
    entry_location_id: str = ""
    exit_location_id: str = ""
    locations: list[LocationSummary] = Field(default_factory=list)
    main_quests: list[QuestSummary] = Field(default_factory=list)
    side_quests: list[QuestSummary] = Field(default_factory=list)
    key_npcs: list[NPCSummary] = Field(default_factory=list, alias="keyNPCs")
    enemies: list[EnemySummary] = Field(default_factory=list)

    @property
    def location_ids(self) -> list[str]:
        return [loc.location_id for loc in self.locations if loc.location_id]

    @property
    def main_quest_ids(self) -> list[str]:
        return [q.quest_id for q in self.main_quests if q.quest_id]

    @property
    def npc_ids(self) -> list[str]:
        return [npc.npc_id for npc in self.key_npcs if npc.npc_id]

    def all_quests(self) -> list[tuple[QuestSummary, bool]]:
        """Quest summaries paired with an is-main flag, main quests first."""
        return [(q, True) for q in self.main_quests] + [(q, False) for q in self.side_quests]

    def find_npc(self, npc_id: str) -> NPCSummary | None:
        for npc in self.key_npcs:
            if npc.npc_id == npc_id:
                return npc
        return None

    def find_enemy(self, enemy_id: str) -> EnemySummary | None:
        for enemy in self.enemies:
            if enemy.enemy_id == enemy_id:
                return enemy
        return None
