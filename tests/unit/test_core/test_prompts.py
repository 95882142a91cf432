"""Unit tests for prompt builders.

Tests cover:
- Determinism (same inputs, same text)
- World context in the system prompt
- Kind dispatch for room prompts
- Room prompt exit lists and kind-specific skeletons
- Quest prompts listing valid ids
- CR-derived enemy stat guidelines
"""

import json

import pytest

from worldgen.core import prompts
from worldgen.models.artifacts import ChapterArtifact
from worldgen.models.config import GenerationSettings
from worldgen.models.graph import RoomGraph
from worldgen.models.outline import ChapterOutline


def output_skeleton(prompt: str) -> dict:
    """The JSON skeleton rendered after the OUTPUT FORMAT header."""
    return json.loads(prompt.split("=== OUTPUT FORMAT ===", 1)[1])


class TestPrompts:
    """Tests for prompt builders."""

    @pytest.fixture
    def outline(self, chapter_one_documents) -> ChapterOutline:
        return ChapterOutline.model_validate(chapter_one_documents["outline"])

    @pytest.fixture
    def graph(self, chapter_one_documents) -> RoomGraph:
        return RoomGraph.model_validate(chapter_one_documents["graph"])

    @pytest.fixture
    def chapter(self) -> ChapterArtifact:
        chapter = ChapterArtifact(chapter_id="chapter_1_ashen_gate", chapter_name="The Ashen Gate", chapter_number=1)
        chapter.calculate_difficulty()
        return chapter

    def test_system_prompt_carries_brief(self, sample_brief) -> None:
        """The world brief is embedded in the system prompt."""
        text = prompts.system_prompt(sample_brief)

        assert "World Name: Ashen Reach" in text
        assert "Major Factions: Beacon Wardens, Cinder Court" in text
        assert "Output ONLY valid JSON" in text

    def test_outline_prompt_is_deterministic(self) -> None:
        """Same inputs produce identical prompts."""
        settings = GenerationSettings(locations_per_chapter=10)

        first = prompts.chapter_outline_prompt(2, settings)
        second = prompts.chapter_outline_prompt(2, settings)

        assert first == second
        assert first.startswith("Generate a detailed outline for Chapter 2.")
        assert "- 2 hub locations" in first
        assert "Base difficulty: 4" in first

    def test_outline_prompt_with_previous_chapter(self, chapter) -> None:
        """The previous chapter is summarized for continuity."""
        chapter.exit_location_id = "ruined_watchtower"

        text = prompts.chapter_outline_prompt(2, GenerationSettings(), chapter)

        assert "Previous Chapter: The Ashen Gate" in text
        assert "Exit Location: ruined_watchtower" in text

    def test_graph_prompt_lists_locations_and_budgets(self, outline) -> None:
        """The graph prompt names every location and the exit budgets."""
        text = prompts.room_graph_prompt(outline)

        assert "- gate_square: Gate Square (hub)" in text
        assert "- ash_wraith: Ash Wraith (CR 1)" in text
        assert "with 2-4 exits" in text
        assert output_skeleton(text)["chapterId"] == "chapter_1_ashen_gate"

    def test_crossroad_room(self, graph, chapter, outline) -> None:
        """Crossroad rooms get empty action/dialogue/npc lists and one exit per neighbour."""
        node = graph.get_room("gate_square")

        text = prompts.room_prompt(node, graph, chapter, outline)
        skeleton = output_skeleton(text)

        assert text.startswith("Generate a CROSSROAD (navigation) room JSON for: Gate Square")
        assert "Room ID: gate_square" in text
        assert skeleton["actions"] == [] and skeleton["dialogues"] == [] and skeleton["npcs"] == []
        assert [e["leads_to"] for e in skeleton["exits"]] == ["smithy", "ruined_watchtower"]

    def test_interaction_room_ids_match(self, graph, chapter, outline) -> None:
        """Interaction skeletons use the NPC id for both action_id and npc_name."""
        node = graph.get_room("smithy")

        skeleton = output_skeleton(prompts.room_prompt(node, graph, chapter, outline))

        assert [a["action_id"] for a in skeleton["actions"]] == ["old_smith"]
        assert [d["npc_name"] for d in skeleton["dialogues"]] == ["old_smith"]
        assert skeleton["room_type"] == "interaction"

    def test_combat_room_exits(self, graph, chapter, outline) -> None:
        """The first combat exit is open, later ones need the defeat flag."""
        graph.get_room("ruined_watchtower").connects_to = ["gate_square", "smithy"]
        node = graph.get_room("ruined_watchtower")

        skeleton = output_skeleton(prompts.room_prompt(node, graph, chapter, outline))

        assert skeleton["combat"]["enemyId"] == "ash_wraith"
        assert skeleton["exits"][0]["conditions"] == []
        assert skeleton["exits"][1]["conditions"] == ["ash_wraith_defeated"]

    def test_exits_skip_unknown_rooms(self, graph, chapter) -> None:
        """Edges to rooms outside the graph are not offered as exits."""
        node = graph.get_room("gate_square")
        node.connects_to = ["smithy", "nowhere"]

        text = prompts.crossroad_room_prompt(node, graph, chapter)

        assert "nowhere" not in text

    def test_quest_prompt_lists_valid_ids(self, outline, graph, chapter) -> None:
        """Quest prompts list rooms, NPCs and enemies the quest may reference."""
        summary = outline.main_quests[0]

        text = prompts.quest_prompt(summary, chapter, True, graph, outline)
        skeleton = output_skeleton(text)

        assert text.startswith("Generate a complete quest JSON for: Light the Beacon")
        assert "MAIN QUEST" in text
        assert "- smithy: The Smithy" in text
        assert "- old_smith: Old Smith" in text
        assert "- ash_wraith: Ash Wraith" in text
        assert skeleton["questType"] == "Main"
        assert skeleton["questId"] == "light_the_beacon"

    def test_side_quest_type(self, outline, chapter) -> None:
        """Side quests are marked Side."""
        skeleton = output_skeleton(prompts.quest_prompt(outline.main_quests[0], chapter, False))

        assert skeleton["questType"] == "Side"

    @pytest.mark.parametrize("cr, hp, ac, damage", [(1, 35, 9, 8), (4, 80, 12, 17)])
    def test_enemy_stats(self, cr, hp, ac, damage) -> None:
        """Stats follow HP 20+15CR, AC 8+CR, damage 5+3CR."""
        stats = prompts.enemy_stats(cr)

        assert (stats["hp"], stats["ac"], stats["damage"]) == (hp, ac, damage)

    def test_enemy_prompt(self, outline, chapter) -> None:
        """Enemy prompts carry the CR guidelines and the chapter band."""
        text = prompts.enemy_prompt(outline.enemies[0], chapter)

        assert text.startswith("Generate a complete enemy JSON for: Ash Wraith")
        assert "- HP: ~35" in text
        assert "Chapter CR range: 1-3" in text
        assert output_skeleton(text)["maxHitPoints"] == 35

    def test_item_prompt(self, chapter) -> None:
        """Item prompts name the item and who uses it."""
        text = prompts.item_prompt("beacon_ember", chapter, "quest 'Light the Beacon' (CollectItem)")

        assert "ID: beacon_ember" in text
        assert "Used by: quest 'Light the Beacon' (CollectItem)" in text
        assert output_skeleton(text)["itemId"] == "beacon_ember"
