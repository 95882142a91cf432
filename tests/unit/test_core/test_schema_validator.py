"""Unit tests for the schema validator.

Tests cover:
- Markdown fence stripping and parse failures
- Interaction rooms: action/dialogue id set equality in both directions
- Crossroad and combat room structure
- Room id / kind mismatches and unknown exits
- Dialogue next_step ranges
- Quest, enemy, item, outline and room graph rules
- Kind dispatch
"""

import json

import pytest

from worldgen.core.schema_validator import (
    clean_json,
    validate,
    validate_enemy,
    validate_item,
    validate_outline,
    validate_quest,
    validate_room,
    validate_room_graph,
)
from worldgen.models.artifacts import Quest, Room
from worldgen.models.graph import RoomKind


class TestParsing:
    """Tests for raw response parsing."""

    def test_clean_json_strips_fences(self) -> None:
        """json-tagged and bare fences are removed."""
        assert clean_json('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert clean_json('```\n{"a": 1}\n```') == '{"a": 1}'
        assert clean_json('  {"a": 1}  ') == '{"a": 1}'
        assert clean_json(None) == ""

    def test_fenced_response_parses(self, chapter_one_documents) -> None:
        """Fenced documents are accepted."""
        raw = "```json\n" + json.dumps(chapter_one_documents["quest"]) + "\n```"

        result = validate_quest(raw)

        assert result.parse_failed is False
        assert isinstance(result.parsed, Quest)

    def test_malformed_json(self) -> None:
        """Malformed text is a parse failure."""
        result = validate_room('{"room_id": "hall", ')

        assert result.parse_failed is True
        assert result.errors[0].startswith("JSON parse error")

    def test_empty_response(self) -> None:
        """An empty response is a parse failure."""
        result = validate_item("   ")

        assert result.parse_failed is True
        assert result.errors == ["JSON is empty"]

    def test_non_object(self) -> None:
        """A JSON array is not a document."""
        result = validate_enemy("[1, 2, 3]")

        assert result.parse_failed is True

    def test_nested_fence_is_reported(self) -> None:
        """Fences the cleaner could not remove are called out."""
        result = validate_room('Here you go:\n```json\n{"room_id": "hall"}\n```')

        assert result.parse_failed is True
        assert any("markdown code blocks" in e for e in result.errors)


class TestRoomValidation:
    """Tests for validate_room."""

    def test_valid_interaction_room(self, chapter_one_documents) -> None:
        """The canned smithy is valid."""
        result = validate_room(
            chapter_one_documents["smithy"],
            known_ids={"gate_square", "smithy"},
            expected_kind=RoomKind.INTERACTION,
            expected_id="smithy",
        )

        assert result.is_valid, result.errors
        assert isinstance(result.parsed, Room)

    def test_action_without_dialogue(self, chapter_one_documents) -> None:
        """An action with no dialogue of the same id is an error."""
        room = chapter_one_documents["smithy"]
        room["actions"].append({"action_id": "apprentice", "action_description": "Talk"})

        result = validate_room(room, expected_kind="interaction")

        assert not result.is_valid
        assert any("action_id 'apprentice' has no matching dialogue" in e for e in result.errors)

    def test_dialogue_without_action(self, chapter_one_documents) -> None:
        """A dialogue no action opens is an error too (set equality, not subset)."""
        room = chapter_one_documents["smithy"]
        room["dialogues"].append({
            "npc_name": "apprentice",
            "dialogues": [{"message": "Hi", "responses": [{"text": "Bye", "next_step": -1}]}],
        })

        result = validate_room(room, expected_kind="interaction")

        assert not result.is_valid
        assert any("dialogue npc_name 'apprentice' has no matching action_id" in e for e in result.errors)

    def test_invalid_next_step(self, chapter_one_documents) -> None:
        """next_step must be -1 or a step index."""
        room = chapter_one_documents["smithy"]
        room["dialogues"][0]["dialogues"][0]["responses"][0]["next_step"] = 7

        result = validate_room(room)

        assert any("Invalid next_step 7" in e for e in result.errors)

    def test_crossroad_with_npcs(self, chapter_one_documents) -> None:
        """Crossroad rooms must not carry NPCs, actions, dialogues or combat."""
        room = chapter_one_documents["gate_square"]
        room["npcs"] = ["old_smith"]
        room["combat"] = {"enemyId": "ash_wraith"}

        result = validate_room(room, expected_kind=RoomKind.CROSSROAD)

        assert "Crossroad room must have an empty npcs list" in result.errors
        assert "Crossroad room must not have combat" in result.errors

    def test_combat_without_enemy(self, chapter_one_documents) -> None:
        """Combat rooms need combat.enemyId."""
        room = chapter_one_documents["ruined_watchtower"]
        room["combat"] = None

        result = validate_room(room, expected_kind=RoomKind.COMBAT)

        assert "Combat room must reference an enemy in combat.enemyId" in result.errors

    def test_room_id_mismatch(self, chapter_one_documents) -> None:
        """A room answering for another id is an error, but the data is kept."""
        result = validate_room(chapter_one_documents["smithy"], expected_id="forge")

        assert any("does not match requested room 'forge'" in e for e in result.errors)
        assert result.data is not None

    def test_kind_mismatch(self, chapter_one_documents) -> None:
        """room_type must match the graph's kind."""
        result = validate_room(chapter_one_documents["smithy"], expected_kind=RoomKind.COMBAT)

        assert any("does not match graph kind 'combat'" in e for e in result.errors)

    def test_unknown_exit(self, chapter_one_documents) -> None:
        """Exits must lead to known rooms."""
        result = validate_room(chapter_one_documents["gate_square"], known_ids={"gate_square", "smithy"})

        assert any("leads to unknown room: 'ruined_watchtower'" in e for e in result.errors)

    def test_non_snake_id_is_warning(self, chapter_one_documents) -> None:
        """Non-snake_case ids only warn."""
        room = chapter_one_documents["gate_square"]
        room["room_id"] = "GateSquare"

        result = validate_room(room)

        assert result.is_valid
        assert any("not snake_case" in w for w in result.warnings)

    def test_wrong_field_type_keeps_data(self) -> None:
        """Shape errors are reported and the raw document is kept."""
        result = validate_room({"room_id": "hall", "exits": "north"})

        assert not result.is_valid
        assert result.parsed is None
        assert result.data == {"room_id": "hall", "exits": "north"}


class TestArtifactValidation:
    """Tests for quest, enemy and item validation."""

    def test_valid_documents(self, chapter_one_documents) -> None:
        """The canned quest, enemy and item are valid."""
        assert validate_quest(chapter_one_documents["quest"]).is_valid
        assert validate_enemy(chapter_one_documents["enemy"]).is_valid
        assert validate_item(chapter_one_documents["item"]).is_valid

    def test_quest_needs_objectives(self, chapter_one_documents) -> None:
        """A quest without objectives is an error."""
        quest = chapter_one_documents["quest"]
        quest["objectives"] = []

        assert "At least one objective is required" in validate_quest(quest).errors

    def test_quest_objective_type(self, chapter_one_documents) -> None:
        """Objective types are checked against the enumeration."""
        quest = chapter_one_documents["quest"]
        quest["objectives"][0]["type"] = "Dance"

        assert any("invalid type: Dance" in e for e in validate_quest(quest).errors)

    def test_enemy_damage_range(self, chapter_one_documents) -> None:
        """damageMax below damageMin is an error."""
        enemy = chapter_one_documents["enemy"]
        enemy["attacks"][0]["damageMax"] = 1

        assert any("damageMax < damageMin" in e for e in validate_enemy(enemy).errors)

    def test_item_effect_range(self, chapter_one_documents) -> None:
        """effectType and target are range-checked."""
        item = chapter_one_documents["item"]
        item["effectType"] = 9
        item["target"] = -1

        errors = validate_item(item).errors

        assert "effectType 9 is out of range (0-4)" in errors
        assert "target -1 is out of range (0-3)" in errors


class TestPlanValidation:
    """Tests for outline and room graph validation."""

    def test_valid_outline_and_graph(self, chapter_one_documents) -> None:
        """The canned outline and graph are valid."""
        assert validate_outline(chapter_one_documents["outline"]).is_valid
        assert validate_room_graph(chapter_one_documents["graph"]).is_valid

    def test_outline_needs_main_quest(self, chapter_one_documents) -> None:
        """An outline without main quests cannot drive progression."""
        outline = chapter_one_documents["outline"]
        outline["mainQuests"] = []

        assert "At least one main quest is required" in validate_outline(outline).errors

    def test_graph_unknown_connection(self, chapter_one_documents) -> None:
        """Connections must name rooms of the graph."""
        graph = chapter_one_documents["graph"]
        graph["rooms"][1]["connectsTo"].append("cellar")

        result = validate_room_graph(graph)

        assert "Room 'smithy' connects to non-existent room 'cellar'" in result.errors

    def test_graph_hub_not_found(self, chapter_one_documents) -> None:
        """hubRoomId must be one of the rooms."""
        graph = chapter_one_documents["graph"]
        graph["hubRoomId"] = "market"

        assert "hubRoomId 'market' not found in room list" in validate_room_graph(graph).errors


class TestDispatch:
    """Tests for validate()."""

    def test_dispatch_by_kind(self, chapter_one_documents) -> None:
        """validate() picks the validator for the kind."""
        result = validate("enemy", chapter_one_documents["enemy"])

        assert result.is_valid

    def test_room_options(self, chapter_one_documents) -> None:
        """Room options are forwarded."""
        result = validate("room", chapter_one_documents["smithy"], expected_id="forge")

        assert not result.is_valid

    def test_unknown_kind(self) -> None:
        """Unknown kinds are rejected."""
        with pytest.raises(ValueError):
            validate("spaceship", "{}")
