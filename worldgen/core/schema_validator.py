"""
Schema Validator - checks one model response for one artifact kind

Each validate_* function takes the raw response text (or an already-decoded
dict, e.g. a document loaded back from the content store) and returns a
ValidationResult. Nothing here raises on bad input:

- parse failures (not JSON, or not a JSON object) leave result.data as None
- shape failures (pydantic could not build the typed model) are errors, but
  result.data is kept so the document can still be persisted
- rule failures (missing ids, bad ranges, dialogue mismatches) are errors
  or warnings depending on whether they break the game runtime
"""

import json
import logging
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from worldgen.models.artifacts import (
    END_DIALOGUE,
    ID_PATTERN,
    ArtifactKind,
    Dialogue,
    Enemy,
    Item,
    ObjectiveType,
    Quest,
    QuestType,
    Room,
)
from worldgen.models.graph import RoomGraph, RoomKind
from worldgen.models.outline import ChapterOutline
from worldgen.models.report import ValidationResult

logger = logging.getLogger(__name__)

FENCE = "```"


def clean_json(raw: str | None) -> str:
    """Strip surrounding whitespace and one layer of markdown code fencing."""
    if not raw:
        return ""

    cleaned = raw.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith(FENCE):
        cleaned = cleaned[3:]

    if cleaned.endswith(FENCE):
        cleaned = cleaned[:-3]

    return cleaned.strip()


def _parse(raw: str | dict, result: ValidationResult) -> dict | None:
    if isinstance(raw, dict):
        result.data = raw
        return raw

    cleaned = clean_json(raw)
    if not cleaned:
        result.add_error("JSON is empty")
        return None

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        result.add_error(f"JSON parse error: {e}")
        if FENCE in cleaned:
            result.add_error("JSON contains markdown code blocks - LLM should output raw JSON only")
        return None

    if not isinstance(data, dict):
        result.add_error(f"JSON parse error: expected an object, got {type(data).__name__}")
        return None

    result.data = data
    return data


def _build(model: type[BaseModel], data: dict, result: ValidationResult) -> Any:
    try:
        parsed = model.model_validate(data)
    except ValidationError as e:
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"]) or model.__name__
            result.add_error(f"{location}: {err['msg']}")
        return None
    result.parsed = parsed
    return parsed


def _check_id(result: ValidationResult, field_name: str, value: str):
    if value and not ID_PATTERN.match(value):
        result.add_warning(f"{field_name} '{value}' is not snake_case")


# =============================================================================
# Rooms
# =============================================================================

def _validate_dialogue(dialogue: Dialogue, result: ValidationResult):
    if not dialogue.npc_name:
        result.add_warning("Dialogue missing npc_name")

    if not dialogue.dialogues:
        result.add_warning(f"NPC '{dialogue.npc_name}' has no dialogue steps")
        return

    step_count = len(dialogue.dialogues)
    for i, step in enumerate(dialogue.dialogues):
        if not step.message:
            result.add_warning(f"Dialogue step {i} has empty message")
        if not step.responses:
            result.add_warning(f"Dialogue step {i} has no responses")
        for response in step.responses:
            if response.next_step != END_DIALOGUE and not 0 <= response.next_step < step_count:
                result.add_error(
                    f"Invalid next_step {response.next_step} in dialogue "
                    f"'{dialogue.npc_name}' (max: {step_count - 1})"
                )


def validate_room(
    raw: str | dict,
    known_ids: set[str] | None = None,
    expected_kind: RoomKind | str | None = None,
    expected_id: str | None = None,
) -> ValidationResult:
    """
    Validate room content.

    Args:
        raw: Model response text or decoded document
        known_ids: Every room id of the run; exits must resolve against it
        expected_kind: The kind the room graph assigned to this room
        expected_id: The room id that was requested
    """
    result = ValidationResult()
    data = _parse(raw, result)
    if data is None:
        return result

    room: Room | None = _build(Room, data, result)
    if room is None:
        return result

    if not room.room_id:
        result.add_error("room_id is required")
    else:
        _check_id(result, "room_id", room.room_id)
    if expected_id and room.room_id and room.room_id != expected_id:
        result.add_error(f"room_id '{room.room_id}' does not match requested room '{expected_id}'")

    if not room.description:
        result.add_error("description is required")

    kind = None
    if room.room_type:
        if room.room_type in RoomKind.values():
            kind = RoomKind(room.room_type)
        else:
            result.add_warning(
                f"Unknown room_type: '{room.room_type}' (expected: {', '.join(RoomKind.values())})"
            )

    if expected_kind is not None:
        expected = RoomKind(expected_kind)
        if room.room_type and room.room_type != expected.value:
            result.add_error(f"room_type '{room.room_type}' does not match graph kind '{expected.value}'")
        kind = expected

    # Exits
    if not room.exits:
        result.add_warning("Room has no exits defined")
    for room_exit in room.exits:
        if not room_exit.leads_to:
            result.add_error(f"Exit '{room_exit.exit_name}' missing leads_to")
        elif known_ids is not None and room_exit.leads_to not in known_ids:
            result.add_error(f"Exit '{room_exit.exit_name}' leads to unknown room: '{room_exit.leads_to}'")

    for action in room.actions:
        if not action.action_id:
            result.add_warning("Action missing action_id")

    for dialogue in room.dialogues:
        _validate_dialogue(dialogue, result)

    # Kind-specific structure
    if kind == RoomKind.CROSSROAD:
        for field_name in ("actions", "dialogues", "npcs"):
            if getattr(room, field_name):
                result.add_error(f"Crossroad room must have an empty {field_name} list")
        if room.combat is not None:
            result.add_error("Crossroad room must not have combat")

    elif kind == RoomKind.INTERACTION:
        if not room.dialogues:
            result.add_warning("Interaction room has no dialogues")
        action_ids = {a for a in room.action_ids if a}
        speaker_ids = {s for s in room.speaker_ids if s}
        for action_id in sorted(action_ids - speaker_ids):
            result.add_error(
                f"action_id '{action_id}' has no matching dialogue npc_name. "
                "action_id must exactly equal npc_name"
            )
        for npc_name in sorted(speaker_ids - action_ids):
            result.add_error(
                f"dialogue npc_name '{npc_name}' has no matching action_id. "
                "The dialogue cannot be opened"
            )

    elif kind == RoomKind.COMBAT:
        if room.combat is None or not room.combat.enemy_id:
            result.add_error("Combat room must reference an enemy in combat.enemyId")
        if room.dialogues:
            result.add_warning("Combat room should not have dialogues")

    return result


# =============================================================================
# Quests, enemies, items
# =============================================================================

def validate_quest(raw: str | dict) -> ValidationResult:
    result = ValidationResult()
    data = _parse(raw, result)
    if data is None:
        return result

    quest: Quest | None = _build(Quest, data, result)
    if quest is None:
        return result

    if not quest.quest_id:
        result.add_error("questId is required")
    else:
        _check_id(result, "questId", quest.quest_id)
    if not quest.quest_name:
        result.add_error("questName is required")

    if quest.quest_type not in (QuestType.MAIN.value, QuestType.SIDE.value):
        result.add_warning(f"Unknown questType: '{quest.quest_type}' (expected: Main, Side)")

    if not quest.objectives:
        result.add_error("At least one objective is required")

    for i, objective in enumerate(quest.objectives):
        if not objective.objective_id:
            result.add_error(f"Objective {i} missing objectiveId")
        if not objective.description:
            result.add_warning(f"Objective {i} missing description")
        if not objective.target_id:
            result.add_error(f"Objective {i} missing targetId")
        if objective.type not in ObjectiveType.values():
            result.add_error(f"Objective {i} has invalid type: {objective.type}")
        if objective.target_count < 1:
            result.add_warning(f"Objective {i} has targetCount {objective.target_count}")

    if quest.rewards is None:
        result.add_warning("Quest has no rewards defined")

    return result


def validate_enemy(raw: str | dict) -> ValidationResult:
    result = ValidationResult()
    data = _parse(raw, result)
    if data is None:
        return result

    enemy: Enemy | None = _build(Enemy, data, result)
    if enemy is None:
        return result

    if not enemy.enemy_id:
        result.add_error("enemyId is required")
    else:
        _check_id(result, "enemyId", enemy.enemy_id)
    if not enemy.enemy_name:
        result.add_error("enemyName is required")
    if enemy.max_hit_points <= 0:
        result.add_error("maxHitPoints must be positive")
    if enemy.armor_class < 0:
        result.add_warning("armorClass is negative")

    if not enemy.attacks:
        result.add_warning("Enemy has no attacks defined")
    for attack in enemy.attacks:
        if not attack.attack_name:
            result.add_warning("Attack missing name")
        if attack.damage_max < attack.damage_min:
            result.add_error(f"Attack '{attack.attack_name}' has damageMax < damageMin")

    for entry in enemy.loot_table:
        if not 0.0 <= entry.drop_chance <= 1.0:
            result.add_warning(f"Loot '{entry.item_id}' has dropChance {entry.drop_chance} outside 0-1")

    return result


def validate_item(raw: str | dict) -> ValidationResult:
    result = ValidationResult()
    data = _parse(raw, result)
    if data is None:
        return result

    item: Item | None = _build(Item, data, result)
    if item is None:
        return result

    if not item.item_id:
        result.add_error("itemId is required")
    else:
        _check_id(result, "itemId", item.item_id)
    if not item.short_description:
        result.add_error("shortDescription is required")
    if item.buy_price < 0:
        result.add_warning("buyPrice is negative")
    if item.sell_price < 0:
        result.add_warning("sellPrice is negative")
    if item.stacking and item.max_stack <= 0:
        result.add_error("Stacking item must have maxStack > 0")
    if not 0 <= item.effect_type <= 4:
        result.add_error(f"effectType {item.effect_type} is out of range (0-4)")
    if not 0 <= item.target <= 3:
        result.add_error(f"target {item.target} is out of range (0-3)")

    return result


# =============================================================================
# Outline and room graph
# =============================================================================

def validate_outline(raw: str | dict) -> ValidationResult:
    result = ValidationResult()
    data = _parse(raw, result)
    if data is None:
        return result

    outline: ChapterOutline | None = _build(ChapterOutline, data, result)
    if outline is None:
        return result

    if not outline.chapter_id:
        result.add_error("chapterId is required")
    if not outline.chapter_name:
        result.add_error("chapterName is required")
    if not outline.locations:
        result.add_error("At least one location is required")
    if not outline.main_quests:
        result.add_error("At least one main quest is required")

    location_ids: set[str] = set()
    for loc in outline.locations:
        if not loc.location_id:
            result.add_error("Location missing locationId")
        elif loc.location_id in location_ids:
            result.add_error(f"Duplicate location ID: {loc.location_id}")
        else:
            location_ids.add(loc.location_id)

    for quest, _ in outline.all_quests():
        if not quest.quest_id:
            result.add_error(f"Quest '{quest.quest_name}' missing questId")
        if quest.task_location and quest.task_location not in location_ids:
            result.add_warning(f"Quest '{quest.quest_id}' references unknown location: {quest.task_location}")

    return result


def validate_room_graph(raw: str | dict) -> ValidationResult:
    result = ValidationResult()
    data = _parse(raw, result)
    if data is None:
        return result

    graph: RoomGraph | None = _build(RoomGraph, data, result)
    if graph is None:
        return result

    if not graph.chapter_id:
        result.add_error("chapterId is required")
    if not graph.rooms:
        result.add_error("Room graph has no rooms")
        return result

    room_ids = set(graph.room_ids)
    for field_name, value in (
        ("hubRoomId", graph.hub_room_id),
        ("entryRoomId", graph.entry_room_id),
        ("exitRoomId", graph.exit_room_id),
    ):
        if not value:
            result.add_warning(f"{field_name} is not set")
        elif value not in room_ids:
            result.add_error(f"{field_name} '{value}' not found in room list")

    seen: set[str] = set()
    for room in graph.rooms:
        if not room.room_id:
            result.add_error("Room has empty roomId")
            continue
        if room.room_id in seen:
            result.add_error(f"Duplicate room ID: {room.room_id}")
        seen.add(room.room_id)
        _check_id(result, "roomId", room.room_id)

        if not room.room_name:
            result.add_warning(f"Room '{room.room_id}' missing roomName")
        if room.kind is None:
            result.add_warning(f"Room '{room.room_id}' has unknown type: '{room.room_type}'")

        if not room.connects_to:
            result.add_warning(f"Room '{room.room_id}' has no connections (isolated room)")
        for target_id in room.connects_to:
            if target_id not in room_ids:
                result.add_error(f"Room '{room.room_id}' connects to non-existent room '{target_id}'")

        if room.kind == RoomKind.INTERACTION and not room.npcs:
            result.add_warning(f"Interaction room '{room.room_id}' has no NPCs defined")
        if room.kind == RoomKind.COMBAT and not room.enemy_id:
            result.add_warning(f"Combat room '{room.room_id}' has no enemyId defined")

    return result


_VALIDATORS: dict[ArtifactKind, Callable[..., ValidationResult]] = {
    ArtifactKind.ROOM: validate_room,
    ArtifactKind.QUEST: validate_quest,
    ArtifactKind.ENEMY: validate_enemy,
    ArtifactKind.ITEM: validate_item,
    ArtifactKind.OUTLINE: validate_outline,
    ArtifactKind.GRAPH: validate_room_graph,
}


def validate(kind: ArtifactKind | str, raw: str | dict, **options) -> ValidationResult:
    """
    Validate a response for any artifact kind.

    Extra keyword options (known_ids, expected_kind, expected_id) only apply
    to rooms and are ignored for every other kind.
    """
    kind = ArtifactKind(kind)
    validator = _VALIDATORS.get(kind)
    if validator is None:
        raise ValueError(f"No validator for artifact kind '{kind.value}'")

    if kind == ArtifactKind.ROOM:
        result = validator(raw, **options)
    else:
        result = validator(raw)

    if result.errors:
        logger.debug(f"{kind.value} validation: {len(result.errors)} errors, {len(result.warnings)} warnings")
    return result
