"""
Content Integrity Checker - cross-references across a whole generated world

Checks:
- Chapter sequencing: chapter numbers are exactly 1..N in order
- Chapter contents: locations, quests and main quests present and consistent
- Unlock chain: chapter N unlocks via a main quest of chapter N-1
- Location references: chapter rooms, hub, entry and exit exist, owned once
- Room references: combat encounters name a generated enemy
- Quest references: objective targets, reveals, giver location, prerequisites
- Prerequisite cycles: quest prerequisites form a DAG
- Progression: every chapter has a main quest the player can start

Warnings (non-blocking):
- Quest difficulty outside the chapter's band
- Rooms with more exits than their kind allows (after graph repair)
- Enemy loot referring to items that were not generated
"""

import logging
from collections import defaultdict

from worldgen.models.artifacts import (
    ENEMY_OBJECTIVES,
    ITEM_OBJECTIVES,
    NPC_OBJECTIVES,
    ROOM_OBJECTIVES,
    ChapterArtifact,
    Enemy,
    Item,
    Quest,
    Room,
)
from worldgen.models.graph import EXIT_BUDGETS, RoomGraph
from worldgen.models.report import IntegrityReport

logger = logging.getLogger(__name__)


class ContentIntegrityChecker:
    """
    Checks a full artifact set.

    Artifact maps are keyed by id. A value may be None when the document
    exists but its content could not be read into the typed model; the id
    still counts as existing.
    """

    def __init__(
        self,
        chapters: list[ChapterArtifact],
        rooms: dict[str, Room | None],
        quests: dict[str, Quest | None],
        enemies: dict[str, Enemy | None] | None = None,
        items: dict[str, Item | None] | None = None,
        graphs: list[RoomGraph] | None = None,
    ):
        self.chapters = chapters
        self.rooms = rooms
        self.room_ids = set(rooms)
        self.quests = quests
        self.enemies = enemies or {}
        self.items = items or {}
        self.graphs = graphs or []

        self.npc_ids = {npc_id for chapter in chapters for npc_id in chapter.npc_ids}

    def check(self) -> IntegrityReport:
        """Run every check; results are concatenated, no check depends on another"""
        report = IntegrityReport()

        report.extend(self.check_chapter_sequence())
        report.extend(self.check_chapter_contents())
        report.extend(self.check_unlock_chain())
        report.extend(self.check_location_references())
        report.extend(self.check_room_references())
        report.extend(self.check_quest_references())
        report.extend(self.check_prerequisite_cycles())
        report.extend(self.check_progression())

        report.extend([], self.check_difficulty_scaling())
        report.extend([], self.check_exit_budgets())
        report.extend([], self.check_loot_items())

        logger.info(f"Integrity check: {len(report.errors)} errors, {len(report.warnings)} warnings")
        return report

    # =========================================================================
    # Errors
    # =========================================================================

    def check_chapter_sequence(self) -> list[str]:
        errors = []
        for i, chapter in enumerate(self.chapters):
            if chapter.chapter_number != i + 1:
                errors.append(
                    f"Chapter {chapter.chapter_id} has incorrect number {chapter.chapter_number}, expected {i + 1}"
                )
        return errors

    def check_chapter_contents(self) -> list[str]:
        errors = []
        for chapter in self.chapters:
            cid = chapter.chapter_id
            if not chapter.location_ids:
                errors.append(f"Chapter {cid} has no locations")
            if not chapter.quest_ids:
                errors.append(f"Chapter {cid} has no quests")
            if not chapter.main_quest_ids:
                errors.append(f"Chapter {cid} has no main quests (progression blocked)")

            for quest_id in chapter.main_quest_ids:
                if quest_id not in chapter.quest_ids:
                    errors.append(f"Chapter {cid} main quest '{quest_id}' not in quest list")
            for quest_id in chapter.quest_ids:
                if quest_id not in self.quests:
                    errors.append(f"Chapter {cid} references non-existent quest: {quest_id}")
            for enemy_id in chapter.enemy_ids:
                if enemy_id not in self.enemies:
                    errors.append(f"Chapter {cid} references non-existent enemy: {enemy_id}")
            for item_id in chapter.item_ids:
                if item_id not in self.items:
                    errors.append(f"Chapter {cid} references non-existent item: {item_id}")

            if chapter.hub_location_id and chapter.hub_location_id not in chapter.location_ids:
                errors.append(f"Chapter {cid} hub '{chapter.hub_location_id}' not in location list")
        return errors

    def check_unlock_chain(self) -> list[str]:
        errors = []
        for previous, chapter in zip(self.chapters, self.chapters[1:]):
            cid = chapter.chapter_id
            if not chapter.unlock_quest_id:
                errors.append(f"Chapter {cid} has no unlock quest defined")
                continue
            if chapter.unlock_quest_id not in previous.main_quest_ids:
                errors.append(
                    f"Chapter {cid} unlock quest '{chapter.unlock_quest_id}' "
                    f"is not a main quest from chapter {previous.chapter_id}"
                )
            if chapter.unlock_quest_id not in self.quests:
                errors.append(f"Chapter {cid} unlock quest '{chapter.unlock_quest_id}' not found")
        return errors

    def check_location_references(self) -> list[str]:
        errors = []
        owners: dict[str, list[str]] = defaultdict(list)

        for chapter in self.chapters:
            cid = chapter.chapter_id
            for room_id in chapter.location_ids:
                owners[room_id].append(cid)
                if room_id not in self.room_ids:
                    errors.append(f"Chapter {cid} references non-existent location: {room_id}")

            for label, room_id in (
                ("hub", chapter.hub_location_id),
                ("entry", chapter.entry_location_id),
                ("exit", chapter.exit_location_id),
            ):
                if room_id and room_id not in self.room_ids:
                    errors.append(f"Chapter {cid} {label} location '{room_id}' not found")

        for room_id, chapter_ids in owners.items():
            if len(chapter_ids) > 1:
                errors.append(f"Room '{room_id}' belongs to more than one chapter: {', '.join(chapter_ids)}")
        return errors

    def check_room_references(self) -> list[str]:
        errors = []
        for room_id, room in self.rooms.items():
            if room is None or room.combat is None or not room.combat.enemy_id:
                continue
            if room.combat.enemy_id not in self.enemies:
                errors.append(f"Room '{room_id}' combat references unknown enemy: {room.combat.enemy_id}")
        return errors

    def check_quest_references(self) -> list[str]:
        errors = []
        for quest_id, quest in self.quests.items():
            if quest is None:
                continue

            if quest.quest_giver_location and quest.quest_giver_location not in self.room_ids:
                errors.append(f"Quest '{quest_id}' giver location '{quest.quest_giver_location}' not found")

            for objective in quest.objectives:
                target = objective.target_id
                if objective.type in ROOM_OBJECTIVES and target not in self.room_ids:
                    errors.append(f"Quest '{quest_id}' objective references invalid room: {target}")
                elif objective.type in NPC_OBJECTIVES and self.npc_ids and target not in self.npc_ids:
                    errors.append(f"Quest '{quest_id}' objective references unknown NPC: {target}")
                elif objective.type in ENEMY_OBJECTIVES and target not in self.enemies:
                    errors.append(f"Quest '{quest_id}' objective references invalid enemy: {target}")
                elif objective.type in ITEM_OBJECTIVES and target not in self.items:
                    errors.append(f"Quest '{quest_id}' objective references unknown item: {target}")

            for field_name, room_ids in (
                ("revealsOnAccept", quest.reveals_on_accept),
                ("revealsOnComplete", quest.reveals_on_complete),
            ):
                for room_id in room_ids:
                    if room_id not in self.room_ids:
                        errors.append(f"Quest '{quest_id}' {field_name} references invalid location: {room_id}")

            for prereq_id in quest.prerequisite_quests:
                if prereq_id not in self.quests:
                    errors.append(f"Quest '{quest_id}' prerequisite quest not found: {prereq_id}")

            if quest.rewards is not None:
                for item_id in quest.rewards.item_ids:
                    if item_id not in self.items:
                        errors.append(f"Quest '{quest_id}' reward references unknown item: {item_id}")
        return errors

    def check_prerequisite_cycles(self) -> list[str]:
        """
        Depth-first walk over prerequisite edges.

        A node is "on path" while its prerequisites are being walked. Meeting
        an on-path node again is a cycle; meeting a finished node (reached
        earlier through another branch) is not.
        """
        on_path: set[str] = set()
        finished: set[str] = set()
        path: list[str] = []
        cycles: list[list[str]] = []
        seen_cycles: set[frozenset] = set()

        def prerequisites(quest_id: str) -> list[str]:
            quest = self.quests.get(quest_id)
            if quest is None:
                return []
            return [p for p in quest.prerequisite_quests if p in self.quests]

        def visit(quest_id: str):
            on_path.add(quest_id)
            path.append(quest_id)

            for prereq_id in prerequisites(quest_id):
                if prereq_id in on_path:
                    cycle = path[path.index(prereq_id):] + [prereq_id]
                    key = frozenset(cycle)
                    if key not in seen_cycles:
                        seen_cycles.add(key)
                        cycles.append(cycle)
                elif prereq_id not in finished:
                    visit(prereq_id)

            path.pop()
            on_path.discard(quest_id)
            finished.add(quest_id)

        for quest_id in self.quests:
            if quest_id not in finished:
                visit(quest_id)

        return [f"Circular quest prerequisites: {' -> '.join(cycle)}" for cycle in cycles]

    def check_progression(self) -> list[str]:
        errors = []
        for chapter in self.chapters:
            main_ids = set(chapter.main_quest_ids)
            main_quests = [self.quests[q] for q in chapter.main_quest_ids if self.quests.get(q) is not None]
            if not main_quests:
                continue

            accessible = any(
                not any(p in main_ids for p in quest.prerequisite_quests)
                for quest in main_quests
            )
            if not accessible:
                errors.append(f"Chapter {chapter.chapter_id} has no initially accessible main quest")
        return errors

    # =========================================================================
    # Warnings
    # =========================================================================

    def check_difficulty_scaling(self) -> list[str]:
        warnings = []
        by_number = {chapter.chapter_number: chapter for chapter in self.chapters}

        for quest_id, quest in self.quests.items():
            if quest is None:
                continue
            chapter = by_number.get(quest.chapter_number)
            if chapter is None:
                continue

            expected_min = chapter.base_difficulty - 2
            expected_max = chapter.base_difficulty + 3
            if quest.difficulty < expected_min:
                warnings.append(
                    f"Quest '{quest_id}' difficulty {quest.difficulty} is below "
                    f"chapter {chapter.chapter_number} minimum ({expected_min})"
                )
            if quest.is_main and quest.difficulty > expected_max:
                warnings.append(
                    f"Main quest '{quest_id}' difficulty {quest.difficulty} exceeds "
                    f"chapter {chapter.chapter_number} maximum ({expected_max})"
                )
        return warnings

    def check_exit_budgets(self) -> list[str]:
        warnings = []
        for graph in self.graphs:
            for room in graph.rooms:
                kind = room.kind
                if kind is None:
                    continue
                _, max_exits = EXIT_BUDGETS[kind]
                if len(room.connects_to) > max_exits:
                    warnings.append(
                        f"Room '{room.room_id}' ({kind.value}) has {len(room.connects_to)} exits, "
                        f"more than the {max_exits} its kind allows"
                    )
        return warnings

    def check_loot_items(self) -> list[str]:
        warnings = []
        for enemy_id, enemy in self.enemies.items():
            if enemy is None:
                continue
            for entry in enemy.loot_table:
                if entry.item_id and entry.item_id not in self.items:
                    warnings.append(f"Enemy '{enemy_id}' loot references item that was not generated: {entry.item_id}")
        return warnings


def content_summary(chapters: list[ChapterArtifact], counts: dict[str, int]) -> str:
    """Human-readable overview of a generated world"""
    lines = [
        "=== GENERATED CONTENT REPORT ===",
        "",
        f"Total Chapters: {len(chapters)}",
        f"Total Rooms: {counts.get('room', 0)}",
        f"Total Quests: {counts.get('quest', 0)}",
        f"Total Enemies: {counts.get('enemy', 0)}",
        f"Total Items: {counts.get('item', 0)}",
    ]
    for chapter in chapters:
        lines += [
            "",
            f"--- Chapter {chapter.chapter_number}: {chapter.chapter_name} ---",
            f"  Locations: {len(chapter.location_ids)}",
            f"  Quests: {len(chapter.quest_ids)} ({len(chapter.main_quest_ids)} main)",
            f"  Enemies: {len(chapter.enemy_ids)}",
            f"  Difficulty: {chapter.base_difficulty}",
        ]
        if chapter.validation_errors:
            lines.append(f"  ERRORS: {len(chapter.validation_errors)}")
            lines += [f"    - {error}" for error in chapter.validation_errors]
    return "\n".join(lines)
