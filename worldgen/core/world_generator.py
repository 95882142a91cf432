"""
World Generator - drives a full generation run, chapter by chapter.

Per chapter:
  Outline    one request, the plan for everything else (fatal on failure)
  Graph      one request, then reverse edges are repaired (fatal on failure)
  Locations  one request per graph room, kind-specific prompt
  Quests     one request per outlined quest, main quests first
  Enemies    one request per outlined enemy
  Items      one request per item id the chapter's quests/enemies mention

Then, once for the whole run:
  Validate   schema check of every artifact, then the integrity checker
  Persist    every artifact plus the manifest, written to the content store

A failed room, quest, enemy or item is reported and skipped. Only an
outline or room graph failure, or cancellation, aborts the run; an aborted
run writes nothing.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ValidationError

from worldgen.core import prompts
from worldgen.core.content_store import ContentStore, WorldContent
from worldgen.core.integrity import ContentIntegrityChecker
from worldgen.core.llm_client import ModelClient, ModelClientError, ModelResponse
from worldgen.core.schema_validator import (
    validate_enemy,
    validate_item,
    validate_outline,
    validate_quest,
    validate_room,
    validate_room_graph,
)
from worldgen.core.session_logger import GenerationLogger
from worldgen.models.artifacts import (
    ITEM_OBJECTIVES,
    ArtifactKind,
    ChapterArtifact,
    Enemy,
    Item,
    Quest,
    Room,
)
from worldgen.models.config import ProviderConfig, WorldGenerationConfig
from worldgen.models.graph import RoomGraph, RoomKind
from worldgen.models.outline import ChapterOutline
from worldgen.models.report import (
    ErrorKind,
    GenerationReport,
    Severity,
    ValidationResult,
)

logger = logging.getLogger(__name__)


class GenerationState(str, Enum):
    IDLE = "Idle"
    OUTLINE = "Outline"
    GRAPH = "Graph"
    LOCATIONS = "Locations"
    QUESTS = "Quests"
    ENEMIES = "Enemies"
    ITEMS = "Items"
    VALIDATE = "Validate"
    PERSIST = "Persist"
    DONE = "Done"
    ABORTED = "Aborted"


# Share of one chapter's progress reached at the start of each stage
_STAGE_PROGRESS = {
    GenerationState.OUTLINE: 0.0,
    GenerationState.GRAPH: 0.1,
    GenerationState.LOCATIONS: 0.2,
    GenerationState.QUESTS: 0.6,
    GenerationState.ENEMIES: 0.8,
    GenerationState.ITEMS: 0.9,
}
_CHAPTERS_SHARE = 0.9


class GenerationAborted(Exception):
    """The run cannot continue (outline or room graph unavailable)"""


class GenerationCancelled(Exception):
    """Cancellation was requested"""


class CancellationToken:
    """Cooperative cancellation flag, checked between generation steps"""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, where: str = ""):
        if self._cancelled:
            raise GenerationCancelled(f"Generation cancelled{f' during {where}' if where else ''}")


@dataclass
class GenerationCallbacks:
    """Optional observers. Exceptions raised by observers are logged and ignored."""
    on_status: Callable[[str], None] | None = None
    on_progress: Callable[[float, str], None] | None = None
    on_outline: Callable[[ChapterOutline], None] | None = None
    on_chapter_generated: Callable[[ChapterArtifact], None] | None = None
    on_error: Callable[[str], None] | None = None
    on_validation_report: Callable[[GenerationReport], None] | None = None
    on_complete: Callable[[GenerationReport], None] | None = None


@dataclass
class GenerationContext:
    """Everything one run carries through its call chain"""

    config: WorldGenerationConfig
    credential: str
    client: ModelClient | None
    cancellation: CancellationToken
    report: GenerationReport
    system_prompt: str
    interaction_log: GenerationLogger | None = None

    # Accumulated documents, keyed by id; owned by the run's single task
    chapters: list[ChapterArtifact] = field(default_factory=list)
    rooms: dict[str, dict] = field(default_factory=dict)
    quests: dict[str, dict] = field(default_factory=dict)
    enemies: dict[str, dict] = field(default_factory=dict)
    items: dict[str, dict] = field(default_factory=dict)
    maps: dict[str, dict] = field(default_factory=dict)
    graphs: list[RoomGraph] = field(default_factory=list)
    room_kinds: dict[str, RoomKind | None] = field(default_factory=dict)

    # Chapters generated by this run (others were loaded from disk)
    chapters_planned: int = 1
    chapters_done: int = 0

    @property
    def brief(self):
        return self.config.world_prompt

    @property
    def settings(self):
        return self.config.settings


ClientFactory = Callable[[ProviderConfig, str], ModelClient]


def _typed(model: type[BaseModel], document: dict | None):
    """Typed view of a stored document, or None if it does not fit the model"""
    if document is None:
        return None
    try:
        return model.model_validate(document)
    except ValidationError:
        return None


class WorldGenerator:
    """
    Generates a world from a WorldGenerationConfig.

    Usage:
        generator = WorldGenerator(Path("worlds"), callbacks=GenerationCallbacks(on_status=print))
        report = await generator.start_generation(config, credential)
        report = await generator.generate_next_chapter(credential)
    """

    def __init__(
        self,
        output_dir: Path,
        client_factory: ClientFactory | None = None,
        callbacks: GenerationCallbacks | None = None,
        interaction_log_dir: Path | None = None,
    ):
        self.store = ContentStore(output_dir)
        self.client_factory = client_factory or self._default_client
        self.callbacks = callbacks or GenerationCallbacks()
        self.interaction_log_dir = interaction_log_dir

        self._state = GenerationState.IDLE
        self._progress = 0.0
        self._cancellation: CancellationToken | None = None
        self._running = False
        self._last_world_path: Path | None = None

        logger.info(f"WorldGenerator initialized with output_dir: {output_dir}")

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def is_running(self) -> bool:
        return self._running

    def cancel(self):
        """Request cancellation; honoured at the next step boundary."""
        if self._cancellation is not None and self._running:
            logger.info("Cancellation requested")
            self._cancellation.cancel()
            self._emit_status("Cancelling after the current request...")

    async def start_generation(self, config: WorldGenerationConfig, credential: str) -> GenerationReport:
        """Generate a new world of settings.total_chapters chapters and persist it."""
        if self._running:
            return self._reject(config.world_id)

        logger.info("=" * 60)
        logger.info("WORLD GENERATION STARTED")
        logger.info(f"  World: {config.world_id} ({config.world_prompt.world_name})")
        logger.info(f"  Provider: {config.provider.provider}, model: {config.provider.model}")
        logger.info(f"  Chapters: {config.settings.total_chapters}, locations/chapter: {config.settings.locations_per_chapter}")
        logger.info("=" * 60)

        ctx = self._new_context(config, credential)
        ctx.chapters_planned = config.settings.total_chapters
        return await self._run(ctx, config.settings.total_chapters)

    async def generate_next_chapter(self, credential: str, world: str | Path | None = None) -> GenerationReport:
        """
        Extend a persisted world by one chapter.

        The manifest and every persisted artifact are reloaded, the next
        chapter is generated, and the whole set is validated and written back.

        Args:
            credential: Provider credential
            world: World id or directory; defaults to the last world this
                generator persisted
        """
        world = world or self._last_world_path
        if world is None:
            raise ValueError("No world given and nothing generated yet")
        if self._running:
            return self._reject(str(world))

        content = self.store.load_world(world)
        ctx = self._new_context(content.config, credential)
        self._load_content(ctx, content)

        logger.info("=" * 60)
        logger.info(f"NEXT CHAPTER GENERATION: {content.config.world_id} chapter {len(ctx.chapters) + 1}")
        logger.info("=" * 60)

        ctx.chapters_planned = 1
        return await self._run(ctx, 1)

    def check_world(self, world: str | Path) -> GenerationReport:
        """
        Schema and integrity check of a persisted world, without any model requests.

        Raises:
            RuntimeError: a generation is in progress on this generator
        """
        if self._running:
            raise RuntimeError("Cannot check a world while a generation is in progress")

        content = self.store.load_world(world)
        ctx = self._new_context(content.config, credential="", with_client=False)
        self._load_content(ctx, content)

        self._validate(ctx)
        ctx.report.counts = content.counts()
        ctx.report.state = GenerationState.DONE.value
        ctx.report.finished_at = datetime.now().isoformat()
        self._set_state(GenerationState.IDLE)
        return ctx.report

    # =========================================================================
    # Run
    # =========================================================================

    def _default_client(self, config: ProviderConfig, credential: str) -> ModelClient:
        return ModelClient(config, credential, on_status=self._emit_status, on_error=self._emit_error)

    def _new_context(
        self,
        config: WorldGenerationConfig,
        credential: str,
        with_client: bool = True,
    ) -> GenerationContext:
        interaction_log = None
        if with_client and self.interaction_log_dir is not None:
            interaction_log = GenerationLogger(self.interaction_log_dir, config.world_id, config.provider.model)

        return GenerationContext(
            config=config,
            credential=credential,
            client=self.client_factory(config.provider, credential) if with_client else None,
            cancellation=CancellationToken(),
            report=GenerationReport(world_id=config.world_id),
            system_prompt=prompts.system_prompt(config.world_prompt),
            interaction_log=interaction_log,
        )

    def _load_content(self, ctx: GenerationContext, content: WorldContent):
        """Seed a context with a persisted world so new chapters extend it"""
        ctx.chapters = list(content.chapters)
        ctx.rooms = dict(content.rooms)
        ctx.quests = dict(content.quests)
        ctx.enemies = dict(content.enemies)
        ctx.items = dict(content.items)
        ctx.maps = dict(content.maps)
        for map_id, document in content.maps.items():
            graph = _typed(RoomGraph, document)
            if graph is None:
                logger.warning(f"Map '{map_id}' could not be read; exit budgets will not be checked for it")
                continue
            ctx.graphs.append(graph)
            for node in graph.rooms:
                ctx.room_kinds[node.room_id] = node.kind

    def _reject(self, world_id: str) -> GenerationReport:
        message = "Generation already in progress"
        logger.warning(message)
        self._emit(self.callbacks.on_error, message)
        report = GenerationReport(world_id=world_id, state=GenerationState.ABORTED.value)
        report.finished_at = datetime.now().isoformat()
        return report

    async def _run(self, ctx: GenerationContext, chapter_count: int) -> GenerationReport:
        self._running = True
        self._cancellation = ctx.cancellation
        self._progress = 0.0
        report = ctx.report

        try:
            for _ in range(chapter_count):
                ctx.cancellation.raise_if_cancelled("chapter generation")
                await self._generate_chapter(ctx, len(ctx.chapters) + 1)
                ctx.chapters_done += 1
                ctx.cancellation.raise_if_cancelled("chapter generation")

            self._validate(ctx)
            ctx.cancellation.raise_if_cancelled("validation")
            self._persist(ctx)

            self._set_state(GenerationState.DONE)
            self._set_progress(1.0, "World generated successfully!")

            logger.info("=" * 60)
            logger.info("WORLD GENERATION COMPLETED")
            logger.info(f"  Chapters: {len(ctx.chapters)}, counts: {report.counts}")
            logger.info(f"  Errors: {len(report.errors)}, warnings: {len(report.warnings)}")
            logger.info("=" * 60)

        except GenerationCancelled as e:
            report.add(ErrorKind.CANCELLED, str(e))
            self._abort(str(e))

        except GenerationAborted as e:
            self._abort(str(e))

        except Exception as e:
            logger.error("=" * 60)
            logger.error("WORLD GENERATION FAILED")
            logger.error(f"  Error: {type(e).__name__}: {e}")
            logger.error(traceback.format_exc())
            logger.error("=" * 60)
            self._set_state(GenerationState.ABORTED)
            raise

        finally:
            report.state = self._state.value
            report.finished_at = datetime.now().isoformat()
            self._running = False
            await ctx.client.aclose()
            self._emit(self.callbacks.on_complete, report)

        return report

    def _abort(self, reason: str):
        logger.error(f"Generation aborted: {reason}")
        self._set_state(GenerationState.ABORTED)
        self._emit(self.callbacks.on_error, f"Generation aborted: {reason}")

    # =========================================================================
    # Chapter
    # =========================================================================

    async def _generate_chapter(self, ctx: GenerationContext, number: int):
        logger.info("=" * 50)
        logger.info(f"CHAPTER {number}")

        previous = ctx.chapters[-1] if ctx.chapters else None
        outline = await self._generate_outline(ctx, number, previous)
        ctx.cancellation.raise_if_cancelled("outline")

        chapter_id = outline.chapter_id or f"chapter_{number}"
        if any(chapter.chapter_id == chapter_id for chapter in ctx.chapters):
            chapter_id = f"chapter_{number}"

        graph = await self._generate_graph(ctx, number, outline, chapter_id)
        ctx.cancellation.raise_if_cancelled("room graph")

        chapter = ChapterArtifact(
            chapter_id=chapter_id,
            chapter_name=outline.chapter_name,
            chapter_number=number,
            chapter_description=outline.chapter_description,
            chapter_intro=outline.chapter_intro,
            main_quest_summary=" ".join(q.description for q in outline.main_quests if q.description),
            location_ids=graph.room_ids,
            npc_ids=outline.npc_ids,
            map_id=f"{chapter_id}_map",
            hub_location_id=graph.hub_room_id,
            entry_location_id=graph.entry_room_id,
            exit_location_id=graph.exit_room_id,
        )
        chapter.calculate_difficulty()
        ctx.maps[chapter.map_id] = graph.model_dump(mode="json", by_alias=True)
        ctx.graphs.append(graph)

        await self._generate_rooms(ctx, chapter, graph, outline)
        await self._generate_quests(ctx, chapter, graph, outline)
        await self._generate_enemies(ctx, chapter, outline)
        await self._generate_items(ctx, chapter)

        # Chapter N is completed by its last main quest, which in turn unlocks N+1
        chapter.completion_quest_id = chapter.main_quest_ids[-1] if chapter.main_quest_ids else None
        chapter.unlock_quest_id = previous.completion_quest_id if previous else None

        ctx.chapters.append(chapter)
        logger.info(
            f"Chapter {number} generated: {len(chapter.location_ids)} rooms, "
            f"{len(chapter.quest_ids)} quests ({len(chapter.main_quest_ids)} main), "
            f"{len(chapter.enemy_ids)} enemies, {len(chapter.item_ids)} items"
        )
        self._emit(self.callbacks.on_chapter_generated, chapter)
        self._emit_status(f"Chapter {number} generated: {chapter.chapter_name}")

    async def _generate_outline(
        self,
        ctx: GenerationContext,
        number: int,
        previous: ChapterArtifact | None,
    ) -> ChapterOutline:
        self._enter_stage(ctx, GenerationState.OUTLINE, f"Generating chapter {number} outline...")
        artifact_id = f"chapter_{number}"

        prompt = prompts.chapter_outline_prompt(number, ctx.settings, previous)
        response = await self._request(ctx, prompt, ArtifactKind.OUTLINE, artifact_id)
        if response is None:
            raise GenerationAborted(f"Chapter {number} outline request failed")

        result = validate_outline(response.content)
        self._log_validation(ctx, f"outline {artifact_id}", result)
        if result.parsed is None:
            self._report_failure(ctx, result, ArtifactKind.OUTLINE, artifact_id)
            raise GenerationAborted(f"Chapter {number} outline could not be parsed")
        self._report_schema(ctx, result, ArtifactKind.OUTLINE, artifact_id)

        outline: ChapterOutline = result.parsed
        logger.info(
            f"Outline: '{outline.chapter_name}' with {len(outline.locations)} locations, "
            f"{len(outline.main_quests)} main / {len(outline.side_quests)} side quests, "
            f"{len(outline.key_npcs)} NPCs, {len(outline.enemies)} enemies"
        )
        self._emit(self.callbacks.on_outline, outline)
        return outline

    async def _generate_graph(
        self,
        ctx: GenerationContext,
        number: int,
        outline: ChapterOutline,
        chapter_id: str,
    ) -> RoomGraph:
        self._enter_stage(ctx, GenerationState.GRAPH, f"Generating chapter {number} room graph...")
        artifact_id = f"{chapter_id}_map"

        prompt = prompts.room_graph_prompt(outline)
        response = await self._request(ctx, prompt, ArtifactKind.GRAPH, artifact_id)
        if response is None:
            raise GenerationAborted(f"Chapter {number} room graph request failed")

        result = validate_room_graph(response.content)
        self._log_validation(ctx, f"graph {artifact_id}", result)
        if result.parsed is None:
            self._report_failure(ctx, result, ArtifactKind.GRAPH, artifact_id)
            raise GenerationAborted(f"Chapter {number} room graph could not be parsed")
        self._report_schema(ctx, result, ArtifactKind.GRAPH, artifact_id)

        graph: RoomGraph = result.parsed
        graph.chapter_id = chapter_id

        # Drop nodes that cannot be addressed; keep the first of any duplicate id
        seen: set[str] = set()
        nodes = []
        for node in graph.rooms:
            if not node.room_id or node.room_id in seen:
                continue
            if node.room_id in ctx.rooms:
                ctx.report.add(
                    ErrorKind.SCHEMA, f"Room '{node.room_id}' already belongs to an earlier chapter, dropped",
                    artifact_id, ArtifactKind.GRAPH.value, Severity.WARNING,
                )
                continue
            seen.add(node.room_id)
            nodes.append(node)
        graph.rooms = nodes
        if not graph.rooms:
            ctx.report.add(ErrorKind.SCHEMA, "Room graph has no usable rooms", artifact_id, ArtifactKind.GRAPH.value)
            raise GenerationAborted(f"Chapter {number} room graph has no usable rooms")

        for source, target in graph.ensure_bidirectional():
            ctx.report.add(
                ErrorKind.SCHEMA,
                f"Added missing reverse edge {source} -> {target}",
                artifact_id,
                ArtifactKind.GRAPH.value,
                Severity.WARNING,
            )

        for node in graph.rooms:
            ctx.room_kinds[node.room_id] = node.kind

        logger.info(f"Room graph: {len(graph.rooms)} rooms, hub={graph.hub_room_id}")
        return graph

    async def _generate_rooms(
        self,
        ctx: GenerationContext,
        chapter: ChapterArtifact,
        graph: RoomGraph,
        outline: ChapterOutline,
    ):
        self._enter_stage(ctx, GenerationState.LOCATIONS, f"Generating {len(graph.rooms)} rooms...")

        for index, node in enumerate(graph.rooms):
            self._stage_progress(ctx, GenerationState.LOCATIONS, index / len(graph.rooms), f"Room {node.room_name or node.room_id}")

            prompt = prompts.room_prompt(node, graph, chapter, outline)
            response = await self._request(ctx, prompt, ArtifactKind.ROOM, node.room_id)
            if response is not None:
                result = validate_room(response.content, expected_kind=node.kind, expected_id=node.room_id)
                self._log_validation(ctx, f"room {node.room_id}", result)
                if result.parse_failed:
                    self._report_failure(ctx, result, ArtifactKind.ROOM, node.room_id)
                else:
                    ctx.rooms[node.room_id] = result.data
                    ctx.report.count(ArtifactKind.ROOM.value)

            ctx.cancellation.raise_if_cancelled(f"room {node.room_id}")

    async def _generate_quests(
        self,
        ctx: GenerationContext,
        chapter: ChapterArtifact,
        graph: RoomGraph,
        outline: ChapterOutline,
    ):
        summaries = [(q, is_main) for q, is_main in outline.all_quests() if q.quest_id]
        self._enter_stage(ctx, GenerationState.QUESTS, f"Generating {len(summaries)} quests...")

        for index, (summary, is_main) in enumerate(summaries):
            if summary.quest_id in chapter.quest_ids or summary.quest_id in ctx.quests:
                ctx.report.add(
                    ErrorKind.SCHEMA, f"Duplicate quest id '{summary.quest_id}' skipped",
                    summary.quest_id, ArtifactKind.QUEST.value, Severity.WARNING,
                )
                continue

            chapter.quest_ids.append(summary.quest_id)
            if is_main:
                chapter.main_quest_ids.append(summary.quest_id)

            self._stage_progress(ctx, GenerationState.QUESTS, index / len(summaries), f"Quest {summary.quest_name}")
            prompt = prompts.quest_prompt(summary, chapter, is_main, graph, outline)
            response = await self._request(ctx, prompt, ArtifactKind.QUEST, summary.quest_id)
            if response is not None:
                result = validate_quest(response.content)
                self._log_validation(ctx, f"quest {summary.quest_id}", result)
                if result.parse_failed:
                    self._report_failure(ctx, result, ArtifactKind.QUEST, summary.quest_id)
                else:
                    ctx.quests[summary.quest_id] = result.data
                    ctx.report.count(ArtifactKind.QUEST.value)

            ctx.cancellation.raise_if_cancelled(f"quest {summary.quest_id}")

    async def _generate_enemies(self, ctx: GenerationContext, chapter: ChapterArtifact, outline: ChapterOutline):
        summaries = [e for e in outline.enemies if e.enemy_id]
        self._enter_stage(ctx, GenerationState.ENEMIES, f"Generating {len(summaries)} enemies...")

        for index, summary in enumerate(summaries):
            if summary.enemy_id in ctx.enemies or summary.enemy_id in chapter.enemy_ids:
                # Enemy types may recur across chapters; the first definition wins
                if summary.enemy_id not in chapter.enemy_ids:
                    chapter.enemy_ids.append(summary.enemy_id)
                continue
            chapter.enemy_ids.append(summary.enemy_id)

            self._stage_progress(ctx, GenerationState.ENEMIES, index / len(summaries), f"Enemy {summary.enemy_name}")
            prompt = prompts.enemy_prompt(summary, chapter)
            response = await self._request(ctx, prompt, ArtifactKind.ENEMY, summary.enemy_id)
            if response is not None:
                result = validate_enemy(response.content)
                self._log_validation(ctx, f"enemy {summary.enemy_id}", result)
                if result.parse_failed:
                    self._report_failure(ctx, result, ArtifactKind.ENEMY, summary.enemy_id)
                else:
                    ctx.enemies[summary.enemy_id] = result.data
                    ctx.report.count(ArtifactKind.ENEMY.value)

            ctx.cancellation.raise_if_cancelled(f"enemy {summary.enemy_id}")

    def _referenced_items(self, ctx: GenerationContext, chapter: ChapterArtifact) -> dict[str, str]:
        """Item ids mentioned by this chapter's quests, then its enemies' loot, with who uses them"""
        wanted: dict[str, str] = {}

        for quest_id in chapter.quest_ids:
            quest = _typed(Quest, ctx.quests.get(quest_id))
            if quest is None:
                continue
            for objective in quest.objectives:
                if objective.type in ITEM_OBJECTIVES and objective.target_id:
                    wanted.setdefault(objective.target_id, f"quest '{quest.quest_name}' ({objective.type})")
            if quest.rewards is not None:
                for item_id in quest.rewards.item_ids:
                    if item_id:
                        wanted.setdefault(item_id, f"reward for quest '{quest.quest_name}'")

        for enemy_id in chapter.enemy_ids:
            enemy = _typed(Enemy, ctx.enemies.get(enemy_id))
            if enemy is None:
                continue
            for entry in enemy.loot_table:
                if entry.item_id:
                    wanted.setdefault(entry.item_id, f"loot dropped by {enemy.enemy_name}")

        return {item_id: usage for item_id, usage in wanted.items() if item_id not in ctx.items}

    async def _generate_items(self, ctx: GenerationContext, chapter: ChapterArtifact):
        wanted = self._referenced_items(ctx, chapter)
        limit = ctx.settings.items_per_chapter
        if len(wanted) > limit:
            logger.warning(f"Chapter {chapter.chapter_number} references {len(wanted)} new items, generating {limit}")
        selected = list(wanted.items())[:limit]
        self._enter_stage(ctx, GenerationState.ITEMS, f"Generating {len(selected)} items...")

        for index, (item_id, usage) in enumerate(selected):
            chapter.item_ids.append(item_id)
            self._stage_progress(ctx, GenerationState.ITEMS, index / len(selected), f"Item {item_id}")

            prompt = prompts.item_prompt(item_id, chapter, usage)
            response = await self._request(ctx, prompt, ArtifactKind.ITEM, item_id)
            if response is not None:
                result = validate_item(response.content)
                self._log_validation(ctx, f"item {item_id}", result)
                if result.parse_failed:
                    self._report_failure(ctx, result, ArtifactKind.ITEM, item_id)
                else:
                    ctx.items[item_id] = result.data
                    ctx.report.count(ArtifactKind.ITEM.value)

            ctx.cancellation.raise_if_cancelled(f"item {item_id}")

    # =========================================================================
    # Validate and persist
    # =========================================================================

    def _validate(self, ctx: GenerationContext):
        """Schema-check every stored artifact, then integrity-check the whole set"""
        self._set_state(GenerationState.VALIDATE)
        self._set_progress(_CHAPTERS_SHARE + 0.02, "Validating generated content...")
        report = ctx.report

        known_rooms = set(ctx.rooms)
        owner = {}
        for chapter in ctx.chapters:
            for artifact_id in chapter.location_ids + chapter.quest_ids + chapter.enemy_ids + chapter.item_ids:
                owner.setdefault(artifact_id, chapter)
        schema_errors: dict[str, list[str]] = {}

        def record(kind: ArtifactKind, artifact_id: str, result: ValidationResult):
            for error in result.errors:
                report.add(ErrorKind.SCHEMA, error, artifact_id, kind.value)
                schema_errors.setdefault(artifact_id, []).append(error)
            for warning in result.warnings:
                report.add(ErrorKind.SCHEMA, warning, artifact_id, kind.value, Severity.WARNING)

        rooms: dict[str, Room | None] = {}
        for room_id, document in ctx.rooms.items():
            kind = ctx.room_kinds.get(room_id)
            result = validate_room(document, known_ids=known_rooms, expected_kind=kind, expected_id=room_id)
            record(ArtifactKind.ROOM, room_id, result)
            rooms[room_id] = result.parsed

        quests: dict[str, Quest | None] = {}
        for quest_id, document in ctx.quests.items():
            result = validate_quest(document)
            record(ArtifactKind.QUEST, quest_id, result)
            quests[quest_id] = result.parsed

        enemies: dict[str, Enemy | None] = {}
        for enemy_id, document in ctx.enemies.items():
            result = validate_enemy(document)
            record(ArtifactKind.ENEMY, enemy_id, result)
            enemies[enemy_id] = result.parsed

        items: dict[str, Item | None] = {}
        for item_id, document in ctx.items.items():
            result = validate_item(document)
            record(ArtifactKind.ITEM, item_id, result)
            items[item_id] = result.parsed

        integrity = ContentIntegrityChecker(ctx.chapters, rooms, quests, enemies, items, ctx.graphs).check()
        for error in integrity.errors:
            report.add(ErrorKind.INTEGRITY, error)
        for warning in integrity.warnings:
            report.add(ErrorKind.INTEGRITY, warning, severity=Severity.WARNING)

        for chapter in ctx.chapters:
            errors = []
            for artifact_id, messages in schema_errors.items():
                if owner.get(artifact_id) is chapter:
                    errors += [f"{artifact_id}: {message}" for message in messages]
            errors += [e for e in integrity.errors if f"Chapter {chapter.chapter_id} " in e]
            chapter.validation_errors = errors
            chapter.is_validated = True

        logger.info(
            f"Validation: {len(report.errors_of_kind(ErrorKind.SCHEMA))} schema errors, "
            f"{len(integrity.errors)} integrity errors, {len(report.warnings)} warnings"
        )
        self._emit(self.callbacks.on_validation_report, report)

    def _persist(self, ctx: GenerationContext):
        self._set_state(GenerationState.PERSIST)
        self._set_progress(_CHAPTERS_SHARE + 0.07, "Saving world...")

        config = ctx.config
        if not config.starting_room and ctx.chapters:
            first = ctx.chapters[0]
            config.starting_room = first.entry_location_id or first.hub_location_id or None

        ctx.report.counts["chapter"] = len(ctx.chapters)
        content = WorldContent(
            config=config,
            chapters=ctx.chapters,
            rooms=ctx.rooms,
            quests=ctx.quests,
            enemies=ctx.enemies,
            items=ctx.items,
            maps=ctx.maps,
        )
        ctx.report.state = GenerationState.DONE.value
        self._last_world_path = self.store.write_world(content, ctx.report)
        self._emit_status(f"World saved to {self._last_world_path}")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _request(
        self,
        ctx: GenerationContext,
        prompt: str,
        kind: ArtifactKind,
        artifact_id: str,
    ) -> ModelResponse | None:
        """Send one prompt; a terminal client failure becomes a Transport entry and None"""
        label = f"{kind.value} {artifact_id}"
        try:
            response = await ctx.client.send(prompt, ctx.system_prompt)
        except ModelClientError as e:
            message = f"Request for {label} failed after {e.attempts} attempts: {e.last_error}"
            ctx.report.add(ErrorKind.TRANSPORT, message, artifact_id, kind.value)
            self._emit(self.callbacks.on_error, message)
            if ctx.interaction_log is not None:
                ctx.interaction_log.log_failure(label, prompt, str(e))
            return None

        ctx.report.tokens_used += response.tokens_used
        if ctx.interaction_log is not None:
            ctx.interaction_log.log_interaction(
                label, ctx.system_prompt, prompt, response.content, response.tokens_used, response.attempts
            )
        return response

    def _report_failure(self, ctx: GenerationContext, result: ValidationResult, kind: ArtifactKind, artifact_id: str):
        """One entry for an artifact that could not be used at all"""
        error_kind = ErrorKind.PARSE if result.parse_failed else ErrorKind.SCHEMA
        message = "; ".join(result.errors) or "Response could not be used"
        ctx.report.add(error_kind, message, artifact_id, kind.value)
        logger.warning(f"{kind.value} {artifact_id} skipped: {message}")
        self._emit(self.callbacks.on_error, f"{kind.value} {artifact_id}: {message}")

    def _report_schema(self, ctx: GenerationContext, result: ValidationResult, kind: ArtifactKind, artifact_id: str):
        for error in result.errors:
            ctx.report.add(ErrorKind.SCHEMA, error, artifact_id, kind.value)
        for warning in result.warnings:
            ctx.report.add(ErrorKind.SCHEMA, warning, artifact_id, kind.value, Severity.WARNING)

    def _log_validation(self, ctx: GenerationContext, label: str, result: ValidationResult):
        if ctx.interaction_log is not None:
            ctx.interaction_log.log_validation(label, result.errors, result.warnings)

    def _enter_stage(self, ctx: GenerationContext, state: GenerationState, message: str):
        self._set_state(state)
        self._stage_progress(ctx, state, 0.0, message)

    def _stage_progress(self, ctx: GenerationContext, state: GenerationState, fraction: float, message: str):
        stages = list(_STAGE_PROGRESS)
        start = _STAGE_PROGRESS[state]
        following = stages.index(state) + 1
        end = _STAGE_PROGRESS[stages[following]] if following < len(stages) else 1.0
        within_chapter = start + (end - start) * fraction
        overall = (ctx.chapters_done + within_chapter) / max(1, ctx.chapters_planned)
        self._set_progress(overall * _CHAPTERS_SHARE, message)

    def _set_state(self, state: GenerationState):
        if state != self._state:
            logger.debug(f"State: {self._state.value} -> {state.value}")
        self._state = state

    def _set_progress(self, fraction: float, message: str):
        self._progress = fraction
        self._emit(self.callbacks.on_progress, fraction, message)
        self._emit_status(message)

    def _emit_status(self, message: str):
        self._emit(self.callbacks.on_status, message)

    def _emit_error(self, message: str):
        self._emit(self.callbacks.on_error, message)

    def _emit(self, callback: Callable | None, *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Error in generation listener: {e}")
