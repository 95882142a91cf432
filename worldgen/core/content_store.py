"""
Content Store - the on-disk layout the game runtime reads

    <output_dir>/<world_id>/
        config.json               manifest (brief, settings, chapter ids)
        world_prompt.json
        generation_report.json
        Chapters/<chapter_id>.json
        Rooms/<room_id>.json
        Quests/<quest_id>.json
        Enemies/<enemy_id>.json
        Items/<item_id>.json
        Maps/<map_id>.json        repaired room graph per chapter
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from worldgen.models.artifacts import ChapterArtifact
from worldgen.models.config import WorldGenerationConfig
from worldgen.models.report import GenerationReport

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
WORLD_PROMPT_FILE = "world_prompt.json"
REPORT_FILE = "generation_report.json"

CHAPTERS_DIR = "Chapters"
ROOMS_DIR = "Rooms"
QUESTS_DIR = "Quests"
ENEMIES_DIR = "Enemies"
ITEMS_DIR = "Items"
MAPS_DIR = "Maps"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class ContentStoreError(Exception):
    """A persisted world is missing or unreadable"""


@dataclass
class WorldContent:
    """Every document of one world, keyed by id, as plain JSON data"""

    config: WorldGenerationConfig
    chapters: list[ChapterArtifact] = field(default_factory=list)
    rooms: dict[str, dict] = field(default_factory=dict)
    quests: dict[str, dict] = field(default_factory=dict)
    enemies: dict[str, dict] = field(default_factory=dict)
    items: dict[str, dict] = field(default_factory=dict)
    maps: dict[str, dict] = field(default_factory=dict)

    def counts(self) -> dict[str, int]:
        return {
            "chapter": len(self.chapters),
            "room": len(self.rooms),
            "quest": len(self.quests),
            "enemy": len(self.enemies),
            "item": len(self.items),
            "map": len(self.maps),
        }


def safe_filename(artifact_id: str) -> str:
    """File name for an artifact id (ids are snake_case, but models misbehave)"""
    name = _UNSAFE_CHARS.sub("_", artifact_id).strip(".")
    return f"{name or 'unnamed'}.json"


class ContentStore:
    """Reads and writes worlds under one output directory"""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def world_path(self, world_id: str) -> Path:
        return self.output_dir / world_id

    def write_world(self, content: WorldContent, report: GenerationReport | None = None) -> Path:
        """Write every document of a world, one file per artifact id."""
        config = content.config
        world_path = self.world_path(config.world_id)
        world_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Saving world: {config.world_id} -> {world_path}")

        config.chapter_ids = [chapter.chapter_id for chapter in content.chapters]
        self._write_json(world_path / CONFIG_FILE, config.to_manifest())
        self._write_json(
            world_path / WORLD_PROMPT_FILE,
            config.world_prompt.model_dump(mode="json", by_alias=True),
        )

        chapters = {
            chapter.chapter_id: chapter.model_dump(mode="json", by_alias=True)
            for chapter in content.chapters
        }
        for dirname, documents in (
            (CHAPTERS_DIR, chapters),
            (ROOMS_DIR, content.rooms),
            (QUESTS_DIR, content.quests),
            (ENEMIES_DIR, content.enemies),
            (ITEMS_DIR, content.items),
            (MAPS_DIR, content.maps),
        ):
            directory = world_path / dirname
            directory.mkdir(exist_ok=True)
            for artifact_id, document in documents.items():
                self._write_json(directory / safe_filename(artifact_id), document)
            logger.debug(f"Saved {len(documents)} documents to {dirname}/")

        if report is not None:
            report.output_path = str(world_path)
            self.write_report(world_path, report)

        logger.info(f"World saved successfully to: {world_path}")
        return world_path

    def write_report(self, world_path: Path, report: GenerationReport):
        self._write_json(Path(world_path) / REPORT_FILE, report.to_dict())

    def load_world(self, world: str | Path) -> WorldContent:
        """
        Load a persisted world.

        Args:
            world: A world id under output_dir, or a path to a world directory

        Raises:
            ContentStoreError: there is no readable config.json, or a listed
                chapter does not parse
        """
        world_path = Path(world)
        if not (world_path / CONFIG_FILE).exists():
            world_path = self.world_path(str(world))
        config_path = world_path / CONFIG_FILE
        if not config_path.exists():
            raise ContentStoreError(f"No {CONFIG_FILE} found in {world_path}")

        try:
            manifest = self._read_json(config_path)
            config = WorldGenerationConfig.model_validate(manifest)
        except ValueError as e:
            raise ContentStoreError(f"Unreadable manifest {config_path}: {e}") from e

        content = WorldContent(config=config)
        chapter_docs = self._read_dir(world_path / CHAPTERS_DIR, "chapterId")
        for chapter_id in config.chapter_ids:
            document = chapter_docs.get(chapter_id)
            if document is None:
                logger.warning(f"Chapter '{chapter_id}' listed in manifest but not found")
                continue
            try:
                content.chapters.append(ChapterArtifact.model_validate(document))
            except ValidationError as e:
                raise ContentStoreError(f"Unreadable chapter '{chapter_id}' in {world_path}: {e}") from e

        content.rooms = self._read_dir(world_path / ROOMS_DIR, "room_id")
        content.quests = self._read_dir(world_path / QUESTS_DIR, "questId")
        content.enemies = self._read_dir(world_path / ENEMIES_DIR, "enemyId")
        content.items = self._read_dir(world_path / ITEMS_DIR, "itemId")
        content.maps = self._read_dir(world_path / MAPS_DIR)

        logger.info(f"Loaded world {config.world_id}: {content.counts()}")
        return content

    def _read_dir(self, directory: Path, id_field: str | None = None) -> dict[str, dict]:
        """Read every JSON document of a directory, keyed by its id field (or file stem)."""
        documents: dict[str, dict] = {}
        if not directory.exists():
            return documents

        for file_path in sorted(directory.glob("*.json")):
            try:
                document = self._read_json(file_path)
            except ValueError as e:
                logger.warning(f"Skipping unreadable {file_path}: {e}")
                continue
            if not isinstance(document, dict):
                logger.warning(f"Skipping {file_path}: not a JSON object")
                continue

            key = file_path.stem
            if id_field and document.get(id_field):
                key = document[id_field]
            documents[key] = document
        return documents

    @staticmethod
    def _read_json(path: Path):
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    @staticmethod
    def _write_json(path: Path, data):
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
