"""
Run configuration models - world brief, generation settings, provider settings.

These are inputs only. They are loaded from a YAML run file (or rebuilt from a
persisted config.json manifest) and never mutated by the pipeline, except for
the chapter registry on WorldGenerationConfig.
"""

import logging
from datetime import datetime
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    """Base for documents whose wire format uses camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CustomParameter(CamelModel):
    """Free-form key/value hint passed through to prompts"""
    key: str
    value: str


class WorldBrief(CamelModel):
    """Creative parameters for a world. Saved as world_prompt.json."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    world_name: str = ""
    theme: str = ""                 # e.g. "dark fantasy", "steampunk"
    tone: str = ""                  # e.g. "gritty", "whimsical"
    era: str = ""
    setting_description: str = ""
    key_locations: list[str] = Field(default_factory=list)
    major_factions: list[str] = Field(default_factory=list)
    main_conflict: str = ""
    protagonist_role: str = ""
    narrative_themes: list[str] = Field(default_factory=list)
    writing_style: str = ""
    dialogue_tone: str = ""
    custom_parameters: list[CustomParameter] = Field(default_factory=list)


class GenerationSettings(CamelModel):
    """Quantities and ratios controlling the scale of a run"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    # Scale
    total_chapters: int = Field(default=5, ge=1)
    locations_per_chapter: int = Field(default=10, ge=1)
    quests_per_chapter: int = Field(default=7, ge=1)
    main_quests_per_chapter: int = Field(default=2, ge=1)

    # Content
    enemy_types_per_chapter: int = Field(default=5, ge=0)
    items_per_chapter: int = Field(default=10, ge=0)
    npcs_per_chapter: int = Field(default=8, ge=0)

    # Balance
    difficulty_variance: float = Field(default=0.3, ge=0.0, le=1.0)
    allow_hard_side_quests: bool = True

    # Location distribution (remainder is progression-gated)
    hub_location_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    quest_revealed_ratio: float = Field(default=0.6, ge=0.0, le=1.0)

    @property
    def side_quests_per_chapter(self) -> int:
        return max(0, self.quests_per_chapter - self.main_quests_per_chapter)

    def location_distribution(self) -> tuple[int, int, int]:
        """Return (hub, quest_revealed, gated) location counts for one chapter."""
        hub = int(self.locations_per_chapter * self.hub_location_ratio)
        revealed = int(self.locations_per_chapter * self.quest_revealed_ratio)
        gated = max(0, self.locations_per_chapter - hub - revealed)
        return hub, revealed, gated


class ProviderConfig(CamelModel):
    """Which provider/model to call and how politely. Never holds a credential."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    provider: str = "openai"
    model: str = "gpt-4o"
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens_per_request: int = Field(default=4000, ge=1)
    request_delay_ms: int = Field(default=1000, ge=0)
    max_retries: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=2000, ge=0)
    timeout_seconds: float = Field(default=120.0, gt=0)


class WorldGenerationConfig(CamelModel):
    """
    Everything a run needs besides the credential.

    Persisted as the config.json manifest so a later run can extend the world
    (e.g. generate the next chapter).
    """

    # Used as the world's directory name under the output directory
    world_id: str = Field(default="generated_world", pattern=r"^[A-Za-z0-9_-]+$")
    created_at: str = Field(default_factory=lambda: datetime.now().isoformat())
    world_prompt: WorldBrief = Field(default_factory=WorldBrief)
    settings: GenerationSettings = Field(default_factory=GenerationSettings)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    chapter_ids: list[str] = Field(default_factory=list)
    starting_room: str | None = None

    @property
    def generated_by(self) -> str:
        return self.provider.provider

    @classmethod
    def from_yaml(cls, path: Path) -> "WorldGenerationConfig":
        """
        Load a run file.

        Keys may be written in snake_case or camelCase. Missing provider
        fields are filled from the environment (LLM_PROVIDER / LLM_MODEL).
        """
        from worldgen.core.llm_client import get_model, get_provider

        try:
            with open(path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Run file {path} is not valid YAML: {e}") from e

        if not isinstance(raw, dict):
            raise ValueError(f"Run file {path} must contain a mapping, got {type(raw).__name__}")

        provider_data = dict(raw.get("provider") or {})
        provider_data.setdefault("provider", get_provider())
        provider_data.setdefault("model", get_model())
        raw["provider"] = provider_data

        logger.info(f"Loaded run file {path} (world_id={raw.get('world_id', raw.get('worldId'))})")
        return cls.model_validate(raw)

    def to_manifest(self) -> dict:
        """Serialize for config.json (camelCase, as the game runtime reads it)."""
        data = self.model_dump(mode="json", by_alias=True)
        data["worldName"] = self.world_prompt.world_name
        data["generatedBy"] = self.generated_by
        return data
