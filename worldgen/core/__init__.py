"""
Core world generation logic: model client, prompts, validation, integrity
checking, persistence and the generation orchestrator.
"""

from worldgen.core.content_store import ContentStore, ContentStoreError, WorldContent
from worldgen.core.integrity import ContentIntegrityChecker, content_summary
from worldgen.core.llm_client import (
    ModelClient,
    ModelClientError,
    ModelResponse,
    ProviderError,
)
from worldgen.core.world_generator import (
    CancellationToken,
    GenerationCallbacks,
    GenerationState,
    WorldGenerator,
)

__all__ = [
    "ContentStore",
    "ContentStoreError",
    "WorldContent",
    "ContentIntegrityChecker",
    "content_summary",
    "ModelClient",
    "ModelClientError",
    "ModelResponse",
    "ProviderError",
    "CancellationToken",
    "GenerationCallbacks",
    "GenerationState",
    "WorldGenerator",
]
