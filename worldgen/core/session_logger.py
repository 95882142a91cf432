"""
Per-run model interaction log.

One human-readable file per generation run holding every prompt, raw
response, failed request and validation finding, so a bad artifact can be
traced back to exactly what the model was asked and what it answered.

    logs/worldgen/<world_id>/<timestamp>_generation.log
"""

from datetime import datetime
from pathlib import Path

RULE = "═" * 70


class GenerationLogger:
    """Appends model interactions for one run to a dedicated file."""

    def __init__(self, log_dir: Path, world_id: str, model: str = ""):
        self.log_dir = Path(log_dir)
        self.world_id = world_id
        self.model = model
        self.interaction_count = 0
        self.log_file: Path | None = None

    def _open(self):
        """Open the run's file for appending, creating it with a header on first use."""
        if self.log_file is None:
            run_dir = self.log_dir / self.world_id
            run_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = run_dir / f"{datetime.now().strftime('%Y-%m-%d_%H-%M-%S')}_generation.log"
            header = (
                "World Generation Log\n"
                f"{'=' * 20}\n"
                f"World: {self.world_id}\n"
                f"Model: {self.model}\n"
                f"Started: {datetime.now().isoformat()}\n\n"
            )
            self.log_file.write_text(header, encoding="utf-8")
        return open(self.log_file, "a", encoding="utf-8")

    def _begin(self, f, label: str):
        self.interaction_count += 1
        stamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        f.write(f"{RULE}\nINTERACTION #{self.interaction_count} | {stamp} | {label}\n{RULE}\n\n")

    @staticmethod
    def _section(f, title: str, body: str):
        f.write(f"─── {title} ───\n{body}\n\n")

    def log_interaction(
        self,
        label: str,
        system_prompt: str | None,
        user_prompt: str,
        raw_response: str,
        tokens_used: int = 0,
        attempts: int = 1,
    ) -> None:
        with self._open() as f:
            self._begin(f, label)
            if system_prompt:
                self._section(f, "SYSTEM PROMPT", system_prompt)
            self._section(f, "USER PROMPT", user_prompt)
            self._section(f, "RAW RESPONSE", raw_response or "(empty)")
            f.write(f"Tokens: {tokens_used} | Attempts: {attempts}\n\n")

    def log_failure(self, label: str, user_prompt: str, error: str) -> None:
        """Log a request that never produced a response."""
        with self._open() as f:
            self._begin(f, label)
            self._section(f, "USER PROMPT", user_prompt)
            self._section(f, "ERROR", error)

    def log_validation(self, label: str, errors: list[str], warnings: list[str]) -> None:
        """Append validator findings for the previous interaction; nothing is written for a clean result."""
        if not errors and not warnings:
            return
        lines = [f"  ERROR: {e}" for e in errors] + [f"  WARNING: {w}" for w in warnings]
        with self._open() as f:
            self._section(f, f"VALIDATION ({label})", "\n".join(lines))
