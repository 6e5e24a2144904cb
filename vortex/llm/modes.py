"""Registry of task-mode preambles.

Loads mode definitions from YAML and turns (mode, prompt) into the exact
text handed to every backend.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel

from vortex.llm.schemas import TaskMode

logger = logging.getLogger(__name__)

DEFINITIONS_DIR = Path(__file__).parent / "definitions"


class ModeDefinition(BaseModel):
    key: TaskMode
    preamble: str


class ModeRegistry:
    """Loads and serves task-mode preambles."""

    def __init__(self, definitions_file: Optional[Path] = None) -> None:
        self.definitions_file = definitions_file or DEFINITIONS_DIR / "modes.yaml"
        self._modes: dict[TaskMode, ModeDefinition] = {}
        self._load_modes()

    def _load_modes(self) -> None:
        """Load modes from the YAML file."""
        if not self.definitions_file.exists():
            logger.warning(f"Modes file not found: {self.definitions_file}")
            return

        with open(self.definitions_file) as f:
            data = yaml.safe_load(f) or {}

        for mode_data in data.get("modes", []):
            try:
                mode = ModeDefinition(**mode_data)
                self._modes[mode.key] = mode
            except Exception as e:
                logger.error(f"Failed to load mode definition: {e}")

        logger.debug(f"Loaded {len(self._modes)} task modes")

    def count(self) -> int:
        return len(self._modes)

    def get_preamble(self, mode: TaskMode) -> str:
        """Preamble for a mode, falling back to the generate preamble."""
        definition = self._modes.get(mode) or self._modes.get(TaskMode.GENERATE)
        return definition.preamble.strip() if definition else ""

    def build_prompt(self, mode: TaskMode, prompt: str) -> str:
        """Prepend the mode preamble to the user prompt."""
        preamble = self.get_preamble(mode)
        if not preamble:
            return prompt
        return f"{preamble}\n\n{prompt}"


_registry: Optional[ModeRegistry] = None


def get_mode_registry() -> ModeRegistry:
    """Get the shared mode registry (loaded on first use)."""
    global _registry
    if _registry is None:
        _registry = ModeRegistry()
    return _registry
