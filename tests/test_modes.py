from pathlib import Path

from vortex.llm.modes import ModeRegistry
from vortex.llm.schemas import TaskMode


def test_every_mode_has_a_preamble() -> None:
    registry = ModeRegistry()

    assert registry.count() == len(TaskMode)
    for mode in TaskMode:
        assert registry.get_preamble(mode)


def test_build_prompt_prepends_preamble() -> None:
    registry = ModeRegistry()

    prompt = registry.build_prompt(TaskMode.REFACTOR, "x=1")

    assert prompt.startswith("You are an expert at code refactoring.")
    assert prompt.endswith("\n\nx=1")


def test_missing_mode_falls_back_to_generate(tmp_path: Path) -> None:
    definitions = tmp_path / "modes.yaml"
    definitions.write_text(
        "modes:\n"
        "  - key: generate\n"
        "    preamble: Generate code.\n"
        "  - key: not-a-mode\n"
        "    preamble: ignored\n"
    )

    registry = ModeRegistry(definitions)

    assert registry.count() == 1
    assert registry.build_prompt(TaskMode.DOCUMENT, "f") == "Generate code.\n\nf"


def test_missing_file_passes_prompt_through(tmp_path: Path) -> None:
    registry = ModeRegistry(tmp_path / "absent.yaml")

    assert registry.count() == 0
    assert registry.build_prompt(TaskMode.GENERATE, "hello") == "hello"
