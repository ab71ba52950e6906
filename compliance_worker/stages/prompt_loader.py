from pathlib import Path

from compliance_worker.stages.exceptions import PromptLoadError

_DEFAULT_PROMPT_DIR = Path(__file__).parent / "prompts"


def load_prompt_template(name: str, path: Path | None = None) -> str:
    """Load a stage prompt template.

    Args:
        name: Stage name; selects the bundled ``prompts/<name>.txt``.
        path: Optional override for the template file.

    Returns:
        The raw template string with ``str.format`` placeholders.

    Raises:
        PromptLoadError: if the file cannot be read.
    """
    if path is None:
        path = _DEFAULT_PROMPT_DIR / f"{name}.txt"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PromptLoadError(f"Failed to load prompt template: {exc}", stage=name) from exc


def load_json_schema(name: str, path: Path | None = None) -> str:
    """Load a stage output JSON schema (``prompts/<name>.schema.json`` by default).

    Raises:
        PromptLoadError: if the file cannot be read.
    """
    if path is None:
        path = _DEFAULT_PROMPT_DIR / f"{name}.schema.json"
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PromptLoadError(f"Failed to load JSON schema: {exc}", stage=name) from exc
