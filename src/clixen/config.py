"""YAML config loader: reads clixen-config.yml into ClixenConfig."""

from pathlib import Path

import yaml

from clixen.schemas.config import ClixenConfig


def load_config(path: str | Path) -> ClixenConfig:
    """Load and validate a Clixen config file.

    Raises ``FileNotFoundError`` if the path doesn't exist and
    ``pydantic.ValidationError`` if the YAML content is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    raw = yaml.safe_load(path.read_text())
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file must be a YAML mapping, got {type(raw).__name__}")

    # YAML loads lists with only commented-out items as None; normalize to empty list.
    # Also strip empty-string or None items from actual lists.
    for key in ("discovery_keywords",):
        if key in raw:
            if raw[key] is None:
                raw[key] = []
            elif isinstance(raw[key], list):
                raw[key] = [item for item in raw[key] if item]

    # Empty section headers ("store:" with everything commented out) load as None.
    for section in ("store", "llm", "matching", "n8n"):
        if section in raw and raw[section] is None:
            del raw[section]

    return ClixenConfig(**raw)
