"""Unified configuration loaded from .transcripts.toml, env vars, and CLI flags.

Loading order: defaults → TOML file → env vars → CLI flags.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".transcripts.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG = Path("~/.config/transcripts/config.toml")


class SourcesConfig(BaseModel):
    """[sources] section: where each assistant keeps its logs."""

    claude: str = "~/.claude/projects"
    codex: str = "~/.codex/sessions"
    opencode: str = "~/.local/share/opencode/storage"

    def directories(self) -> dict[str, Path]:
        """Expanded directory per source name."""
        return {
            "claude": Path(self.claude).expanduser(),
            "codex": Path(self.codex).expanduser(),
            "opencode": Path(self.opencode).expanduser(),
        }


class OutputConfig(BaseModel):
    """[output] section."""

    directory: str = "~/transcripts"

    @property
    def path(self) -> Path:
        return Path(self.directory).expanduser()


class SearchConfig(BaseModel):
    """[search] section."""

    transcripts_dir: str = "~/transcripts"
    days: int = 90
    limit: int = 20
    context_lines: int = 2

    @property
    def path(self) -> Path:
        return Path(self.transcripts_dir).expanduser()


class TranscriptsConfig(BaseModel):
    """Top-level configuration model."""

    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)


def load_config(path: str | Path | None = None) -> TranscriptsConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .transcripts.toml in CWD
    3. ~/.config/transcripts/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged TranscriptsConfig.
    """
    data: dict[str, object] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        global_config = GLOBAL_CONFIG.expanduser()
        if not data and global_config.exists():
            data = _load_toml(global_config)
            logger.info("Loaded config from %s", global_config)

    config = TranscriptsConfig.model_validate(data) if data else TranscriptsConfig()

    return _apply_env_vars(config)


def merge_cli_overrides(config: TranscriptsConfig, **cli_kwargs: object) -> TranscriptsConfig:
    """Overlay explicitly-set CLI flags onto the config.

    Only overrides values where the CLI flag was explicitly provided
    (i.e., not None).

    Args:
        config: Base config.
        **cli_kwargs: CLI flag values, keyed as ``<section>_<field>``
            (e.g., ``output_directory``, ``search_days``).

    Returns:
        Updated config with CLI overrides applied.
    """
    data = config.model_dump()

    mapping: dict[str, tuple[str, str]] = {
        "output_directory": ("output", "directory"),
        "claude_dir": ("sources", "claude"),
        "codex_dir": ("sources", "codex"),
        "opencode_dir": ("sources", "opencode"),
        "transcripts_dir": ("search", "transcripts_dir"),
        "search_days": ("search", "days"),
        "search_limit": ("search", "limit"),
        "search_context": ("search", "context_lines"),
    }

    for key, value in cli_kwargs.items():
        if value is None:
            continue
        if key in mapping:
            section, field = mapping[key]
            data[section][field] = str(value) if isinstance(value, Path) else value

    return TranscriptsConfig.model_validate(data)


def _load_toml(path: Path) -> dict[str, object]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _apply_env_vars(config: TranscriptsConfig) -> TranscriptsConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "TRANSCRIPTS_DIR": ("search", "transcripts_dir"),
        "TRANSCRIPTS_OUTPUT_DIR": ("output", "directory"),
        "TRANSCRIPTS_CLAUDE_DIR": ("sources", "claude"),
        "TRANSCRIPTS_CODEX_DIR": ("sources", "codex"),
        "TRANSCRIPTS_OPENCODE_DIR": ("sources", "opencode"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    return TranscriptsConfig.model_validate(data)
