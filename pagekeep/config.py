"""
Configuration management for pagekeep stores.

Each store directory holds a `pagekeep.toml` with three tables:
`[store]` (version, creation time), `[search]` (candidate cap) and
`[model]` (provider name plus its constructor parameters).
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import tomli_w

from .pipeline import DEFAULT_CANDIDATE_CAP


CONFIG_FILENAME = "pagekeep.toml"
DATABASE_FILENAME = "pagekeep.db"
CONFIG_VERSION = 1


@dataclass
class ProviderConfig:
    """A provider name and the keyword arguments passed to its constructor."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoreConfig:
    """Settings for one store directory."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    candidate_cap: int = DEFAULT_CANDIDATE_CAP
    model: ProviderConfig = field(default_factory=lambda: ProviderConfig("none"))

    @property
    def config_path(self) -> Path:
        """The `pagekeep.toml` file."""
        return self.path / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        """Path to the SQLite database."""
        return self.path / DATABASE_FILENAME

    def exists(self) -> bool:
        """Whether the config file has been written yet."""
        return self.config_path.exists()


def get_default_store_path() -> Path:
    """Store directory from PAGEKEEP_STORE_PATH, else ~/.pagekeep."""
    env = os.environ.get("PAGEKEEP_STORE_PATH")
    if env:
        return Path(env).expanduser().resolve()
    return Path.home() / ".pagekeep"


def detect_default_model() -> ProviderConfig:
    """
    Pick a language model provider from the environment.

    Priority:
    1. OpenAI (if API key available)
    2. Anthropic (if API key available)
    3. Ollama (if OLLAMA_HOST is set)
    4. none: lexical search only, no enrichment
    """
    if os.environ.get("PAGEKEEP_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY"):
        return ProviderConfig("openai")
    if os.environ.get("ANTHROPIC_API_KEY"):
        return ProviderConfig("anthropic")
    if os.environ.get("OLLAMA_HOST"):
        return ProviderConfig("ollama")
    return ProviderConfig("none")


def create_default_config(store_path: Path) -> StoreConfig:
    """Config for a new store, with the model picked from the environment."""
    return StoreConfig(path=store_path, model=detect_default_model())


def load_config(store_path: Path) -> StoreConfig:
    """
    Read `pagekeep.toml` from ``store_path``. Missing tables take defaults.

    Raises:
        FileNotFoundError: If the store has no config file
        ValueError: For malformed TOML, a newer version or a bad candidate_cap
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e

    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    cap = data.get("search", {}).get("candidate_cap", DEFAULT_CANDIDATE_CAP)
    if isinstance(cap, bool) or not isinstance(cap, int) or cap < 1:
        raise ValueError(f"search.candidate_cap must be a positive integer, got {cap!r}")

    model_section = data.get("model", {"name": "none"})
    model = ProviderConfig(
        name=model_section.get("name", "none"),
        params={k: v for k, v in model_section.items() if k != "name"},
    )

    return StoreConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        candidate_cap=cap,
        model=model,
    )


def save_config(config: StoreConfig) -> None:
    """Write ``config`` as TOML, creating the store directory as needed."""
    config.path.mkdir(parents=True, exist_ok=True)

    model = {"name": config.model.name}
    model.update(config.model.params)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "search": {
            "candidate_cap": config.candidate_cap,
        },
        "model": model,
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Optional[Path] = None) -> StoreConfig:
    """
    Open the config of ``store_path`` (default store if None), writing
    a fresh one on first use.
    """
    store_path = Path(store_path) if store_path is not None else get_default_store_path()
    if (store_path / CONFIG_FILENAME).exists():
        return load_config(store_path)
    config = create_default_config(store_path)
    save_config(config)
    return config
