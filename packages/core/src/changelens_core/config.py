import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from changelens_core.collector import DEFAULT_IGNORED_AUTHORS, CollectionPolicy
from changelens_core.errors import ConfigurationError

DEFAULT_CONFIG: dict = {
    "repo": "antrea-io/antrea",
    "model": "anthropic",
    "changelog_dir": "CHANGELOG",
    "changelog_prefix": "CHANGELOG",
    "changelog_extension": "md",
    "mainline_branch": "main",
    "release_branch_format": "release-{major}.{minor}",
    "release_note_label": "action/release-note",
    "cherry_pick_label": "kind/cherry-pick",
    "ignored_authors": sorted(DEFAULT_IGNORED_AUTHORS),
    "style_reference_count": 3,
    "prompt_template": None,  # None = use built-in template; set to a path string to override
    "store": "noop",  # "noop" or "directory"
    "store_path": ".",
}

BUILTIN_PROMPTS_DIR = Path(__file__).parent / "prompts"
_BUILTIN_TEMPLATE = BUILTIN_PROMPTS_DIR / "changelog.md"

PROVIDERS = ("anthropic", "openai")


def load_config(config_path: str = ".changelens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .changelens.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "ignored_authors": list(DEFAULT_CONFIG["ignored_authors"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigurationError(f"{config_path} must contain a mapping, got {type(file_config).__name__}")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_prompt_template(config: dict) -> str:
    """
    Load the classifier preamble.

    If ``prompt_template`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in template.
    """
    custom_path = config.get("prompt_template")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise ConfigurationError(f"Prompt template not found: {custom_path}")
        return p.read_text()

    if _BUILTIN_TEMPLATE.exists():
        return _BUILTIN_TEMPLATE.read_text()

    raise ConfigurationError("No prompt template configured and built-in default is missing.")


def parse_model_id(model_id: str) -> tuple[str, Optional[str]]:
    """Split ``provider[:model-name]`` into its parts.

    ``anthropic`` selects the provider's default model;
    ``openai:gpt-4o-mini`` pins a specific one.
    """
    if not model_id or not isinstance(model_id, str):
        raise ConfigurationError("A model identifier is required (e.g. 'anthropic' or 'openai:gpt-4o').")
    provider, sep, name = model_id.strip().partition(":")
    provider = provider.strip().lower()
    if provider not in PROVIDERS:
        raise ConfigurationError(f"Unknown model provider: {provider!r}. Choose one of: {', '.join(PROVIDERS)}.")
    if sep and not name.strip():
        raise ConfigurationError(f"Malformed model identifier {model_id!r}: missing model name after ':'.")
    return provider, (name.strip() or None)


@dataclass(frozen=True)
class ReleaseSettings:
    """Immutable view of the config entries the pipeline reads."""

    repo: str
    changelog_dir: str
    changelog_prefix: str
    changelog_extension: str
    mainline_branch: str
    release_branch_format: str
    style_reference_count: int
    collection: CollectionPolicy

    @classmethod
    def from_config(cls, config: dict) -> "ReleaseSettings":
        repo = config.get("repo")
        if not repo or "/" not in repo:
            raise ConfigurationError(f"'repo' must be in owner/name format, got {repo!r}")
        fmt = config["release_branch_format"]
        if "{major}" not in fmt or "{minor}" not in fmt:
            raise ConfigurationError(f"'release_branch_format' must contain {{major}} and {{minor}}, got {fmt!r}")
        try:
            style_reference_count = int(config["style_reference_count"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"'style_reference_count' must be an integer, got {config['style_reference_count']!r}"
            ) from e
        return cls(
            repo=repo,
            changelog_dir=config["changelog_dir"],
            changelog_prefix=config["changelog_prefix"],
            changelog_extension=config.get("changelog_extension") or "md",
            mainline_branch=config["mainline_branch"],
            release_branch_format=fmt,
            style_reference_count=style_reference_count,
            collection=CollectionPolicy(
                release_note_label=config["release_note_label"],
                cherry_pick_label=config["cherry_pick_label"],
                ignored_authors=frozenset(config.get("ignored_authors") or ()),
            ),
        )
