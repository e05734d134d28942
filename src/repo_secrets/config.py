"""Configuration for repo-secrets."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

import yaml

from .errors import ConfigError, SyncError
from .git import Git

REPO_ENV = "REPO_SECRETS_REPO"
PASS_ENV = "REPO_SECRETS_PASS"
CACHE_ENV = "REPO_SECRETS_CACHE"
CONFIG_ENV = "REPO_SECRETS_CONFIG"


def get_config_dir(environ: Mapping[str, str] = None) -> Path:
    """Get config directory following XDG spec."""
    environ = os.environ if environ is None else environ
    xdg_config = environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / "repo-secrets"


def get_config_file(environ: Mapping[str, str] = None) -> Path:
    """Get config file path."""
    environ = os.environ if environ is None else environ
    env_file = environ.get(CONFIG_ENV)
    if env_file:
        return Path(env_file).expanduser()
    return get_config_dir(environ) / "config.yaml"


def get_default_cache_dir(environ: Mapping[str, str] = None) -> Path:
    """Get cache directory following XDG spec."""
    environ = os.environ if environ is None else environ
    xdg_cache = environ.get("XDG_CACHE_HOME")
    if xdg_cache:
        base = Path(xdg_cache)
    else:
        base = Path.home() / ".cache"
    return base / "repo-secrets"


def read_config_file(path: Path) -> dict:
    """
    Read the optional YAML config file.

    A missing file is an empty config. Recognised keys are ``repo`` and
    ``cache_dir``; the passphrase is never read from disk.
    """
    if not path.exists():
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    problems = [
        f"config file {path}: {name} must be a string"
        for name in ("repo", "cache_dir")
        if data.get(name) is not None and not isinstance(data[name], str)
    ]
    if problems:
        raise ConfigError(problems)

    return data


def check_git_installed(git: Git = None) -> bool:
    """Check if git is installed."""
    try:
        (git or Git()).version()
        return True
    except SyncError:
        return False


@dataclass
class Settings:
    """Validated runtime settings."""

    repo_url: str
    passphrase: str
    cache_dir: Path
    config_file: Path


def load_settings(environ: Mapping[str, str] = None, git: Git = None) -> Settings:
    """
    Collect settings from the environment and config file.

    Environment variables win over the config file. Every problem found
    (missing remote, missing passphrase, missing git, bad config file) is
    reported together in a single ConfigError.
    """
    environ = os.environ if environ is None else environ
    problems = []

    config_file = get_config_file(environ)
    try:
        file_config = read_config_file(config_file)
    except ConfigError as e:
        problems.extend(e.problems)
        file_config = {}

    repo_url = environ.get(REPO_ENV) or file_config.get("repo")
    if not repo_url:
        problems.append(f"{REPO_ENV} not set")

    passphrase = environ.get(PASS_ENV)
    if not passphrase:
        problems.append(f"{PASS_ENV} not set")

    if not check_git_installed(git):
        problems.append("git not found")

    if problems:
        raise ConfigError(problems)

    cache_dir = environ.get(CACHE_ENV) or file_config.get("cache_dir")
    cache_dir = Path(cache_dir).expanduser() if cache_dir else get_default_cache_dir(environ)

    return Settings(
        repo_url=str(repo_url),
        passphrase=passphrase,
        cache_dir=cache_dir,
        config_file=config_file,
    )


def describe(environ: Mapping[str, str] = None) -> dict[str, Optional[str]]:
    """Raw configuration values for the status command (passphrase hidden)."""
    environ = os.environ if environ is None else environ
    config_file = get_config_file(environ)
    try:
        file_config = read_config_file(config_file)
    except ConfigError:
        file_config = {}

    cache_dir = environ.get(CACHE_ENV) or file_config.get("cache_dir")
    return {
        "repo": environ.get(REPO_ENV) or file_config.get("repo"),
        "passphrase": "set" if environ.get(PASS_ENV) else None,
        "cache_dir": str(Path(cache_dir).expanduser() if cache_dir else get_default_cache_dir(environ)),
        "config_file": str(config_file),
    }
