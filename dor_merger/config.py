"""
Configuration for the merge tools.

Defaults come from ``settings/config.yml`` and connection settings from
``settings/environments/<env>.yml``. Command-line flags are overlaid on the
defaults to build an immutable `JobConfig` that is passed to the job.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml

from .errors import ConfigError, UsageError

SETTINGS_ENV_VAR = "DOR_MERGER_SETTINGS"
DEFAULT_ENVIRONMENT = "development"
STDOUT_SENTINEL = "-"
LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"


@dataclass(frozen=True)
class Defaults:
    log: str = STDOUT_SENTINEL
    debug: bool = False
    purge: bool = False


@dataclass(frozen=True)
class EnvironmentProfile:
    name: str
    repository_root: Path


@dataclass(frozen=True)
class JobConfig:
    primary_id: str
    child_ids: Tuple[str, ...] = ()
    environment: str = DEFAULT_ENVIRONMENT
    log_path: str = STDOUT_SENTINEL
    debug: bool = False
    purge: bool = False
    input_path: Optional[str] = None
    skip_blank: bool = True
    report_dir: Optional[Path] = None


def settings_dir() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path(__file__).resolve().parent / "settings"


def load_defaults(path: Optional[Path] = None) -> Defaults:
    path = path or settings_dir() / "config.yml"
    if not path.is_file():
        logging.debug("No defaults file at %s; using built-in defaults", path)
        return Defaults()
    data = _load_yaml(path)
    return Defaults(
        log=str(data.get("log", STDOUT_SENTINEL)),
        debug=bool(data.get("debug", False)),
        purge=bool(data.get("purge", False)),
    )


def available_environments(directory: Optional[Path] = None) -> list[str]:
    environments_dir = (directory or settings_dir()) / "environments"
    return sorted(path.stem for path in environments_dir.glob("*.yml"))


def load_environment(name: str, directory: Optional[Path] = None) -> EnvironmentProfile:
    directory = directory or settings_dir()
    path = directory / "environments" / f"{name}.yml"
    if not path.is_file():
        choices = ", ".join(available_environments(directory)) or "none"
        raise ConfigError(f"Unknown environment {name!r} (available: {choices})")
    data = _load_yaml(path)
    root = data.get("repository_root")
    if not root:
        raise ConfigError(f"Environment {name!r} does not define repository_root ({path})")
    return EnvironmentProfile(name=name, repository_root=Path(str(root)).expanduser())


def build_job_config(
    defaults: Defaults,
    positionals: Sequence[str],
    *,
    environment: Optional[str] = None,
    log_path: Optional[str] = None,
    debug: Optional[bool] = None,
    purge: Optional[bool] = None,
    input_path: Optional[str] = None,
    skip_blank: bool = True,
    report_dir: Optional[Path] = None,
    require_primary: bool = True,
) -> JobConfig:
    """Overlay command-line values on `defaults`; ``None`` means "not given".

    With ``require_primary=False`` the identifiers come from `input_path`
    alone (a merge plan) and `positionals` may be empty.
    """
    if not positionals and require_primary:
        raise UsageError("a parent (primary) object identifier is required")
    primary_id = positionals[0] if positionals else ""
    child_ids = tuple(positionals[1:])
    if input_path is None and not child_ids:
        raise UsageError("provide child identifiers or an input file")
    return JobConfig(
        primary_id=primary_id,
        child_ids=child_ids,
        environment=environment or DEFAULT_ENVIRONMENT,
        log_path=log_path if log_path is not None else defaults.log,
        debug=debug if debug is not None else defaults.debug,
        purge=purge if purge is not None else defaults.purge,
        input_path=input_path,
        skip_blank=skip_blank,
        report_dir=report_dir,
    )


def configure_logging(log_path: str = STDOUT_SENTINEL, debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    if log_path == STDOUT_SENTINEL:
        logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)
    else:
        logging.basicConfig(
            level=level,
            format=LOG_FORMAT,
            filename=str(Path(log_path).expanduser()),
            filemode="a",
            encoding="utf-8",
        )


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping in {path}")
    return data
