from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from typing import Any

import yaml


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class AppConfig:
    name: str
    project_root: str


@dataclass(frozen=True)
class PathsConfig:
    state_db: str
    sites_file: str
    run_reports_dir: str


@dataclass(frozen=True)
class SolrConfig:
    timeout_seconds: int
    max_retries: int
    backoff_seconds: float
    user_agent: str


@dataclass(frozen=True)
class IndexingConfig:
    type_field: str
    write_run_reports: bool


@dataclass(frozen=True)
class Config:
    app: AppConfig
    paths: PathsConfig
    solr: SolrConfig
    indexing: IndexingConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "app": {
        "name": "indexsync",
        "project_root": "",
    },
    "paths": {
        "state_db": "var/indexsync.sqlite3",
        "sites_file": "sites.yml",
        "run_reports_dir": "var/reports",
    },
    "solr": {
        "timeout_seconds": 30,
        "max_retries": 2,
        "backoff_seconds": 2.0,
        "user_agent": "indexsync/0.1",
    },
    "indexing": {
        "type_field": "type_stringS",
        "write_run_reports": True,
    },
}

DEFAULT_CONFIG_PATH = "config.yml"


def resolve_config_path(path: str | None) -> str:
    return path or os.environ.get("IS_CONFIG_PATH") or DEFAULT_CONFIG_PATH


def load_config(path: str | None = None) -> Config:
    """Load the YAML config at ``path``, falling back to defaults when the
    default location does not exist. An explicitly named file must exist."""
    config_path = resolve_config_path(path)
    raw: Any = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, "r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    elif path or os.environ.get("IS_CONFIG_PATH"):
        raise ConfigError(f"Config file not found: {config_path}")
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping")
    cfg = _merge(copy.deepcopy(DEFAULT_CONFIG), raw)
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("Invalid config: " + "; ".join(errors))
    return _build_config(cfg)


def validate_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config", errors)
    return errors


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(base[key], value)
        else:
            base[key] = value
    return base


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, float):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            errors.append(f"{path} must be a number")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def _build_config(cfg: dict[str, Any]) -> Config:
    app_cfg = cfg["app"]
    paths_cfg = cfg["paths"]
    solr_cfg = cfg["solr"]
    indexing_cfg = cfg["indexing"]

    app = AppConfig(
        name=str(app_cfg["name"]),
        project_root=str(app_cfg["project_root"]),
    )
    paths = PathsConfig(
        state_db=str(paths_cfg["state_db"]),
        sites_file=str(paths_cfg["sites_file"]),
        run_reports_dir=str(paths_cfg["run_reports_dir"]),
    )
    solr = SolrConfig(
        timeout_seconds=int(solr_cfg["timeout_seconds"]),
        max_retries=int(solr_cfg["max_retries"]),
        backoff_seconds=float(solr_cfg["backoff_seconds"]),
        user_agent=str(solr_cfg["user_agent"]),
    )
    indexing = IndexingConfig(
        type_field=str(indexing_cfg["type_field"]),
        write_run_reports=bool(indexing_cfg["write_run_reports"]),
    )
    return Config(app=app, paths=paths, solr=solr, indexing=indexing)
