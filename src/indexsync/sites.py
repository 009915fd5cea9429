from __future__ import annotations

import hashlib
import os
from typing import Any

import jsonschema
import yaml

from .config import ConfigError
from .models import Site, SolrEndpoint, TypeBinding

SITES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["sites"],
    "properties": {
        "sites": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["identifier", "domain", "root_page_id"],
                "additionalProperties": False,
                "properties": {
                    "identifier": {"type": "string", "minLength": 1},
                    "domain": {"type": "string", "minLength": 1},
                    "root_page_id": {"type": "integer", "minimum": 1},
                    "site_hash": {"type": "string", "minLength": 1},
                    "solr": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "required": ["host", "core"],
                            "additionalProperties": False,
                            "properties": {
                                "scheme": {"enum": ["http", "https"]},
                                "host": {"type": "string"},
                                "port": {"type": "integer"},
                                "path": {"type": "string"},
                                "core": {"type": "string"},
                                "timeout_seconds": {"type": "integer", "minimum": 1},
                            },
                        },
                    },
                    "types": {
                        "type": "object",
                        "additionalProperties": {
                            "type": "object",
                            "additionalProperties": False,
                            "properties": {
                                "table": {"type": "string"},
                                "indexer": {"type": "string"},
                                "indexer_config": {"type": "object"},
                                "additional_where": {"type": ["string", "null"]},
                                "enabled": {"type": "boolean"},
                            },
                        },
                    },
                },
            },
        }
    },
}


def load_sites(path: str) -> list[Site]:
    if not os.path.exists(path):
        raise ConfigError(f"Sites file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    return parse_sites(data)


def parse_sites(data: Any) -> list[Site]:
    try:
        jsonschema.validate(data, SITES_SCHEMA)
    except jsonschema.ValidationError as exc:
        location = ".".join(str(part) for part in exc.absolute_path) or "sites"
        raise ConfigError(f"Invalid sites config at {location}: {exc.message}") from exc

    sites: list[Site] = []
    seen: set[str] = set()
    for entry in data["sites"]:
        identifier = entry["identifier"]
        if identifier in seen:
            raise ConfigError(f"Duplicate site identifier {identifier}")
        seen.add(identifier)
        sites.append(_site_from_dict(entry))
    return sites


def compute_site_hash(identifier: str, domain: str) -> str:
    return hashlib.sha1(f"{identifier}:{domain}".encode("utf-8")).hexdigest()


def _site_from_dict(entry: dict[str, Any]) -> Site:
    identifier = entry["identifier"]
    domain = entry["domain"]
    bindings = {
        name: _binding_from_dict(name, raw or {})
        for name, raw in (entry.get("types") or {}).items()
    }
    endpoints = tuple(_endpoint_from_dict(raw) for raw in entry.get("solr") or [])
    return Site(
        identifier=identifier,
        domain=domain,
        root_page_id=int(entry["root_page_id"]),
        site_hash=entry.get("site_hash") or compute_site_hash(identifier, domain),
        bindings=bindings,
        endpoints=endpoints,
    )


def _binding_from_dict(name: str, raw: dict[str, Any]) -> TypeBinding:
    return TypeBinding(
        name=name,
        table=str(raw.get("table") or name),
        indexer=str(raw.get("indexer") or "record"),
        indexer_config=dict(raw.get("indexer_config") or {}),
        additional_where=raw.get("additional_where"),
        enabled=bool(raw.get("enabled", True)),
    )


def _endpoint_from_dict(raw: dict[str, Any]) -> SolrEndpoint:
    return SolrEndpoint(
        scheme=str(raw.get("scheme") or "http"),
        host=str(raw["host"]),
        port=int(raw.get("port") or 8983),
        path=str(raw.get("path") or "/solr"),
        core=str(raw["core"]),
        timeout_seconds=raw.get("timeout_seconds"),
    )
