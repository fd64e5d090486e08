from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DEFAULT_NULL_SENTINELS,
    DatabaseConfig,
    ImportConfig,
    NormalizerConfig,
    SourceConfig,
)
from ..models.enums import BloodType, ChurchStatus, FamilyRelationship, ServiceSector

"""YAML config loader.

Responsibilities:
- Load YAML (config/import.yml by default)
- Validate against the JSON schema shipped next to this module
- Overlay the YAML on the built-in defaults: ``field_aliases`` and
  ``month_names`` are merged per key, every other key replaces its default

An empty or absent YAML document yields the defaults.
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "load_config",
    "config_from_dict",
]

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not JSON, or ``data`` violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"config validation failed at {where}: {e.message}") from e


def _normalizer_config(raw: dict[str, Any]) -> NormalizerConfig:
    base = NormalizerConfig()
    aliases = dict(base.field_aliases)
    for field_name, values in (raw.get("field_aliases") or {}).items():
        aliases[field_name] = tuple(values)
    months = dict(base.month_names)
    months.update({k.lower(): v for k, v in (raw.get("month_names") or {}).items()})

    lexicon = raw.get("gender_lexicon", base.gender_lexicon)
    if lexicon is not None:
        lexicon = {k: tuple(v) for k, v in lexicon.items()}

    defaults = raw.get("defaults") or {}
    return NormalizerConfig(
        field_aliases=aliases,
        header_anchors=tuple(raw.get("header_anchors", base.header_anchors)),
        header_scan_rows=raw.get("header_scan_rows", base.header_scan_rows),
        month_names=months,
        female_prefix=raw.get("female_prefix", base.female_prefix),
        gender_lexicon=lexicon,
        default_relationship=FamilyRelationship(
            defaults.get("relationship", base.default_relationship.value)
        ),
        default_church_status=ChurchStatus(defaults.get("church_status", base.default_church_status.value)),
        default_sector=ServiceSector(defaults.get("sector", base.default_sector.value)),
        default_blood_type=BloodType(defaults.get("blood_type", base.default_blood_type.value)),
    )


def config_from_dict(data: dict[str, Any]) -> ImportConfig:
    """Validate ``data`` and build an ImportConfig from it."""
    _validate_config_schema(data)

    src_raw = data.get("source") or {}
    source = SourceConfig(
        sheet_name=src_raw.get("sheet_name"),
        null_sentinels=frozenset(src_raw.get("null_sentinels", DEFAULT_NULL_SENTINELS)),
    )
    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    return ImportConfig(
        source=source,
        normalizer=_normalizer_config(data.get("normalizer") or {}),
        database=db,
        logs_dir=data.get("logs_dir", "./logs"),
    )


def load_config(path: Path) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config root must be a mapping: {path}")
    return config_from_dict(data)
