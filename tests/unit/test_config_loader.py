from __future__ import annotations

from pathlib import Path

import pytest

from jemaat_import.config.loader import ConfigError, config_from_dict, load_config
from jemaat_import.models.config_models import DEFAULT_FIELD_ALIASES, ImportConfig
from jemaat_import.models.enums import ChurchStatus, ServiceSector

FULL_YAML = """
logs_dir: ./run-logs
source:
  sheet_name: Jemaat
  null_sentinels: ["NULL", "-"]
normalizer:
  header_scan_rows: 5
  header_anchors: ["kartu keluarga"]
  field_aliases:
    national_id: ["No. NIK"]
  month_names:
    Pebruari: 2
  gender_lexicon:
    Laki-laki: ["L", "PRIA"]
    Perempuan: ["P", "WANITA"]
  defaults:
    church_status: Baptis
    sector: Sektor E
database:
  host: db.local
  port: 5433
  user: app
  database: jemaat
"""


def test_load_full_config(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "import.yml"
    cfg_path.write_text(FULL_YAML, encoding="utf-8")
    cfg = load_config(cfg_path)

    assert cfg.logs_dir == "./run-logs"
    assert cfg.source.sheet_name == "Jemaat"
    assert cfg.source.null_sentinels == frozenset({"NULL", "-"})
    n = cfg.normalizer
    assert n.header_scan_rows == 5
    assert n.header_anchors == ("kartu keluarga",)
    # 指定したフィールドのみ置き換え, 他は既定値
    assert n.aliases("national_id") == ("No. NIK",)
    assert n.aliases("household_number") == DEFAULT_FIELD_ALIASES["household_number"]
    assert n.month_names["pebruari"] == 2
    assert n.month_names["januari"] == 1
    assert n.gender_lexicon == {"Laki-laki": ("L", "PRIA"), "Perempuan": ("P", "WANITA")}
    assert n.default_church_status is ChurchStatus.BAPTIZED
    assert n.default_sector is ServiceSector.E
    assert (cfg.database.host, cfg.database.port, cfg.database.password) == ("db.local", 5433, None)


def test_empty_yaml_gives_defaults(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "import.yml"
    cfg_path.write_text("", encoding="utf-8")
    assert load_config(cfg_path) == ImportConfig()


def test_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(temp_workdir / "config" / "nope.yml")


def test_invalid_yaml(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "import.yml"
    cfg_path.write_text("source: [unclosed", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(cfg_path)


def test_non_mapping_root(temp_workdir: Path):
    cfg_path = temp_workdir / "config" / "import.yml"
    cfg_path.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="must be a mapping"):
        load_config(cfg_path)


@pytest.mark.parametrize(
    "data, where",
    [
        ({"unknown": 1}, "<root>"),
        ({"normalizer": {"field_aliases": {"nickname": ["x"]}}}, "normalizer/field_aliases"),
        ({"normalizer": {"header_scan_rows": 0}}, "normalizer/header_scan_rows"),
        ({"normalizer": {"month_names": {"januari": 13}}}, "normalizer/month_names/januari"),
        ({"normalizer": {"defaults": {"sector": "Sektor Z"}}}, "normalizer/defaults/sector"),
        ({"database": {"port": "5432"}}, "database/port"),
    ],
)
def test_schema_violations(data, where):
    with pytest.raises(ConfigError, match=f"config validation failed at {where}"):
        config_from_dict(data)
