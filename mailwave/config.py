"""
Configuration Loader
Purpose: Load the business-rule knobs (pilot codes, wave threshold, domain and
marker strings, input file names) from YAML so rule changes are config edits
"""

from __future__ import annotations

import copy
import logging
import re
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Pattern, Tuple

import yaml

from .exceptions import ConfigError
from .normalizer import DEFAULT_PAD_WIDTH, normalize_code

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "migration_rules.yaml"

WAVE_PATHS = ("by-department", "by-secondary", "by-fallback")


def get_default_config() -> Dict:
    return {
        "version": "Wave_Master_v3",
        "pilot_codes": [],
        "current_wave_threshold": 1,
        "legacy_domain": "",
        "migration_marker": "M365",
        "deactivated_ou_pattern": r"OU=Deaktiviert",
        "code_pad_width": DEFAULT_PAD_WIDTH,
        "inactivity_days": 365,
        "routing_on_value": "TRUE",
        "conflict_precedence": list(WAVE_PATHS),
        "csv_delimiter": ";",
        "inputs": {
            "identities": {"file": "identities.csv", "critical": True},
            "shared_mailboxes": {"file": "shared_mailboxes.csv", "critical": False},
            "org_units": {"file": "org_units.csv", "critical": True},
            "waves": {"file": "waves.csv", "critical": True},
            "cloud_state": {"file": "license_report.csv", "critical": False},
            "credentials": {"file": "password_vault.csv", "critical": False},
            "migration_status": {"file": "migration_status.csv", "critical": False},
            "admin_stats": {"file": "admin_stats.csv", "critical": False},
        },
        "output": {
            "workbook": False,
            "fuzzy_suggestion_threshold": 80,
        },
    }


def merge_dict(base: Dict, override: Dict) -> None:
    for k, v in (override or {}).items():
        if k in base and isinstance(base[k], dict) and isinstance(v, dict):
            merge_dict(base[k], v)
        else:
            base[k] = v


class MigrationConfig:
    """Validated view over the merged configuration dictionary"""

    def __init__(self, raw: Optional[Dict] = None):
        cfg = get_default_config()
        merge_dict(cfg, copy.deepcopy(raw or {}))
        self.config = cfg

        self.version: str = str(cfg.get("version") or "")
        self.code_pad_width: int = self._as_int("code_pad_width", minimum=1)
        self.current_wave_threshold: int = self._as_int("current_wave_threshold", minimum=0)
        self.inactivity_days: int = self._as_int("inactivity_days", minimum=0)
        self.legacy_domain: str = str(cfg.get("legacy_domain") or "").strip()
        self.migration_marker: str = str(cfg.get("migration_marker") or "").strip()
        self.deactivated_ou_pattern: str = str(cfg.get("deactivated_ou_pattern") or "")
        self.deactivated_ou_regex: Optional[Pattern] = self._compile_pattern(self.deactivated_ou_pattern)
        self.routing_on_value: str = str(cfg.get("routing_on_value") or "").strip()
        self.csv_delimiter: str = str(cfg.get("csv_delimiter") or ",")
        self.pilot_codes: FrozenSet[str] = self._pilot_codes()
        self.conflict_precedence: Tuple[str, ...] = self._precedence()

        if not self.migration_marker:
            raise ConfigError("migration_marker must not be empty")
        if not self.routing_on_value:
            raise ConfigError("routing_on_value must not be empty")

    def _as_int(self, key: str, minimum: int) -> int:
        value = self.config.get(key)
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        if number < minimum:
            raise ConfigError(f"{key} must be >= {minimum}, got {number}")
        return number

    def _pilot_codes(self) -> FrozenSet[str]:
        raw = self.config.get("pilot_codes") or []
        if isinstance(raw, str):
            raw = [raw]
        # unquoted YAML numbers lose leading zeros (012 is read as octal 10)
        not_text = [c for c in raw if not isinstance(c, str)]
        if not_text:
            raise ConfigError(f"pilot_codes must be quoted strings, got {not_text!r}")
        codes = (normalize_code(c, self.code_pad_width) for c in raw)
        return frozenset(c for c in codes if c)

    @staticmethod
    def _compile_pattern(pattern: str) -> Optional[Pattern]:
        if not pattern:
            return None
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ConfigError(f"deactivated_ou_pattern is not a valid regex: {pattern!r} ({e})")

    def _precedence(self) -> Tuple[str, ...]:
        order = list(self.config.get("conflict_precedence") or WAVE_PATHS)
        unknown = [p for p in order if p not in WAVE_PATHS]
        if unknown:
            raise ConfigError(f"Unknown wave paths in conflict_precedence: {unknown}")
        # paths left out still take part, after the listed ones
        return tuple(order + [p for p in WAVE_PATHS if p not in order])

    def input_file(self, source: str) -> str:
        return self.config["inputs"][source]["file"]

    def is_critical(self, source: str) -> bool:
        return bool(self.config["inputs"][source].get("critical", False))

    def input_sources(self) -> List[str]:
        return list(self.config["inputs"].keys())

    @property
    def workbook_enabled(self) -> bool:
        return bool(self.config.get("output", {}).get("workbook", False))

    @property
    def fuzzy_suggestion_threshold(self) -> int:
        return int(self.config.get("output", {}).get("fuzzy_suggestion_threshold", 80))


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> MigrationConfig:
    """Load rules from YAML if available; fall back to defaults."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"Config file {path} not found. Using defaults.")
        return MigrationConfig()
    with open(path, "r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}")
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    cfg = MigrationConfig(raw)
    logger.info(f"Loaded config: {path} (version {cfg.version})")
    return cfg
