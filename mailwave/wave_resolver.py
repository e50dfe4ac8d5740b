"""
Wave Resolver
Purpose: Find the migration wave of an identity or shared mailbox through
three independent lookup paths and reconcile their answers.

  by-department  department name of the identity's org unit -> wave table
  by-secondary   trust code -> its own org unit -> department -> wave table
  by-fallback    raw (unpadded) org code -> wave-by-identifier table

When the paths disagree the conflict policy picks the winner and a warning
naming every path is kept on the result. Codes in the pilot set always land
in the Pilot wave.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Dict, Iterable, Mapping, Optional, Tuple

from .indexes import MultiIndex, UniqueIndex, build_multi_index, build_unique_index
from .normalizer import DEFAULT_PAD_WIDTH, normalize_code, normalize_text_key
from .records import OrgUnitRecord, WaveRule

BY_DEPARTMENT = "by-department"
BY_SECONDARY = "by-secondary"
BY_FALLBACK = "by-fallback"
PATH_ORDER = (BY_DEPARTMENT, BY_SECONDARY, BY_FALLBACK)

PILOT_WAVE = "Pilot"
PILOT_SOURCE = "Pilot_Override"


@dataclass(frozen=True)
class WaveResolution:
    wave: Optional[str]
    source: str = ""
    warning: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return bool(self.wave)


NO_WAVE = WaveResolution(None, "", None)


@dataclass(frozen=True)
class ConflictPolicy:
    """Which path wins when the paths disagree; first listed path with a value wins."""

    precedence: Tuple[str, ...] = PATH_ORDER
    name: str = "department-first"

    def winner(self, candidates: Mapping[str, str]) -> str:
        for path in self.precedence:
            if candidates.get(path):
                return path
        # unreachable while precedence covers every path
        return next(iter(candidates))


DEPARTMENT_FIRST = ConflictPolicy()


@dataclass(frozen=True)
class WaveTables:
    """Read-only lookups the resolver needs, built once per run"""

    department_waves: UniqueIndex
    raw_waves: UniqueIndex
    org_by_code: UniqueIndex
    org_by_any_code: MultiIndex

    def org_unit(self, code: Optional[str]) -> Optional[OrgUnitRecord]:
        """Owning org unit of a normalized code: primary codes first, then alternates."""
        if not code:
            return None
        return self.org_by_code.get(code) or self.org_by_any_code.first(code)

    def planned_dates(self) -> Dict[str, str]:
        """First planned date seen per wave label."""
        dates: Dict[str, str] = {}
        for table in (self.department_waves, self.raw_waves):
            for rule in table.values():
                if rule.wave_label and rule.planned_date:
                    dates.setdefault(rule.wave_label, rule.planned_date)
        return dates


def build_wave_tables(wave_rules: Iterable[WaveRule], org_units: Iterable[OrgUnitRecord]) -> WaveTables:
    rules = [r for r in wave_rules if r.wave_label]
    units = list(org_units)
    return WaveTables(
        department_waves=build_unique_index(
            rules, lambda r: normalize_text_key(r.department_key), name="waves_by_department"
        ),
        raw_waves=build_unique_index(
            rules, lambda r: normalize_text_key(r.raw_identifier_key), name="waves_by_identifier"
        ),
        org_by_code=build_unique_index(units, lambda u: u.primary_code, name="org_units_by_code"),
        org_by_any_code=build_multi_index(
            units, lambda u: u.codes(), name="org_units_by_any_code", multi_key=True
        ),
    )


def _lookup(table: Mapping[str, WaveRule], key: str) -> Optional[str]:
    if not key:
        return None
    rule = table.get(key)
    return rule.wave_label if rule else None


def candidate_waves(
    primary_code: Optional[str],
    secondary_code: Optional[str],
    department_name: Optional[str],
    tables: WaveTables,
    pad_width: int = DEFAULT_PAD_WIDTH,
) -> Dict[str, str]:
    """Wave found by each path, in path order; paths without an answer are left out."""
    found: Dict[str, Optional[str]] = {}

    found[BY_DEPARTMENT] = _lookup(tables.department_waves, normalize_text_key(department_name))

    secondary = normalize_code(secondary_code, pad_width)
    if secondary:
        trust_unit = tables.org_unit(secondary)
        if trust_unit is not None:
            found[BY_SECONDARY] = _lookup(
                tables.department_waves, normalize_text_key(trust_unit.department_name)
            )

    found[BY_FALLBACK] = _lookup(tables.raw_waves, normalize_text_key(primary_code))

    return {path: found[path] for path in PATH_ORDER if found.get(path)}


def reconcile(candidates: Mapping[str, str], policy: ConflictPolicy = DEPARTMENT_FIRST) -> WaveResolution:
    if not candidates:
        return NO_WAVE
    values = set(candidates.values())
    if len(values) == 1:
        agreed = [p for p in PATH_ORDER if p in candidates]
        return WaveResolution(values.pop(), " & ".join(agreed), None)

    winner = policy.winner(candidates)
    detail = ", ".join(f"{p}={candidates[p]}" for p in PATH_ORDER if p in candidates)
    warning = f"Wave conflict ({detail}); {winner} chosen"
    return WaveResolution(candidates[winner], winner, warning)


def resolve_wave(
    primary_code: Optional[str],
    secondary_code: Optional[str],
    department_name: Optional[str],
    tables: WaveTables,
    policy: ConflictPolicy = DEPARTMENT_FIRST,
    pilot_codes: Collection[str] = frozenset(),
    pad_width: int = DEFAULT_PAD_WIDTH,
) -> WaveResolution:
    """Resolve one record's wave. Pure: same inputs and tables, same result."""
    code = normalize_code(primary_code, pad_width)
    if code and code in pilot_codes:
        return WaveResolution(PILOT_WAVE, PILOT_SOURCE, None)
    candidates = candidate_waves(primary_code, secondary_code, department_name, tables, pad_width)
    return reconcile(candidates, policy)
