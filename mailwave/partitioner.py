"""
Report Partitioner
Purpose: Split the enriched master collections into per-wave files, exception
files and organizational roll-ups. Every partition is a filter, projection or
join over the master frames; nothing here re-derives a wave or a status, so
all reports agree with the master export.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, List, Mapping, Optional

import pandas as pd

from .classifier import ProvisioningStatus, RoutingStatus, wave_number
from .enrichment import MASTER_COLUMNS, RECORD_SHARED
from .indexes import MultiIndex
from .wave_resolver import PILOT_WAVE

CATEGORY_UNPROVISIONED = "unprovisioned"
CATEGORY_MISSING_CREDENTIAL = "missing_credential"
CATEGORY_STRAGGLERS = "stragglers"
CATEGORY_ROUTING_FAILURES = "routing_failures"

EXCEPTION_COLUMNS = [
    "record_type", "handle", "display_name", "primary_org_code",
    "congregation_name", "department_name", "district_name",
    "wave", "wave_planned_date", "eligibility", "prior_migration_status",
    "workplace_tag", "provisioning_status",
]
ROUTING_COLUMNS = [
    "record_type", "handle", "display_name", "primary_org_code",
    "congregation_name", "department_name", "wave",
    "routing_flag", "expected_routing", "routing_status",
]
ROLLUP_COLUMNS = [
    "wave", "primary_code", "alternate_codes", "congregation_name",
    "department_name", "district_name", "valid_from", "valid_until",
    "contact_emails", "identity_count", "shared_mailbox_count", "handles",
]


def provisioning_category(status: ProvisioningStatus) -> Optional[str]:
    """Exception file a provisioning status belongs to; None for statuses without one."""
    if status is ProvisioningStatus.NEEDS_ACCOUNT_CREATION:
        return CATEGORY_UNPROVISIONED
    if status is ProvisioningStatus.MISSING_CREDENTIAL:
        return CATEGORY_MISSING_CREDENTIAL
    if status in (ProvisioningStatus.STRAGGLER_FAILED, ProvisioningStatus.STRAGGLER_NOT_SYNCED):
        return CATEGORY_STRAGGLERS
    if status in (
        ProvisioningStatus.IGNORE,
        ProvisioningStatus.MIGRATED,
        ProvisioningStatus.OK,
        ProvisioningStatus.OK_DEFERRED,
    ):
        return None
    raise ValueError(f"Unhandled provisioning status: {status!r}")


def wave_sort_key(label: str):
    """Pilot first, then W1, W2, ... numerically, then anything else by name."""
    if label == PILOT_WAVE:
        return (0, 0, label)
    number = wave_number(label)
    if number is not None:
        return (1, number, label)
    return (2, 0, label)


def wave_labels(*frames: pd.DataFrame) -> List[str]:
    labels = set()
    for frame in frames:
        if not frame.empty:
            labels.update(v for v in frame["wave"].dropna().unique() if v)
    return sorted(labels, key=wave_sort_key)


def _project(frame: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    return frame[[c for c in columns if c in frame.columns]].reset_index(drop=True)


def _with_category(frame: pd.DataFrame) -> pd.Series:
    if frame.empty:
        return pd.Series([], dtype=object)
    return frame["provisioning_status"].map(lambda s: provisioning_category(ProvisioningStatus(s)))


def _routing_failed(frame: pd.DataFrame) -> pd.Series:
    if frame.empty:
        return pd.Series([], dtype=bool)
    return frame["routing_status"].map(lambda s: RoutingStatus(s).is_failure).astype(bool)


def build_org_rollup(
    wave: str,
    records: pd.DataFrame,
    org_by_any_code: MultiIndex,
    admin_stats: Mapping[str, Mapping[str, object]],
) -> pd.DataFrame:
    """One row per org unit reached by a record of this wave, joined by primary or alternate code."""
    units: "OrderedDict[str, Dict[str, object]]" = OrderedDict()
    for rec in records.itertuples(index=False):
        for unit in org_by_any_code.get_all(rec.primary_org_code):
            key = unit.primary_code or ",".join(unit.alternate_codes)
            entry = units.get(key)
            if entry is None:
                entry = {
                    "wave": wave,
                    "primary_code": unit.primary_code,
                    "alternate_codes": ",".join(unit.alternate_codes),
                    "congregation_name": unit.congregation_name,
                    "department_name": unit.department_name,
                    "district_name": unit.district_name,
                    "valid_from": unit.valid_from,
                    "valid_until": unit.valid_until,
                    "contact_emails": unit.contact_emails,
                    "identity_count": 0,
                    "shared_mailbox_count": 0,
                    "handles": [],
                }
                units[key] = entry
            if rec.record_type == RECORD_SHARED:
                entry["shared_mailbox_count"] += 1
            else:
                entry["identity_count"] += 1
            entry["handles"].append(rec.handle)

    rows = []
    for entry in units.values():
        entry["handles"] = ", ".join(entry["handles"])
        stats = admin_stats.get(entry["primary_code"]) or {}
        for name, value in stats.items():
            entry[f"stats_{name}"] = value
        rows.append(entry)

    if not rows:
        return pd.DataFrame(columns=ROLLUP_COLUMNS)
    frame = pd.DataFrame(rows)
    stat_cols = sorted(c for c in frame.columns if c.startswith("stats_"))
    return frame[ROLLUP_COLUMNS + stat_cols]


class PartitionSet:
    """Named partitions in export order"""

    def __init__(self):
        self.frames: "OrderedDict[str, pd.DataFrame]" = OrderedDict()
        self.wave_labels: List[str] = []

    def add(self, name: str, frame: pd.DataFrame) -> None:
        if name in self.frames:
            raise ValueError(f"Duplicate partition name: {name}")
        self.frames[name] = frame

    def __getitem__(self, name: str) -> pd.DataFrame:
        return self.frames[name]

    def __iter__(self):
        return iter(self.frames.items())

    def __len__(self) -> int:
        return len(self.frames)


def partition_reports(
    identities: pd.DataFrame,
    shared: pd.DataFrame,
    org_by_any_code: MultiIndex,
    admin_stats: Optional[Mapping[str, Mapping[str, object]]] = None,
) -> PartitionSet:
    admin_stats = admin_stats or {}
    if shared is None:
        shared = pd.DataFrame(columns=MASTER_COLUMNS)
    parts = PartitionSet()
    parts.wave_labels = wave_labels(identities, shared)

    for label in parts.wave_labels:
        parts.add(f"wave_{label}", identities[identities["wave"] == label].reset_index(drop=True))
        parts.add(f"shared_wave_{label}", shared[shared["wave"] == label].reset_index(drop=True))

    combined = combine_masters(identities, shared)
    categories = _with_category(combined)
    for category in (CATEGORY_UNPROVISIONED, CATEGORY_MISSING_CREDENTIAL, CATEGORY_STRAGGLERS):
        parts.add(category, _project(combined[categories == category], EXCEPTION_COLUMNS))
    parts.add(CATEGORY_ROUTING_FAILURES, _project(combined[_routing_failed(combined)], ROUTING_COLUMNS))

    for label in parts.wave_labels:
        in_wave = combined[combined["wave"] == label]
        parts.add(f"org_rollup_{label}", build_org_rollup(label, in_wave, org_by_any_code, admin_stats))

    return parts


def combine_masters(identities: pd.DataFrame, shared: Optional[pd.DataFrame]) -> pd.DataFrame:
    frames = [f for f in (identities, shared) if f is not None and not f.empty]
    if not frames:
        return pd.DataFrame(columns=MASTER_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def wave_summary(identities: pd.DataFrame, shared: Optional[pd.DataFrame]) -> pd.DataFrame:
    """Record counts per wave and provisioning status (wave 'none' for unresolved)."""
    combined = combine_masters(identities, shared)
    if combined.empty:
        return pd.DataFrame(columns=["wave", "total"])
    waves = combined["wave"].fillna("none").replace("", "none").rename("wave")
    table = pd.crosstab(waves, combined["provisioning_status"])
    table.columns.name = None
    table["total"] = table.sum(axis=1)
    order = sorted(table.index, key=lambda w: (w == "none", wave_sort_key(w)))
    return table.loc[order].reset_index()
