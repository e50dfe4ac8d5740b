"""
Record Enrichment
Purpose: One forward pass over the identities and shared mailboxes that joins
every lookup and attaches wave, eligibility, provisioning and routing fields.
Problems with a single record never stop the pass; they are recorded as
issues on the record and counted by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from .classifier import (
    MigrationState,
    classify_eligibility,
    classify_provisioning,
    classify_routing,
)
from .config import MigrationConfig
from .indexes import UniqueIndex
from .normalizer import normalize_code, normalize_handle
from .records import CloudState, IdentityRecord
from .wave_resolver import ConflictPolicy, WaveTables, resolve_wave

RECORD_IDENTITY = "identity"
RECORD_SHARED = "shared_mailbox"

# issue categories, also used as diagnostics warning keys
ISSUE_UNKNOWN_ORG = "unknown_org_code"
ISSUE_NO_ORG_CODE = "missing_org_code"
ISSUE_NO_DEPARTMENT = "org_unit_without_department"
ISSUE_NO_WAVE = "no_wave"
ISSUE_WAVE_CONFLICT = "wave_conflict"
ISSUE_NO_CLOUD_STATE = "no_cloud_state"
ISSUE_UNPARSED_STATUS = "unrecognized_migration_status"

MASTER_COLUMNS = [
    "record_type", "handle", "display_name",
    "primary_org_code", "primary_org_code_raw", "secondary_org_code",
    "congregation_name", "department_name", "district_name",
    "migration_flag", "last_login", "has_credential", "prior_migration_status",
    "home_domain", "ou_path", "workplace_tag", "routing_flag", "company",
    "wave", "wave_source", "wave_warning", "wave_planned_date",
    "eligibility", "migrate_mailbox", "migrate_storage",
    "provisioning_status", "expected_routing", "routing_status",
    "record_warning",
]


@dataclass(frozen=True)
class Lookups:
    """Every read-only index the enrichment pass consults"""

    waves: WaveTables
    cloud_state: UniqueIndex
    credentials: UniqueIndex
    migration_status: UniqueIndex
    planned_dates: Dict[str, str]


@dataclass(frozen=True)
class EnrichedRecord:
    row: Dict[str, object]
    issues: Tuple[str, ...]


def _describe(issue: str) -> str:
    return issue.replace("_", " ")


def enrich_record(
    record: IdentityRecord,
    lookups: Lookups,
    config: MigrationConfig,
    now: datetime,
    policy: ConflictPolicy,
    record_type: str = RECORD_IDENTITY,
) -> EnrichedRecord:
    issues: List[str] = []
    pad = config.code_pad_width
    handle_key = normalize_handle(record.handle)

    code = normalize_code(record.primary_org_code, pad)
    org_unit = lookups.waves.org_unit(code)
    if code is None:
        issues.append(ISSUE_NO_ORG_CODE)
    elif org_unit is None:
        issues.append(ISSUE_UNKNOWN_ORG)
    elif not org_unit.department_name:
        issues.append(ISSUE_NO_DEPARTMENT)
    department = org_unit.department_name if org_unit else None

    secondary = record.secondary_org_code if record_type == RECORD_IDENTITY else None
    resolution = resolve_wave(
        record.primary_org_code,
        secondary,
        department,
        lookups.waves,
        policy=policy,
        pilot_codes=config.pilot_codes,
        pad_width=pad,
    )
    if not resolution.resolved:
        issues.append(ISSUE_NO_WAVE)
    if resolution.warning:
        issues.append(ISSUE_WAVE_CONFLICT)

    cloud: Optional[CloudState] = lookups.cloud_state.get(handle_key)
    if cloud is None:
        issues.append(ISSUE_NO_CLOUD_STATE)

    status_entry = lookups.migration_status.get(handle_key)
    raw_status = status_entry.status if status_entry else None
    migration_state = MigrationState.parse(raw_status)
    if migration_state is MigrationState.UNKNOWN and str(raw_status).strip().lower() != "unknown":
        issues.append(ISSUE_UNPARSED_STATUS)

    if record_type == RECORD_SHARED:
        # shared mailboxes are opened by delegation, not with a personal password
        has_credential = True
    else:
        credential = lookups.credentials.get(handle_key)
        has_credential = bool(credential and credential.password)

    eligibility = classify_eligibility(cloud, record.last_login, config, now)
    provisioning = classify_provisioning(
        eligibility,
        migration_state,
        cloud.workplace_tag if cloud else None,
        has_credential,
        resolution.wave,
        config,
    )
    expected, routing = classify_routing(eligibility, provisioning, cloud, resolution.wave, config)

    row = {
        "record_type": record_type,
        "handle": record.handle,
        "display_name": record.display_name,
        "primary_org_code": code,
        "primary_org_code_raw": record.primary_org_code,
        "secondary_org_code": normalize_code(secondary, pad),
        "congregation_name": org_unit.congregation_name if org_unit else None,
        "department_name": department,
        "district_name": org_unit.district_name if org_unit else None,
        "migration_flag": record.migration_flag,
        "last_login": record.last_login,
        "has_credential": has_credential,
        "prior_migration_status": migration_state.value if migration_state else None,
        "home_domain": cloud.home_domain if cloud else None,
        "ou_path": cloud.ou_path if cloud else None,
        "workplace_tag": cloud.workplace_tag if cloud else None,
        "routing_flag": cloud.routing_flag if cloud else None,
        "company": cloud.company if cloud else None,
        "wave": resolution.wave,
        "wave_source": resolution.source,
        "wave_warning": resolution.warning,
        "wave_planned_date": lookups.planned_dates.get(resolution.wave) if resolution.wave else None,
        "eligibility": eligibility.eligibility.value,
        "migrate_mailbox": eligibility.migrate_mailbox,
        "migrate_storage": eligibility.migrate_storage,
        "provisioning_status": provisioning.value,
        "expected_routing": expected,
        "routing_status": routing.value,
        "record_warning": "; ".join(_describe(i) for i in issues) or None,
    }
    return EnrichedRecord(row, tuple(issues))


def enrich_all(
    records: Iterable[IdentityRecord],
    lookups: Lookups,
    config: MigrationConfig,
    now: datetime,
    policy: ConflictPolicy,
    record_type: str = RECORD_IDENTITY,
) -> Tuple[pd.DataFrame, List[EnrichedRecord]]:
    """Enrich every record once; returns the master frame and the per-record results."""
    enriched = [enrich_record(r, lookups, config, now, policy, record_type) for r in records]
    frame = pd.DataFrame([e.row for e in enriched], columns=MASTER_COLUMNS)
    return frame, enriched
