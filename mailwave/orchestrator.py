"""
Migration Build Orchestrator
Purpose: End-to-end run - load extracts, build indexes, enrich identities and
shared mailboxes, partition, export. Nothing is written until every record
has been enriched, so a fatal input error leaves no partial exports behind.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import pandas as pd

from .config import MigrationConfig
from .diagnostics import Diagnostics, suggest_departments
from .enrichment import RECORD_IDENTITY, RECORD_SHARED, Lookups, enrich_all
from .exceptions import CriticalInputError
from .exporter import export_frames
from .indexes import UniqueIndex, build_unique_index
from .load_files import SourceLoader, to_records
from .normalizer import normalize_code, normalize_text_key
from .partitioner import PartitionSet, combine_masters, partition_reports, wave_summary
from .records import (
    COLUMN_CANDIDATES,
    CloudState,
    Credential,
    IdentityRecord,
    MigrationStatusEntry,
    OrgUnitRecord,
    WaveRule,
    get_field_or_default,
)
from .wave_resolver import ConflictPolicy, WaveTables, build_wave_tables
from .workbook import WorkbookReport

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    identities: pd.DataFrame
    shared_mailboxes: pd.DataFrame
    partitions: PartitionSet
    diagnostics: Diagnostics
    written: Dict[str, Path] = field(default_factory=dict)
    workbook: Optional[Path] = None


def build_admin_stats(frame: Optional[pd.DataFrame], pad_width: int) -> UniqueIndex:
    """Instance id -> counters, with the id column itself dropped."""
    candidates = COLUMN_CANDIDATES["admin_stats"]["instance_id"]
    rows = [] if frame is None or frame.empty else frame.to_dict(orient="records")
    index = build_unique_index(
        rows,
        lambda r: normalize_code(get_field_or_default(r, candidates), pad_width),
        name="admin_stats_by_instance",
    )
    id_columns = {c.lower() for c in candidates}
    data = {k: {c: v for c, v in row.items() if c.lower() not in id_columns} for k, row in index.items()}
    return UniqueIndex(data, index.stats)


def unresolved_departments(master: pd.DataFrame, tables: WaveTables) -> Dict[str, int]:
    """Department names on org units that have no entry in the wave table."""
    counts: Counter = Counter()
    if master.empty:
        return {}
    for name in master["department_name"].dropna():
        if name and normalize_text_key(name) not in tables.department_waves:
            counts[name] += 1
    return dict(counts)


class MigrationBuild:
    """Main pipeline orchestrator"""

    def __init__(
        self,
        input_folder,
        output_folder,
        config: MigrationConfig,
        now: Optional[datetime] = None,
        workbook: Optional[bool] = None,
    ):
        self.input_folder = Path(input_folder)
        self.output_folder = Path(output_folder)
        self.config = config
        self.now = now or datetime.now()
        self.workbook = config.workbook_enabled if workbook is None else workbook
        self.policy = ConflictPolicy(
            precedence=config.conflict_precedence,
            name=f"{config.conflict_precedence[0].split('-', 1)[-1]}-first",
        )
        self.diagnostics = Diagnostics()

    def run(self) -> BuildResult:
        diag = self.diagnostics
        cfg = self.config

        logger.info("=" * 80)
        logger.info(f"🚀 WAVE MASTER BUILD - {cfg.version} - {self.now:%Y-%m-%d %H:%M}")
        logger.info(f"   Wave threshold: W{cfg.current_wave_threshold} | Pilot codes: {len(cfg.pilot_codes)}")
        logger.info(f"   Conflict policy: {self.policy.name} ({' > '.join(self.policy.precedence)})")
        logger.info("=" * 80)

        with diag.stage("load"):
            data = SourceLoader(self.input_folder, cfg).load_all_files()
            for source in cfg.input_sources():
                diag.check_input(source, data.get(source), cfg.is_critical(source))

        with diag.stage("index"):
            lookups, identities, shared, admin_stats = self._build_indexes(data)

        with diag.stage("enrich"):
            identity_df, identity_results = enrich_all(
                identities, lookups, cfg, self.now, self.policy, RECORD_IDENTITY
            )
            shared_df, shared_results = enrich_all(shared, lookups, cfg, self.now, self.policy, RECORD_SHARED)
            diag.record_issues(
                "identities", ((i, e.row["handle"]) for e in identity_results for i in e.issues)
            )
            diag.record_issues(
                "shared mailboxes", ((i, e.row["handle"]) for e in shared_results for i in e.issues)
            )

        with diag.stage("partition"):
            parts = partition_reports(identity_df, shared_df, lookups.waves.org_by_any_code, admin_stats)
            logger.info(f"  {len(parts):,} partitions for {len(parts.wave_labels)} waves")
            diag.check_partitions(identity_df, [parts[f"wave_{w}"] for w in parts.wave_labels])
            diag.check_partitions(shared_df, [parts[f"shared_wave_{w}"] for w in parts.wave_labels])
            suggestions = suggest_departments(
                unresolved_departments(combine_masters(identity_df, shared_df), lookups.waves),
                lookups.waves.department_waves.keys(),
                cfg.fuzzy_suggestion_threshold,
            )

        result = BuildResult(identity_df, shared_df, parts, diag)
        with diag.stage("export"):
            frames = [("master_identities", identity_df), ("master_shared_mailboxes", shared_df)]
            frames += list(parts)
            frames.append(("unresolved_departments", suggestions))
            frames.append(("diagnostics", diag.to_frame()))
            result.written = export_frames(frames, self.output_folder, cfg.csv_delimiter)
            if self.workbook:
                result.workbook = self._write_workbook(identity_df, shared_df, parts)

        self._log_summary(result)
        diag.summary()
        return result

    def _build_indexes(self, data: Mapping[str, pd.DataFrame]):
        diag = self.diagnostics
        pad = self.config.code_pad_width

        org_units = to_records(data.get("org_units"), lambda r: OrgUnitRecord.from_row(r, pad))
        wave_rules = to_records(data.get("waves"), WaveRule.from_row)
        tables = build_wave_tables(wave_rules, org_units)
        for stats in (tables.org_by_code.stats, tables.department_waves.stats, tables.raw_waves.stats):
            diag.check_index(stats)
        if self.config.is_critical("org_units") and not tables.org_by_code:
            raise CriticalInputError("org_units", "no usable organizational codes")
        if self.config.is_critical("waves") and not (tables.department_waves or tables.raw_waves):
            raise CriticalInputError("waves", "no usable wave assignments")

        cloud = build_unique_index(
            to_records(data.get("cloud_state"), CloudState.from_row), lambda c: c.key, name="cloud_state_by_handle"
        )
        credentials = build_unique_index(
            to_records(data.get("credentials"), Credential.from_row), lambda c: c.key, name="credentials_by_handle"
        )
        status = build_unique_index(
            to_records(data.get("migration_status"), MigrationStatusEntry.from_row),
            lambda s: s.key,
            name="migration_status_by_handle",
        )
        admin_stats = build_admin_stats(data.get("admin_stats"), pad)
        for index in (cloud, credentials, status, admin_stats):
            diag.check_index(index.stats)

        identities = self._unique_records(
            to_records(data.get("identities"), IdentityRecord.from_row), "identities_by_handle"
        )
        shared = self._unique_records(
            to_records(data.get("shared_mailboxes"), IdentityRecord.from_shared_row), "shared_mailboxes_by_handle"
        )
        if self.config.is_critical("identities") and not identities:
            raise CriticalInputError("identities", "no rows with a handle")

        lookups = Lookups(
            waves=tables,
            cloud_state=cloud,
            credentials=credentials,
            migration_status=status,
            planned_dates=tables.planned_dates(),
        )
        return lookups, identities, shared, admin_stats

    def _unique_records(self, records: List[IdentityRecord], name: str) -> List[IdentityRecord]:
        """Handles must be unique; duplicates are reported and the last row wins."""
        index = build_unique_index(records, lambda r: r.key, name=name)
        if index.stats.empty_keys:
            logger.warning(f"⚠️ {name}: {index.stats.empty_keys:,} rows without handle skipped")
            self.diagnostics.warn("empty_key", name, index.stats.empty_keys)
        if index.stats.duplicates:
            counts = Counter(r.key for r in records if r.key)
            for handle, n in counts.items():
                if n > 1:
                    logger.error(f"❌ Duplicate handle in {name}: {handle} ({n} rows)")
                    self.diagnostics.warn("duplicate_handle", handle, n - 1)
        logger.info(f"  {name}: {len(index):,} unique handles from {index.stats.records:,} rows")
        return list(index.values())

    def _write_workbook(self, identity_df: pd.DataFrame, shared_df: pd.DataFrame, parts: PartitionSet) -> Path:
        sheets = {
            "Wave Summary": wave_summary(identity_df, shared_df),
            "Identities": identity_df,
            "Shared Mailboxes": shared_df,
            "Unprovisioned": parts["unprovisioned"],
            "Missing Credential": parts["missing_credential"],
            "Stragglers": parts["stragglers"],
            "Routing Failures": parts["routing_failures"],
            "Warnings": self.diagnostics.to_frame(),
        }
        return WorkbookReport(self.output_folder).generate_report(
            sheets, self._summary_metrics(identity_df, shared_df, parts), self.now.strftime("%Y-%m-%d")
        )

    def _summary_metrics(self, identity_df: pd.DataFrame, shared_df: pd.DataFrame, parts: PartitionSet) -> Dict:
        def resolved(df: pd.DataFrame) -> int:
            return int((df["wave"].fillna("") != "").sum()) if not df.empty else 0

        return {
            "Run Date": self.now.strftime("%Y-%m-%d %H:%M"),
            "Rules Version": self.config.version,
            "Current Wave Threshold": f"W{self.config.current_wave_threshold}",
            "Identities": len(identity_df),
            "Identities With Wave": resolved(identity_df),
            "Shared Mailboxes": len(shared_df),
            "Shared Mailboxes With Wave": resolved(shared_df),
            "Waves": ", ".join(parts.wave_labels),
            "Unprovisioned": len(parts["unprovisioned"]),
            "Missing Credential": len(parts["missing_credential"]),
            "Stragglers": len(parts["stragglers"]),
            "Routing Failures": len(parts["routing_failures"]),
            "Warnings": self.diagnostics.warning_count,
        }

    def _log_summary(self, result: BuildResult) -> None:
        metrics = self._summary_metrics(result.identities, result.shared_mailboxes, result.partitions)
        logger.info("=" * 80)
        logger.info("✅ WAVE MASTER BUILD COMPLETE")
        logger.info("=" * 80)
        for key, value in metrics.items():
            logger.info(f"   {key}: {value}")
        logger.info(f"   Files written: {len(result.written):,} -> {self.output_folder}")
        if result.workbook:
            logger.info(f"   Workbook: {result.workbook}")
        logger.info("=" * 80)
