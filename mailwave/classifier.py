"""
Status Classifier
Purpose: Decide per identity whether the mailbox migrates at all
(eligibility), how far its provisioning is (provisioning status) and whether
its cloud mail routing matches its wave (routing status).

All functions are pure; "now" and the config are passed in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional, Tuple

import pandas as pd

from .config import MigrationConfig
from .normalizer import normalize_text_key
from .records import CloudState
from .wave_resolver import PILOT_WAVE

LOGIN_FORMATS = (
    "%d.%m.%Y %H:%M:%S",
    "%d.%m.%Y %H:%M",
    "%d.%m.%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
)

_WAVE_NUMBER_RE = re.compile(r"^W(\d+)$", re.IGNORECASE)


class Eligibility(str, Enum):
    ACTIVE = "active"
    BUSINESS = "business"
    INACTIVE = "inactive"
    DEACTIVATED = "deactivated"
    LEGACY_DOMAIN = "domain-excluded"


class MigrationState(str, Enum):
    SYNCED = "synced"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> Optional["MigrationState"]:
        """None when there is no entry; unrecognized text counts as UNKNOWN."""
        key = normalize_text_key(raw)
        if not key:
            return None
        for state in cls:
            if state.value == key:
                return state
        return cls.UNKNOWN


class ProvisioningStatus(str, Enum):
    IGNORE = "ignore"
    MIGRATED = "migrated"
    NEEDS_ACCOUNT_CREATION = "needs account creation"
    MISSING_CREDENTIAL = "missing credential"
    STRAGGLER_FAILED = "straggler (failed)"
    STRAGGLER_NOT_SYNCED = "straggler (not synced)"
    OK_DEFERRED = "ok, deferred"
    OK = "ok"


class RoutingStatus(str, Enum):
    OK = "routing ok"
    SHOULD_BE_OFF = "failure (should not be on)"
    SHOULD_BE_ON = "failure (should be on)"
    NOT_EVALUATED = ""

    @property
    def is_failure(self) -> bool:
        if self is RoutingStatus.SHOULD_BE_OFF or self is RoutingStatus.SHOULD_BE_ON:
            return True
        if self is RoutingStatus.OK or self is RoutingStatus.NOT_EVALUATED:
            return False
        raise ValueError(f"Unhandled routing status: {self!r}")


class WavePosition(str, Enum):
    PAST = "past"
    CURRENT_OR_FUTURE = "current_or_future"
    UNRESOLVED = "unresolved"


ROUTING_ON = "on"
ROUTING_OFF = "off"


@dataclass(frozen=True)
class EligibilityResult:
    eligibility: Eligibility
    migrate_mailbox: bool
    migrate_storage: bool
    is_deactivated: bool = False
    is_legacy_domain: bool = False
    is_business: bool = False
    is_long_inactive: bool = False


def parse_last_login(raw: Any) -> Optional[datetime]:
    """Parse German or ISO login timestamps; None when unparsable."""
    if raw is None or (isinstance(raw, float) and raw != raw):
        return None
    text = str(raw).strip()
    if not text:
        return None
    for fmt in LOGIN_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    parsed = pd.to_datetime(text, errors="coerce", dayfirst=True)
    if pd.isna(parsed):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    return parsed.to_pydatetime()


def _flags_for(eligibility: Eligibility) -> Tuple[bool, bool]:
    """(migrate_mailbox, migrate_storage) for each classification."""
    if eligibility is Eligibility.ACTIVE:
        return True, True
    if eligibility is Eligibility.BUSINESS:
        return False, True
    if eligibility in (Eligibility.INACTIVE, Eligibility.DEACTIVATED, Eligibility.LEGACY_DOMAIN):
        return False, False
    raise ValueError(f"Unhandled eligibility: {eligibility!r}")


def classify_eligibility(
    cloud: Optional[CloudState],
    last_login: Any,
    config: MigrationConfig,
    now: datetime,
) -> EligibilityResult:
    ou_path = cloud.ou_path if cloud else None
    domain = normalize_text_key(cloud.home_domain if cloud else None)
    tag = cloud.workplace_tag if cloud else None

    pattern = config.deactivated_ou_regex
    is_deactivated = bool(ou_path and pattern is not None and pattern.search(ou_path))
    is_legacy_domain = bool(domain and domain == normalize_text_key(config.legacy_domain))
    is_business = bool(tag) and not has_marker(tag, config)
    login = parse_last_login(last_login)
    is_long_inactive = login is not None and (now - login) >= timedelta(days=config.inactivity_days)

    if is_deactivated:
        eligibility = Eligibility.DEACTIVATED
    elif is_legacy_domain:
        eligibility = Eligibility.LEGACY_DOMAIN
    elif is_business:
        eligibility = Eligibility.BUSINESS
    elif is_long_inactive:
        eligibility = Eligibility.INACTIVE
    else:
        eligibility = Eligibility.ACTIVE

    migrate_mailbox, migrate_storage = _flags_for(eligibility)
    return EligibilityResult(
        eligibility,
        migrate_mailbox,
        migrate_storage,
        is_deactivated=is_deactivated,
        is_legacy_domain=is_legacy_domain,
        is_business=is_business,
        is_long_inactive=is_long_inactive,
    )


def has_marker(workplace_tag: Any, config: MigrationConfig) -> bool:
    tag = normalize_text_key(workplace_tag)
    return bool(tag) and normalize_text_key(config.migration_marker) in tag


def wave_number(wave: Optional[str]) -> Optional[int]:
    match = _WAVE_NUMBER_RE.match((wave or "").strip())
    return int(match.group(1)) if match else None


def wave_position(wave: Optional[str], threshold: int) -> WavePosition:
    """Pilot and waves below the threshold have already run."""
    if (wave or "").strip().lower() == PILOT_WAVE.lower():
        return WavePosition.PAST
    number = wave_number(wave)
    if number is None:
        return WavePosition.UNRESOLVED
    return WavePosition.PAST if number < threshold else WavePosition.CURRENT_OR_FUTURE


def classify_provisioning(
    eligibility: EligibilityResult,
    migration_state: Optional[MigrationState],
    workplace_tag: Any,
    has_credential: bool,
    wave: Optional[str],
    config: MigrationConfig,
) -> ProvisioningStatus:
    if not eligibility.migrate_mailbox:
        return ProvisioningStatus.IGNORE
    if migration_state is MigrationState.SYNCED:
        return ProvisioningStatus.MIGRATED
    if not has_marker(workplace_tag, config):
        return ProvisioningStatus.NEEDS_ACCOUNT_CREATION
    if not has_credential:
        return ProvisioningStatus.MISSING_CREDENTIAL

    position = wave_position(wave, config.current_wave_threshold)
    if position is WavePosition.PAST:
        if migration_state is MigrationState.FAILED:
            return ProvisioningStatus.STRAGGLER_FAILED
        return ProvisioningStatus.STRAGGLER_NOT_SYNCED
    if position is WavePosition.CURRENT_OR_FUTURE:
        return ProvisioningStatus.OK_DEFERRED
    if position is WavePosition.UNRESOLVED:
        return ProvisioningStatus.OK
    raise ValueError(f"Unhandled wave position: {position!r}")


def expected_routing(wave: Optional[str], threshold: int) -> Optional[str]:
    """'off' for Pilot and waves below the threshold, 'on' from the threshold up."""
    position = wave_position(wave, threshold)
    if position is WavePosition.PAST:
        return ROUTING_OFF
    if position is WavePosition.CURRENT_OR_FUTURE:
        return ROUTING_ON
    if position is WavePosition.UNRESOLVED:
        return None
    raise ValueError(f"Unhandled wave position: {position!r}")


def classify_routing(
    eligibility: EligibilityResult,
    provisioning: ProvisioningStatus,
    cloud: Optional[CloudState],
    wave: Optional[str],
    config: MigrationConfig,
) -> Tuple[Optional[str], RoutingStatus]:
    """(expected routing, status); not evaluated unless the mailbox is still to migrate."""
    if not eligibility.migrate_mailbox or provisioning is ProvisioningStatus.MIGRATED:
        return None, RoutingStatus.NOT_EVALUATED
    if cloud is None or eligibility.is_legacy_domain:
        return None, RoutingStatus.NOT_EVALUATED

    expected = expected_routing(wave, config.current_wave_threshold)
    if expected is None:
        return None, RoutingStatus.NOT_EVALUATED

    is_on = normalize_text_key(cloud.routing_flag) == normalize_text_key(config.routing_on_value)
    if expected == ROUTING_OFF and is_on:
        return expected, RoutingStatus.SHOULD_BE_OFF
    if expected == ROUTING_ON and not is_on:
        return expected, RoutingStatus.SHOULD_BE_ON
    return expected, RoutingStatus.OK
