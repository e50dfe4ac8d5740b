"""
Input Records
Purpose: Typed views over the rows of each input extract. Column names vary
between exports, so every field is resolved from a list of candidate headers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .normalizer import normalize_code, normalize_handle, split_codes

# field -> candidate headers, compared case-insensitively
COLUMN_CANDIDATES: Dict[str, Dict[str, List[str]]] = {
    "identities": {
        "handle": ["handle", "email", "mail", "userprincipalname", "e-mail"],
        "display_name": ["display_name", "displayname", "name"],
        "primary_org_code": ["primary_org_code", "kro", "gkz", "org_code"],
        "secondary_org_code": ["secondary_org_code", "kro_trust", "trust_kro", "trust_code"],
        "migration_flag": ["migration_flag", "migrationflag", "migrate"],
        "last_login": ["last_login", "lastlogon", "lastlogondate", "last_logon"],
    },
    "shared_mailboxes": {
        "handle": ["handle", "email", "primarysmtpaddress", "mail"],
        "display_name": ["display_name", "displayname", "name"],
        "primary_org_code": ["primary_org_code", "kro", "gkz", "org_code"],
    },
    "org_units": {
        "primary_code": ["primary_code", "kro", "gkz"],
        "alternate_codes": ["alternate_codes", "kro_alt", "alt_codes"],
        "department_name": ["department_name", "dekanat", "deanery", "department"],
        "district_name": ["district_name", "kirchenkreis", "district"],
        "congregation_name": ["congregation_name", "gemeinde", "congregation", "name"],
        "valid_from": ["validity_from", "valid_from", "gueltig_ab"],
        "valid_until": ["validity_until", "valid_until", "gueltig_bis"],
        "contact_emails": ["contact_emails", "emails", "mail"],
    },
    "waves": {
        "department_key": ["department_key", "dekanat", "department", "deanery"],
        "raw_identifier_key": ["raw_identifier_key", "kro", "identifier", "raw_kro"],
        "wave_label": ["wave_label", "wave", "welle"],
        "planned_date": ["planned_date", "date", "termin"],
    },
    "cloud_state": {
        "handle": ["handle", "email", "userprincipalname", "mail"],
        "home_domain": ["home_domain", "domain"],
        "ou_path": ["organizational_unit_path", "ou_path", "distinguishedname", "ou"],
        "workplace_tag": ["workplace_type_tag", "workplace_type", "license", "arbeitsplatztyp"],
        "routing_flag": ["routing_flag", "routing", "mailrouting"],
        "company": ["company", "firma"],
    },
    "credentials": {
        "handle": ["handle", "email", "username", "login"],
        "password": ["password", "passwort", "kennwort"],
    },
    "migration_status": {
        "handle": ["handle", "email", "mailbox", "source"],
        "status": ["status", "state", "sync_status"],
    },
    "admin_stats": {
        "instance_id": ["instance_id", "instance", "kro", "org_code"],
    },
}


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:
        return True
    return isinstance(value, str) and not value.strip()


def get_field_or_default(row: Mapping[str, Any], candidates: Iterable[str], default: Any = None) -> Any:
    """Return the first non-blank value among candidate columns (case-insensitive)."""
    lowered = {str(k).strip().lower(): k for k in row.keys()}
    for cand in candidates:
        key = lowered.get(cand.lower())
        if key is not None and not _blank(row[key]):
            value = row[key]
            return value.strip() if isinstance(value, str) else value
    return default


def _get(source: str, row: Mapping[str, Any], name: str, default: Any = None) -> Any:
    return get_field_or_default(row, COLUMN_CANDIDATES[source][name], default)


@dataclass(frozen=True)
class IdentityRecord:
    handle: str
    display_name: Optional[str] = None
    primary_org_code: Optional[str] = None
    secondary_org_code: Optional[str] = None
    migration_flag: Optional[str] = None
    last_login: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_handle(self.handle)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "IdentityRecord":
        return cls(
            handle=str(_get("identities", row, "handle", "")),
            display_name=_get("identities", row, "display_name"),
            primary_org_code=_get("identities", row, "primary_org_code"),
            secondary_org_code=_get("identities", row, "secondary_org_code"),
            migration_flag=_get("identities", row, "migration_flag"),
            last_login=_get("identities", row, "last_login"),
        )

    @classmethod
    def from_shared_row(cls, row: Mapping[str, Any]) -> "IdentityRecord":
        """Shared mailboxes carry no trust code and no login."""
        return cls(
            handle=str(_get("shared_mailboxes", row, "handle", "")),
            display_name=_get("shared_mailboxes", row, "display_name"),
            primary_org_code=_get("shared_mailboxes", row, "primary_org_code"),
        )


@dataclass(frozen=True)
class OrgUnitRecord:
    primary_code: Optional[str]
    alternate_codes: Tuple[str, ...] = ()
    department_name: Optional[str] = None
    district_name: Optional[str] = None
    congregation_name: Optional[str] = None
    valid_from: Optional[str] = None
    valid_until: Optional[str] = None
    contact_emails: Optional[str] = None

    def codes(self) -> List[str]:
        """Primary code first, then alternates."""
        out = [self.primary_code] if self.primary_code else []
        return out + [c for c in self.alternate_codes if c not in out]

    @classmethod
    def from_row(cls, row: Mapping[str, Any], pad_width: int) -> "OrgUnitRecord":
        return cls(
            primary_code=normalize_code(_get("org_units", row, "primary_code"), pad_width),
            alternate_codes=tuple(split_codes(_get("org_units", row, "alternate_codes"), pad_width)),
            department_name=_get("org_units", row, "department_name"),
            district_name=_get("org_units", row, "district_name"),
            congregation_name=_get("org_units", row, "congregation_name"),
            valid_from=_get("org_units", row, "valid_from"),
            valid_until=_get("org_units", row, "valid_until"),
            contact_emails=_get("org_units", row, "contact_emails"),
        )


@dataclass(frozen=True)
class WaveRule:
    wave_label: Optional[str]
    department_key: Optional[str] = None
    raw_identifier_key: Optional[str] = None
    planned_date: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "WaveRule":
        label = _get("waves", row, "wave_label")
        return cls(
            wave_label=canonical_wave_label(label),
            department_key=_get("waves", row, "department_key"),
            raw_identifier_key=_get("waves", row, "raw_identifier_key"),
            planned_date=_get("waves", row, "planned_date"),
        )


@dataclass(frozen=True)
class CloudState:
    handle: str
    home_domain: Optional[str] = None
    ou_path: Optional[str] = None
    workplace_tag: Optional[str] = None
    routing_flag: Optional[str] = None
    company: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_handle(self.handle)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CloudState":
        return cls(
            handle=str(_get("cloud_state", row, "handle", "")),
            home_domain=_get("cloud_state", row, "home_domain"),
            ou_path=_get("cloud_state", row, "ou_path"),
            workplace_tag=_get("cloud_state", row, "workplace_tag"),
            routing_flag=_get("cloud_state", row, "routing_flag"),
            company=_get("cloud_state", row, "company"),
        )


@dataclass(frozen=True)
class Credential:
    handle: str
    password: Optional[str] = field(default=None, repr=False)

    @property
    def key(self) -> str:
        return normalize_handle(self.handle)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Credential":
        return cls(
            handle=str(_get("credentials", row, "handle", "")),
            password=_get("credentials", row, "password"),
        )


@dataclass(frozen=True)
class MigrationStatusEntry:
    handle: str
    status: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_handle(self.handle)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MigrationStatusEntry":
        return cls(
            handle=str(_get("migration_status", row, "handle", "")),
            status=_get("migration_status", row, "status"),
        )


def canonical_wave_label(raw: Any) -> Optional[str]:
    """'w3', 'W 3', '3' -> 'W3'; 'pilot' -> 'Pilot'; anything else kept as-is."""
    if _blank(raw):
        return None
    text = str(raw).strip()
    compact = text.replace(" ", "")
    if compact.lower() == "pilot":
        return "Pilot"
    digits = compact[1:] if compact[:1] in ("W", "w") else compact
    if digits.isdigit():
        return f"W{int(digits)}"
    return text
