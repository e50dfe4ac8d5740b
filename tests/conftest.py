# conftest.py

from datetime import datetime
from pathlib import Path

import pytest

from mailwave.config import MigrationConfig
from mailwave.records import CloudState, OrgUnitRecord, WaveRule
from mailwave.wave_resolver import build_wave_tables

NOW = datetime(2025, 3, 1, 12, 0, 0)

RULES = {
    "pilot_codes": ["12"],
    "current_wave_threshold": 10,
    "legacy_domain": "onprem.example.org",
    "migration_marker": "M365",
    "deactivated_ou_pattern": "OU=Deaktiviert",
    "routing_on_value": "TRUE",
}


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def config():
    return MigrationConfig(RULES)


@pytest.fixture
def org_units():
    return [
        OrgUnitRecord("048", department_name="Deanery X", congregation_name="St. Anna", district_name="North"),
        OrgUnitRecord("105", ("205",), department_name="Deanery Y", congregation_name="St. Paul"),
        OrgUnitRecord("012", department_name="Deanery Z", congregation_name="Pilot Parish"),
        OrgUnitRecord("300", department_name="Deanry Q", congregation_name="Lost Parish"),
        OrgUnitRecord("777", department_name="Deanery Late", congregation_name="Late Parish"),
    ]


@pytest.fixture
def wave_rules():
    return [
        WaveRule("W4", department_key="deanery x", planned_date="2025-02-01"),
        WaveRule("W5", department_key="Deanery Y"),
        WaveRule("W2", department_key="DEANERY Z"),
        WaveRule("W12", department_key="Deanery Late", planned_date="2025-06-01"),
        WaveRule("W5", department_key="Deanery Q"),
        WaveRule("W7", raw_identifier_key="900"),
    ]


@pytest.fixture
def tables(wave_rules, org_units):
    return build_wave_tables(wave_rules, org_units)


@pytest.fixture
def active_cloud():
    return CloudState(
        "anna@example.org",
        home_domain="example.org",
        ou_path="OU=Users,DC=example,DC=org",
        workplace_tag="Standard M365",
        routing_flag="FALSE",
    )


def write_csv(path: Path, header, rows, delimiter=";"):
    lines = [delimiter.join(header)] + [delimiter.join(r) for r in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


@pytest.fixture
def input_dir(tmp_path):
    folder = tmp_path / "input"
    folder.mkdir()
    write_csv(
        folder / "identities.csv",
        ["email", "displayname", "kro", "kro_trust", "migration_flag", "lastlogon"],
        [
            ["anna@example.org", "Anna", "48", "", "1", "10.02.2025 08:00:00"],
            ["ben@example.org", "Ben", "105", "", "1", "2025-02-20"],
            ["carl@example.org", "Carl", "12", "", "1", ""],
            ["dora@example.org", "Dora", "777", "", "1", ""],
            ["emil@example.org", "Emil", "300", "", "1", ""],
            ["fritz@example.org", "Fritz", "999", "", "1", ""],
            ["gert@example.org", "Gert", "48", "", "1", "01.01.2023"],
            ["ANNA@example.org", "Anna (dup)", "48", "", "1", "11.02.2025"],
        ],
    )
    write_csv(
        folder / "shared_mailboxes.csv",
        ["primarysmtpaddress", "displayname", "kro"],
        [["office@example.org", "Office", "205"]],
    )
    write_csv(
        folder / "org_units.csv",
        ["kro", "kro_alt", "dekanat", "kirchenkreis", "gemeinde", "valid_from", "valid_until", "contact_emails"],
        [
            ["048", "", "Deanery X", "North", "St. Anna", "2020-01-01", "", "info@anna.example.org"],
            ["105", "205", "Deanery Y", "South", "St. Paul", "2020-01-01", "", ""],
            ["012", "", "Deanery Z", "West", "Pilot Parish", "", "", ""],
            ["300", "", "Deanry Q", "East", "Lost Parish", "", "", ""],
            ["777", "", "Deanery Late", "East", "Late Parish", "", "", ""],
        ],
    )
    write_csv(
        folder / "waves.csv",
        ["department_key", "raw_identifier_key", "wave_label", "planned_date"],
        [
            ["Deanery X", "", "W4", "2025-02-01"],
            ["Deanery Y", "", "W5", ""],
            ["Deanery Z", "", "W2", ""],
            ["Deanery Late", "", "W12", "2025-06-01"],
            ["Deanery Q", "", "W6", ""],
        ],
    )
    write_csv(
        folder / "license_report.csv",
        ["userprincipalname", "home_domain", "ou_path", "workplace_type_tag", "routing_flag", "company"],
        [
            ["anna@example.org", "example.org", "OU=Users", "Standard M365", "TRUE", "Parish"],
            ["ben@example.org", "example.org", "OU=Users", "Standard M365", "FALSE", "Parish"],
            ["carl@example.org", "example.org", "OU=Users", "Standard M365", "FALSE", "Parish"],
            ["dora@example.org", "example.org", "OU=Users", "Standard M365", "FALSE", "Parish"],
            ["emil@example.org", "example.org", "OU=Users", "Kiosk", "FALSE", "Parish"],
            ["gert@example.org", "example.org", "OU=Users", "Standard M365", "FALSE", "Parish"],
        ],
    )
    write_csv(
        folder / "password_vault.csv",
        ["username", "password"],
        [
            ["anna@example.org", "s3cret"],
            ["carl@example.org", "s3cret"],
            ["dora@example.org", "s3cret"],
        ],
    )
    write_csv(
        folder / "migration_status.csv",
        ["mailbox", "status"],
        [["ben@example.org", "failed"], ["carl@example.org", "failed"]],
    )
    write_csv(
        folder / "admin_stats.csv",
        ["instance_id", "admins", "mailboxes"],
        [["48", "2", "14"], ["105", "1", "6"]],
    )
    return folder
