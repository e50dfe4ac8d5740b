from datetime import datetime, timedelta

import pytest

from mailwave.classifier import (
    ROUTING_OFF,
    ROUTING_ON,
    Eligibility,
    EligibilityResult,
    MigrationState,
    ProvisioningStatus,
    RoutingStatus,
    classify_eligibility,
    classify_provisioning,
    classify_routing,
    expected_routing,
    parse_last_login,
)
from mailwave.records import CloudState

ACTIVE = EligibilityResult(Eligibility.ACTIVE, True, True)


def cloud(**overrides):
    values = dict(
        handle="anna@example.org",
        home_domain="example.org",
        ou_path="OU=Users,DC=example,DC=org",
        workplace_tag="Standard M365",
        routing_flag="FALSE",
    )
    values.update(overrides)
    return CloudState(**values)


def test_parse_last_login_formats():
    assert parse_last_login("10.02.2025") == datetime(2025, 2, 10)
    assert parse_last_login("10.02.2025 08:30:00") == datetime(2025, 2, 10, 8, 30)
    assert parse_last_login("2025-02-10T08:30:00") == datetime(2025, 2, 10, 8, 30)
    assert parse_last_login("") is None
    assert parse_last_login(None) is None
    assert parse_last_login("not a date") is None


def test_active_account(config, now, active_cloud):
    result = classify_eligibility(active_cloud, "10.02.2025", config, now)
    assert result.eligibility is Eligibility.ACTIVE
    assert result.migrate_mailbox and result.migrate_storage


def test_deactivated_beats_legacy_domain(config, now):
    state = cloud(ou_path="CN=x,OU=Deaktiviert,DC=example", home_domain="onprem.example.org")
    result = classify_eligibility(state, None, config, now)
    assert result.eligibility is Eligibility.DEACTIVATED
    assert result.is_legacy_domain
    assert not result.migrate_mailbox and not result.migrate_storage


def test_legacy_domain_beats_inactivity(config, now):
    state = cloud(home_domain="OnPrem.Example.org")
    result = classify_eligibility(state, "01.01.2020", config, now)
    assert result.eligibility is Eligibility.LEGACY_DOMAIN
    assert result.eligibility.value == "domain-excluded"
    assert result.is_long_inactive
    assert (result.migrate_mailbox, result.migrate_storage) == (False, False)


def test_business_account_keeps_storage(config, now):
    result = classify_eligibility(cloud(workplace_tag="Kiosk"), None, config, now)
    assert result.eligibility is Eligibility.BUSINESS
    assert (result.migrate_mailbox, result.migrate_storage) == (False, True)


def test_business_beats_inactivity(config, now):
    result = classify_eligibility(cloud(workplace_tag="Kiosk"), "01.01.2020", config, now)
    assert result.eligibility is Eligibility.BUSINESS
    assert result.is_long_inactive


def test_inactivity_boundary(config, now):
    exactly = (now - timedelta(days=config.inactivity_days)).strftime("%Y-%m-%d %H:%M:%S")
    just_inside = (now - timedelta(days=config.inactivity_days) + timedelta(seconds=1)).strftime(
        "%Y-%m-%d %H:%M:%S"
    )
    assert classify_eligibility(cloud(), exactly, config, now).eligibility is Eligibility.INACTIVE
    assert classify_eligibility(cloud(), just_inside, config, now).eligibility is Eligibility.ACTIVE


def test_missing_cloud_state_counts_as_active(config, now):
    assert classify_eligibility(None, None, config, now).eligibility is Eligibility.ACTIVE


def test_migration_state_parse():
    assert MigrationState.parse(" Synced ") is MigrationState.SYNCED
    assert MigrationState.parse("FAILED") is MigrationState.FAILED
    assert MigrationState.parse("in progress") is MigrationState.UNKNOWN
    assert MigrationState.parse("") is None
    assert MigrationState.parse(None) is None


@pytest.mark.parametrize(
    "eligibility, state, tag, credential, wave, expected",
    [
        (EligibilityResult(Eligibility.INACTIVE, False, False), None, "M365", True, "W3", ProvisioningStatus.IGNORE),
        (ACTIVE, MigrationState.SYNCED, "", False, None, ProvisioningStatus.MIGRATED),
        (ACTIVE, None, "", True, "W3", ProvisioningStatus.NEEDS_ACCOUNT_CREATION),
        (ACTIVE, None, "Standard M365", False, "W3", ProvisioningStatus.MISSING_CREDENTIAL),
        (ACTIVE, MigrationState.FAILED, "Standard M365", True, "W3", ProvisioningStatus.STRAGGLER_FAILED),
        (ACTIVE, None, "Standard M365", True, "W3", ProvisioningStatus.STRAGGLER_NOT_SYNCED),
        (ACTIVE, MigrationState.UNKNOWN, "Standard M365", True, "Pilot", ProvisioningStatus.STRAGGLER_NOT_SYNCED),
        (ACTIVE, None, "Standard M365", True, "W10", ProvisioningStatus.OK_DEFERRED),
        (ACTIVE, None, "Standard M365", True, None, ProvisioningStatus.OK),
    ],
)
def test_classify_provisioning(config, eligibility, state, tag, credential, wave, expected):
    assert classify_provisioning(eligibility, state, tag, credential, wave, config) is expected


def test_marker_match_is_case_insensitive(config):
    status = classify_provisioning(ACTIVE, None, "standard m365 plus", True, "W12", config)
    assert status is ProvisioningStatus.OK_DEFERRED


def test_past_wave_routed_on_is_a_failure(config):
    state = cloud(routing_flag="TRUE")
    expected, status = classify_routing(ACTIVE, ProvisioningStatus.STRAGGLER_NOT_SYNCED, state, "W3", config)
    assert expected == ROUTING_OFF
    assert status is RoutingStatus.SHOULD_BE_OFF
    assert status.value == "failure (should not be on)"
    assert status.is_failure


def test_future_wave_routed_off_is_a_failure(config):
    expected, status = classify_routing(ACTIVE, ProvisioningStatus.OK_DEFERRED, cloud(), "W12", config)
    assert expected == ROUTING_ON
    assert status is RoutingStatus.SHOULD_BE_ON


def test_routing_flag_comparison_ignores_case(config):
    _, status = classify_routing(ACTIVE, ProvisioningStatus.OK_DEFERRED, cloud(routing_flag="true"), "W12", config)
    assert status is RoutingStatus.OK
    assert not status.is_failure


@pytest.mark.parametrize(
    "eligibility, provisioning, state, wave",
    [
        (EligibilityResult(Eligibility.BUSINESS, False, True), ProvisioningStatus.IGNORE, "cloud", "W3"),
        (ACTIVE, ProvisioningStatus.MIGRATED, "cloud", "W3"),
        (ACTIVE, ProvisioningStatus.NEEDS_ACCOUNT_CREATION, None, "W3"),
        (ACTIVE, ProvisioningStatus.OK, "cloud", None),
    ],
)
def test_routing_not_evaluated(config, eligibility, provisioning, state, wave):
    state = cloud(routing_flag="TRUE") if state else None
    expected, status = classify_routing(eligibility, provisioning, state, wave, config)
    assert expected is None
    assert status is RoutingStatus.NOT_EVALUATED
    assert status.value == ""


def test_expected_routing_is_monotonic():
    waves = ["Pilot"] + [f"W{n}" for n in range(1, 21)]
    values = [expected_routing(w, 10) for w in waves]
    first_on = values.index(ROUTING_ON)
    assert all(v == ROUTING_OFF for v in values[:first_on])
    assert all(v == ROUTING_ON for v in values[first_on:])
    assert waves[first_on] == "W10"
    assert expected_routing("Spring", 10) is None
