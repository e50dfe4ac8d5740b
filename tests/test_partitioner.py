import pandas as pd
import pytest

from mailwave.classifier import ProvisioningStatus, RoutingStatus
from mailwave.enrichment import MASTER_COLUMNS, RECORD_IDENTITY, RECORD_SHARED
from mailwave.partitioner import (
    CATEGORY_MISSING_CREDENTIAL,
    CATEGORY_ROUTING_FAILURES,
    CATEGORY_STRAGGLERS,
    CATEGORY_UNPROVISIONED,
    PartitionSet,
    partition_reports,
    provisioning_category,
    wave_labels,
    wave_summary,
)


def master(*rows):
    filled = []
    for row in rows:
        base = {c: None for c in MASTER_COLUMNS}
        base.update(
            record_type=RECORD_IDENTITY,
            provisioning_status=ProvisioningStatus.OK.value,
            routing_status=RoutingStatus.NOT_EVALUATED.value,
        )
        base.update(row)
        filled.append(base)
    return pd.DataFrame(filled, columns=MASTER_COLUMNS)


@pytest.fixture
def identities():
    return master(
        dict(handle="anna@example.org", primary_org_code="048", wave="W4",
             provisioning_status=ProvisioningStatus.STRAGGLER_NOT_SYNCED.value,
             routing_status=RoutingStatus.SHOULD_BE_OFF.value),
        dict(handle="ben@example.org", primary_org_code="105", wave="W5",
             provisioning_status=ProvisioningStatus.MISSING_CREDENTIAL.value),
        dict(handle="carl@example.org", primary_org_code="012", wave="Pilot",
             provisioning_status=ProvisioningStatus.STRAGGLER_FAILED.value),
        dict(handle="dora@example.org", primary_org_code="777", wave="W12",
             provisioning_status=ProvisioningStatus.OK_DEFERRED.value,
             routing_status=RoutingStatus.SHOULD_BE_ON.value),
        dict(handle="fritz@example.org", primary_org_code="999", wave=None,
             provisioning_status=ProvisioningStatus.NEEDS_ACCOUNT_CREATION.value),
    )


@pytest.fixture
def shared():
    return master(
        dict(handle="office@example.org", record_type=RECORD_SHARED, primary_org_code="205", wave="W5",
             provisioning_status=ProvisioningStatus.NEEDS_ACCOUNT_CREATION.value),
    )


def test_wave_labels_are_ordered(identities, shared):
    assert wave_labels(identities, shared) == ["Pilot", "W4", "W5", "W12"]


def test_every_resolved_record_lands_in_exactly_one_wave(identities, shared, tables):
    parts = partition_reports(identities, shared, tables.org_by_any_code)

    seen = []
    for label in parts.wave_labels:
        frame = parts[f"wave_{label}"]
        assert set(frame["wave"]) <= {label}
        seen.extend(frame["handle"])
    assert len(seen) == len(set(seen))
    assert set(seen) == set(identities.loc[identities["wave"].notna(), "handle"])

    assert list(parts["shared_wave_W5"]["handle"]) == ["office@example.org"]
    assert parts["shared_wave_W4"].empty


def test_exception_partitions(identities, shared, tables):
    parts = partition_reports(identities, shared, tables.org_by_any_code)

    assert set(parts[CATEGORY_UNPROVISIONED]["handle"]) == {"fritz@example.org", "office@example.org"}
    assert list(parts[CATEGORY_MISSING_CREDENTIAL]["handle"]) == ["ben@example.org"]
    assert set(parts[CATEGORY_STRAGGLERS]["handle"]) == {"anna@example.org", "carl@example.org"}
    assert set(parts[CATEGORY_ROUTING_FAILURES]["handle"]) == {"anna@example.org", "dora@example.org"}
    assert "routing_status" in parts[CATEGORY_ROUTING_FAILURES].columns


def test_org_rollup_joins_alternate_codes_and_admin_stats(identities, shared, tables):
    stats = {"105": {"admins": "1", "mailboxes": "6"}}
    parts = partition_reports(identities, shared, tables.org_by_any_code, stats)

    rollup = parts["org_rollup_W5"]
    assert len(rollup) == 1
    row = rollup.iloc[0]
    assert row["primary_code"] == "105"
    assert row["alternate_codes"] == "205"
    assert row["identity_count"] == 1
    assert row["shared_mailbox_count"] == 1
    assert row["handles"] == "ben@example.org, office@example.org"
    assert row["stats_admins"] == "1"


def test_partition_names_are_unique():
    parts = PartitionSet()
    parts.add("wave_W1", pd.DataFrame())
    with pytest.raises(ValueError):
        parts.add("wave_W1", pd.DataFrame())
    assert list(dict(parts)) == ["wave_W1"]
    assert len(parts) == 1


def test_provisioning_category_covers_every_status():
    for status in ProvisioningStatus:
        provisioning_category(status)
    assert provisioning_category(ProvisioningStatus.OK_DEFERRED) is None


def test_wave_summary(identities, shared):
    summary = wave_summary(identities, shared)
    assert list(summary["wave"]) == ["Pilot", "W4", "W5", "W12", "none"]
    totals = dict(zip(summary["wave"], summary["total"]))
    assert totals["W5"] == 2
    assert totals["none"] == 1
    assert summary["total"].sum() == len(identities) + len(shared)


def test_empty_masters_give_empty_partitions(tables):
    empty = master()
    parts = partition_reports(empty, empty, tables.org_by_any_code)
    assert parts.wave_labels == []
    assert parts[CATEGORY_UNPROVISIONED].empty
    assert parts[CATEGORY_ROUTING_FAILURES].empty
