from conftest import FakeEndpointsClient, SnapshotUnavailable, record

from epr.models import Empty, EndpointPort, EndpointRecord, EndpointSubset, Peers, Unavailable
from epr.peers import derive_peers, reconcile_outcome


def test_single_address_matching_port_only():
    out = derive_peers([record("ts", ["10.0.0.5"], [8107, 9000])], peer_port=8107, api_port=8108)
    assert isinstance(out, Peers)
    assert out.text == "10.0.0.5:8107:8108"


def test_multiple_addresses_keep_snapshot_order():
    out = derive_peers([record("ts", ["10.0.0.6", "10.0.0.5"], [8107])], peer_port=8107, api_port=8108)
    assert out.text == "10.0.0.6:8107:8108,10.0.0.5:8107:8108"


def test_no_matching_port_is_empty():
    out = derive_peers([record("ts", ["10.0.0.5"], [9000])], peer_port=8107, api_port=8108)
    assert isinstance(out, Empty)
    assert out.kind == "empty"


def test_empty_snapshot_is_empty():
    assert isinstance(derive_peers([], peer_port=8107, api_port=8108), Empty)


def test_api_port_comes_from_config_not_snapshot():
    rec = EndpointRecord(
        name="ts",
        subsets=(
            EndpointSubset(
                addresses=("10.0.0.5",),
                ports=(EndpointPort(port=8107, name="peering"), EndpointPort(port=9999, name="http")),
            ),
        ),
    )
    out = derive_peers([rec], peer_port=8107, api_port=8108)
    assert out.text == "10.0.0.5:8107:8108"
    assert "9999" not in out.text


def test_multiple_subsets_and_records():
    rec_a = EndpointRecord(
        name="ts",
        subsets=(
            EndpointSubset(addresses=("10.0.0.1",), ports=(EndpointPort(port=8107),)),
            EndpointSubset(addresses=("10.0.0.2",), ports=(EndpointPort(port=9000),)),
            EndpointSubset(addresses=("10.0.0.3",), ports=(EndpointPort(port=8107),)),
        ),
    )
    out = derive_peers([rec_a], peer_port=8107, api_port=8108)
    assert [str(e) for e in out.entries] == ["10.0.0.1:8107:8108", "10.0.0.3:8107:8108"]


def test_derive_is_deterministic():
    snap = [record("ts", ["10.0.0.5", "10.0.0.6", "10.0.0.7"], [9000, 8107])]
    first = derive_peers(snap, 8107, 8108)
    assert all(derive_peers(snap, 8107, 8108) == first for _ in range(5))


def test_reconcile_outcome_filters_by_service_name():
    client = FakeEndpointsClient(
        listings=[[record("other", ["10.9.9.9"], [8107]), record("ts", ["10.0.0.5"], [8107])]]
    )
    out = reconcile_outcome(client, "typesense", "ts", 8107, 8108)
    assert out.text == "10.0.0.5:8107:8108"


def test_reconcile_outcome_distinguishes_unavailable_from_empty():
    failing = FakeEndpointsClient(listings=[SnapshotUnavailable("failed to list endpoints: 503")])
    out = reconcile_outcome(failing, "typesense", "ts", 8107, 8108)
    assert isinstance(out, Unavailable)
    assert "503" in out.reason

    empty = FakeEndpointsClient(listings=[[record("ts", ["10.0.0.5"], [9000])]])
    assert isinstance(reconcile_outcome(empty, "typesense", "ts", 8107, 8108), Empty)


def test_verbose_logs_non_matching_ports(caplog):
    caplog.set_level("DEBUG", logger="epr.peers")
    derive_peers([record("ts", ["10.0.0.5"], [8107, 9000])], peer_port=8107, api_port=8108, verbose=True)
    messages = [r.getMessage() for r in caplog.records]
    assert "Port 9000 for address 10.0.0.5 does not match peer port 8107" in messages
    assert not any("Port 8107" in m for m in messages)


def test_quiet_mode_does_not_log_non_matching_ports(caplog):
    caplog.set_level("DEBUG", logger="epr.peers")
    derive_peers([record("ts", ["10.0.0.5"], [8107, 9000])], peer_port=8107, api_port=8108, verbose=False)
    assert not any("does not match peer port" in r.getMessage() for r in caplog.records)
