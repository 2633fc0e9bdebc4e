# tests/test_routing.py
import pytest

from condosync.service_layer.routing import route_records

from fakes import make_record


def _moved_pair():
    old = make_record("7", address="222 West Ave", modified_at="2025-03-01T10:00:00.000Z")
    new = make_record("7", address="301 West Ave", modified_at="2025-03-02T10:00:00.000Z")
    return old, new


@pytest.mark.parametrize("newest_first", [False, True])
def test_duplicate_id_in_batch_routes_latest_copy_only(buildings, newest_first):
    old, new = _moved_pair()
    batch = [new, old] if newest_first else [old, new]

    routed = route_records(batch, buildings)

    assert routed.duplicates == 1
    assert (routed.matched, routed.unmatched) == (1, 0)
    assert list(routed.by_partition) == ["the-independent"]
    [rec] = routed.by_partition["the-independent"]
    assert rec.id == "7"
    assert rec.address == "301 West Ave"
    assert rec.partition_key == "the-independent"
