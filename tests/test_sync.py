import datetime

from stora.core import loans, sync
from stora.core.sync import CachedEntry, as_utc, merge_snapshot

OWNER = 1
UTC = datetime.timezone.utc


def server_item(server_id, updated_at, **data):
    return {"id": server_id, "updated_at": updated_at, "name": "Proyektor", **data}


def test_snapshot_is_owner_scoped_with_live_counts(db_session, make_item, make_loan):
    item = make_item(quantity=5)
    make_item(owner_id=2)
    returned = make_loan([(item.id, 1)])
    make_loan([(item.id, 2)], photos=["/uploads/owner-1/loan.jpg"])
    loans.return_loan(db_session, returned.id, OWNER)

    snap = sync.snapshot(db_session, OWNER)

    assert [i.id for i in snap.items] == [item.id]
    assert snap.items[0].borrowed_quantity == 2
    assert snap.items[0].available_quantity == 3
    assert len(snap.loans) == 2
    assert snap.loans[1].lines[0].photo.loan_path == "/uploads/owner-1/loan.jpg"
    assert snap.as_of is not None


def test_as_utc_accepts_millis_iso_and_naive():
    expected = datetime.datetime(2025, 1, 1, tzinfo=UTC)
    assert as_utc(1735689600000) == expected
    assert as_utc("2025-01-01T00:00:00Z") == expected
    assert as_utc(datetime.datetime(2025, 1, 1)) == expected
    assert as_utc(None) is None


def test_new_server_items_are_added():
    plan = merge_snapshot([], [server_item(1, "2025-01-01T00:00:00Z")])
    assert len(plan.upserts) == 1
    assert plan.upserts[0].server_id == 1
    assert not plan.upserts[0].needs_sync


def test_newer_local_edit_wins():
    local = CachedEntry("a", 1, {"name": "Edited"}, "2025-01-02T00:00:00Z", needs_sync=True)
    plan = merge_snapshot([local], [server_item(1, "2025-01-01T00:00:00Z")])
    assert plan.pushes == [local]
    assert plan.upserts == []
    assert plan.apply([local]) == [local]


def test_newer_server_copy_wins():
    local = CachedEntry("a", 1, {"name": "Edited"}, "2025-01-01T00:00:00Z", needs_sync=True)
    plan = merge_snapshot([local], [server_item(1, "2025-01-02T00:00:00Z", name="Server")])
    merged = plan.apply([local])
    assert len(merged) == 1
    assert merged[0].local_id == "a"
    assert merged[0].data["name"] == "Server"
    assert not merged[0].needs_sync


def test_server_deletion_wins():
    gone = CachedEntry("a", 1, {}, "2025-01-05T00:00:00Z", needs_sync=True)
    kept = CachedEntry("b", 2, {}, "2025-01-01T00:00:00Z")
    plan = merge_snapshot([gone, kept], [server_item(2, "2025-01-01T00:00:00Z")])
    assert plan.removals == [gone]
    assert [e.local_id for e in plan.apply([gone, kept])] == ["b"]


def test_local_only_entries():
    pending = CachedEntry("new", None, {"name": "Tenda"}, "2025-01-01T00:00:00Z", needs_sync=True)
    discarded = CachedEntry("tmp", None, {}, "2025-01-01T00:00:00Z", needs_sync=True, deleted=True)
    plan = merge_snapshot([pending, discarded], [])
    assert plan.pushes == [pending]
    assert plan.removals == [discarded]
    assert plan.apply([pending, discarded]) == [pending]
