# tests/test_store.py
import json
from datetime import datetime, timedelta, timezone

import pytest

from passgate.core.errors import NotFound
from passgate.store.models import PassRecord, PassRecordIn, parse_expiry
from passgate.store.whitelist import WhitelistStore, merge

NOW = datetime(2025, 11, 4, 9, 30, tzinfo=timezone.utc)


def _entry(pass_id="ACC001", name="王小明", pass_status="VIP", expiry=NOW + timedelta(days=1), **kw):
    return PassRecordIn(
        pass_id=pass_id,
        name=name,
        pass_status=pass_status,
        expiry_date=expiry.isoformat() if isinstance(expiry, datetime) else expiry,
        **kw,
    )


def _record(pass_id, name, id_="1"):
    return PassRecord(id=id_, pass_id=pass_id, name=name, pass_status="VIP")


def test_insert_then_list_active_contains_record(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    rec = s.insert(_entry(), now=NOW)
    assert rec.status == "active"
    assert rec.created_at == NOW.isoformat()
    assert [r.id for r in s.list_active(NOW)] == [rec.id]


def test_insert_writes_whole_list_to_disk(tmp_path):
    path = tmp_path / "wl.json"
    s = WhitelistStore(path)
    s.insert(_entry(pass_id="ACC001"), now=NOW)
    s.insert(_entry(pass_id="ACC002"), now=NOW)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert [d["pass_id"] for d in data] == ["ACC001", "ACC002"]
    assert data[0]["name"] == "王小明"
    # no temp files left behind
    assert sorted(p.name for p in tmp_path.iterdir()) == ["wl.json"]


def test_reload_from_disk(tmp_path):
    path = tmp_path / "wl.json"
    WhitelistStore(path).insert(_entry(), now=NOW)
    again = WhitelistStore(path)
    assert [r.pass_id for r in again.records()] == ["ACC001"]


def test_expired_records_are_evicted_once(tmp_path):
    path = tmp_path / "wl.json"
    s = WhitelistStore(path)
    s.insert(_entry(pass_id="OLD", expiry=NOW - timedelta(minutes=1)), now=NOW)
    s.insert(_entry(pass_id="EDGE", expiry=NOW), now=NOW)
    s.insert(_entry(pass_id="NEW"), now=NOW)
    s.insert(_entry(pass_id="FOREVER", expiry=None), now=NOW)

    first = s.list_active(NOW)
    assert {r.pass_id for r in first} == {"NEW", "FOREVER"}
    assert {r["pass_id"] for r in json.loads(path.read_text(encoding="utf-8"))} == {"NEW", "FOREVER"}

    assert s.sweep_expired(NOW) == []
    assert {r.pass_id for r in s.list_active(NOW)} == {"NEW", "FOREVER"}


def test_sweep_returns_evicted_records(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    s.insert(_entry(pass_id="OLD", expiry="2025-11-03"), now=NOW)
    evicted = s.sweep_expired(NOW)
    assert [r.pass_id for r in evicted] == ["OLD"]
    assert s.records() == []


def test_remove_then_lookup_finds_nothing(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    rec = s.insert(_entry(), now=NOW)
    removed = s.remove(rec.id)
    assert removed.id == rec.id
    assert s.find_by_pass_id_and_status("ACC001") is None


def test_remove_missing_raises_not_found(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    with pytest.raises(NotFound):
        s.remove("does-not-exist")


def test_client_id_kept_but_never_reused(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    rec = s.insert(_entry(id=1730700000000), now=NOW)
    assert rec.id == "1730700000000"

    clash = s.insert(_entry(pass_id="ACC002", id="1730700000000"), now=NOW)
    assert clash.id != rec.id

    s.remove(rec.id)
    again = s.insert(_entry(id="1730700000000"), now=NOW)
    assert again.id != "1730700000000"


def test_duplicate_pass_id_is_not_rejected(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    s.insert(_entry(), now=NOW)
    s.insert(_entry(), now=NOW)
    assert len(s.records()) == 2


def test_find_by_pass_id_and_status(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    s.insert(_entry(pass_id="ACC001"), now=NOW)
    assert s.find_by_pass_id_and_status("ACC001").name == "王小明"
    assert s.find_by_pass_id_and_status("ACC001", status="revoked") is None
    assert s.find_by_pass_id_and_status("ACC999") is None


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "wl.json"
    path.write_text("{not json", encoding="utf-8")
    s = WhitelistStore(path)
    assert s.records() == []
    s.insert(_entry(), now=NOW)
    assert len(json.loads(path.read_text(encoding="utf-8"))) == 1


def test_malformed_entries_are_skipped(tmp_path):
    path = tmp_path / "wl.json"
    path.write_text(json.dumps([
        {"id": 1, "pass_id": "ACC001", "name": "A", "pass_status": "VIP"},
        {"pass_id": "no id"},
    ]), encoding="utf-8")
    assert [r.id for r in WhitelistStore(path).records()] == ["1"]


def test_write_failure_keeps_serving_from_memory(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    s = WhitelistStore(blocker / "wl.json")  # parent is a file: every write fails
    rec = s.insert(_entry(), now=NOW)
    assert [r.id for r in s.list_active(NOW)] == [rec.id]
    assert s.remove(rec.id).id == rec.id


def test_bare_date_expiry_is_midnight_utc():
    assert parse_expiry("2025-11-15") == datetime(2025, 11, 15, tzinfo=timezone.utc)
    assert parse_expiry("2025-11-15T08:00:00+08:00") == datetime(2025, 11, 15, tzinfo=timezone.utc)
    assert parse_expiry("2025-11-15T08:00:00Z").hour == 8
    with pytest.raises(ValueError):
        parse_expiry("15/11/2025")


def test_unparseable_stored_expiry_counts_as_expired():
    rec = PassRecord(id="1", pass_id="X", name="A", pass_status="VIP", expiry_date="soon")
    assert rec.is_expired(NOW)


def test_insert_rejects_bad_expiry():
    with pytest.raises(ValueError):
        _entry(expiry="next week")


# --- merge ---

def test_merge_keeps_records_from_either_side():
    local = [_record("A", "x", "1"), _record("B", "y", "2")]
    remote = [_record("B", "y", "3"), _record("C", "z", "4")]
    merged = merge(local, remote)
    assert [(r.pass_id, r.id) for r in merged] == [("A", "1"), ("B", "2"), ("C", "4")]


def test_merge_membership_is_commutative():
    local = [_record("A", "x", "1"), _record("B", "y", "2")]
    remote = [_record("B", "y", "3"), _record("C", "z", "4"), _record("A", "other", "5")]
    keys = lambda rs: {(r.pass_id, r.name) for r in rs}
    assert keys(merge(local, remote)) == keys(merge(remote, local))
    assert keys(merge(local, remote)) == keys(local) | keys(remote)


def test_merge_does_not_dedupe_on_id_alone():
    merged = merge([_record("A", "x", "1")], [_record("B", "y", "1")])
    assert len(merged) == 2


def test_concurrent_inserts_and_sweeps_stay_consistent(tmp_path):
    from concurrent.futures import ThreadPoolExecutor

    path = tmp_path / "wl.json"
    s = WhitelistStore(path)

    def _work(worker):
        for i in range(25):
            s.insert(_entry(pass_id=f"W{worker}-{i}"), now=NOW)
            s.insert(_entry(pass_id=f"X{worker}-{i}", expiry=NOW - timedelta(days=1)), now=NOW)
            s.list_active(NOW)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(_work, range(8)))

    active = {r.pass_id for r in s.list_active(NOW)}
    assert active == {f"W{w}-{i}" for w in range(8) for i in range(25)}
    assert {d["pass_id"] for d in json.loads(path.read_text(encoding="utf-8"))} == active


def test_evicted_id_is_not_reused_in_process(tmp_path):
    s = WhitelistStore(tmp_path / "wl.json")
    s.insert(_entry(id="42", expiry=NOW - timedelta(days=1)), now=NOW)
    s.sweep_expired(NOW)
    assert s.insert(_entry(id="42"), now=NOW).id != "42"
