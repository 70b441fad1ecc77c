# ── tests/test_store.py ───────────────────────────────────────────────
from concurrent.futures import ThreadPoolExecutor

import pytest

from routers.visits.store import HEADER, VisitRecord, VisitStore, utc_timestamp


def _record(i, **overrides):
    fields = {
        "timestamp": f"2024-01-01T00:00:{i % 60:02d}.000Z",
        "ip": f"203.0.113.{i % 256}",
        "timezone": "UTC",
        "userAgent": f"Agent/{i}",
    }
    fields.update(overrides)
    return VisitRecord(**fields)


def test_initialize_creates_directory_and_header(tmp_path):
    path = tmp_path / "nested" / "dir" / "visits.log"
    VisitStore(path).initialize()
    assert path.read_text(encoding="utf-8") == "timestamp\tip\ttimezone\tuserAgent\n"


def test_initialize_keeps_existing_log(store, log_file):
    store.append(_record(1))
    before = log_file.read_text(encoding="utf-8")
    VisitStore(log_file).initialize()
    assert log_file.read_text(encoding="utf-8") == before


def test_initialize_failure_propagates(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    with pytest.raises(OSError):
        VisitStore(blocker / "visits.log").initialize()


def test_fresh_log_is_empty(store):
    assert store.count() == 0
    assert store.read_tail(100) == []


def test_missing_log_behaves_like_fresh(tmp_path):
    missing = VisitStore(tmp_path / "absent.log")
    assert missing.count() == 0
    assert missing.read_tail(100) == []


def test_other_read_errors_propagate(tmp_path):
    # a directory where the file should be is not "missing"
    path = tmp_path / "visits.log"
    path.mkdir()
    with pytest.raises(OSError):
        VisitStore(path).count()


def test_append_writes_one_tsv_line(store, log_file):
    rec = _record(7, userAgent="Mozilla/5.0 (X11)")
    assert store.append(rec) == rec.timestamp
    assert log_file.read_text(encoding="utf-8") == (
        HEADER + f"{rec.timestamp}\t203.0.113.7\tUTC\tMozilla/5.0 (X11)\n"
    )


def test_round_trip_in_order(store):
    written = [_record(i) for i in range(5)]
    for rec in written:
        store.append(rec)
    assert store.read_tail(10) == written
    assert store.count() == 5


def test_reads_are_repeatable(store):
    for i in range(3):
        store.append(_record(i))
    assert store.read_tail(100) == store.read_tail(100)
    assert store.count() == store.count()


def test_tail_keeps_last_records_in_append_order(store):
    for i in range(150):
        store.append(_record(i))
    tail = store.read_tail(100)
    assert len(tail) == 100
    assert [r.user_agent for r in tail] == [f"Agent/{i}" for i in range(50, 150)]
    assert store.count() == 150


def test_tail_rejects_non_positive_limit(store):
    with pytest.raises(ValueError):
        store.read_tail(0)


def test_malformed_lines_are_skipped(store, log_file, caplog):
    store.append(_record(1))
    with log_file.open("a", encoding="utf-8") as fh:
        fh.write("2024-01-01T00:00:02.000Z\ttruncated\n")
        fh.write("\n")
        fh.write("a\tb\tc\td\te\n")
    store.append(_record(3))

    assert [r.user_agent for r in store.read_tail(100)] == ["Agent/1", "Agent/3"]
    assert store.count() == 2
    assert "Skipping malformed line 3" in caplog.text


def test_record_serializes_with_wire_names():
    rec = _record(1)
    assert list(rec.model_dump(by_alias=True)) == ["timestamp", "ip", "timezone", "userAgent"]


def test_utc_timestamp_format():
    ts = utc_timestamp()
    assert ts.endswith("Z")
    assert len(ts) == len("2024-01-01T00:00:00.000Z")
    assert ts[10] == "T" and ts[19] == "."


def test_undecodable_bytes_do_not_break_reads(store, log_file):
    store.append(_record(1))
    with log_file.open("ab") as fh:
        # torn multi-byte character at the end of a User-Agent
        fh.write(b"2024-01-01T00:00:02.000Z\t203.0.113.2\tUTC\tAgent\xe2\x82\n")
        # torn line that also lost its last column
        fh.write(b"2024-01-01T00:00:03.000Z\t203.0.113.3\xe2\n")
    store.append(_record(4))

    records = store.read_tail(100)
    assert store.count() == 3
    assert [r.ip for r in records] == ["203.0.113.1", "203.0.113.2", "203.0.113.4"]
    assert records[1].user_agent.startswith("Agent")
    assert "\ufffd" in records[1].user_agent


def test_lines_end_with_bare_newline(store, log_file):
    store.append(_record(1))
    raw = log_file.read_bytes()
    assert b"\r" not in raw
    assert raw.count(b"\n") == 2


def test_concurrent_appends_stay_line_aligned(store, log_file):
    long_agent = "Mozilla/5.0 " + "x" * 180

    def _append(i):
        store.append(_record(i, userAgent=f"{long_agent[:190]}#{i}"))

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(_append, range(200)))

    assert store.count() == 200
    lines = log_file.read_text(encoding="utf-8").split("\n")
    assert lines[0] + "\n" == HEADER
    assert lines[-1] == ""
    data = lines[1:-1]
    assert len(data) == 200
    assert all(len(line.split("\t")) == 4 for line in data)
    assert sorted(int(line.rsplit("#", 1)[1]) for line in data) == list(range(200))
