from __future__ import annotations

import json
import threading
from datetime import datetime, timezone

import pytest

from chanmirror.errors import MirrorError
from chanmirror.eventlog import MirrorEventLog


def _read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


def _fixed_now() -> datetime:
    return datetime(2026, 2, 24, 1, 30, tzinfo=timezone.utc)


def test_event_log_initializes_files_with_defaults(tmp_path):
    event_log = MirrorEventLog(tmp_path / "state", mode="transcripts", now_provider=_fixed_now)
    event_log.close()

    assert (tmp_path / "state" / "events.jsonl").exists()
    metrics = _read_json(tmp_path / "state" / "metrics.json")
    assert metrics == {
        "started_at": "2026-02-24T01:30:00+00:00",
        "mode": "transcripts",
        "active_file": None,
        "forwarded": 0,
        "failed": 0,
        "suppressed": 0,
        "last_forward_at": None,
    }


def test_log_appends_event_and_counts(tmp_path):
    event_log = MirrorEventLog(tmp_path, now_provider=_fixed_now)

    event_log.log("forwarded", "Done.", meta={"run_id": "run-1"})
    event_log.log("suppressed", "Done.")
    event_log.close()

    rows = (tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(rows) == 2
    event = json.loads(rows[0])
    assert event == {
        "ts": "2026-02-24T01:30:00+00:00",
        "kind": "forwarded",
        "message": "Done.",
        "meta": {"run_id": "run-1"},
    }

    metrics = _read_json(tmp_path / "metrics.json")
    assert metrics["forwarded"] == 1
    assert metrics["suppressed"] == 1
    assert metrics["failed"] == 0
    assert metrics["last_forward_at"] == "2026-02-24T01:30:00+00:00"


def test_set_active_file_updates_metrics(tmp_path):
    event_log = MirrorEventLog(tmp_path, now_provider=_fixed_now)
    event_log.set_active_file(tmp_path / "sess.jsonl")

    assert event_log.snapshot()["active_file"] == str(tmp_path / "sess.jsonl")
    event_log.close()


def test_log_rejects_unknown_kind(tmp_path):
    event_log = MirrorEventLog(tmp_path, now_provider=_fixed_now)
    with pytest.raises(MirrorError, match="unsupported event kind"):
        event_log.log("sent", "nope")
    event_log.close()


def test_log_after_close_raises(tmp_path):
    event_log = MirrorEventLog(tmp_path, now_provider=_fixed_now)
    event_log.close()
    event_log.close()

    with pytest.raises(MirrorError, match="closed"):
        event_log.log("system", "late")


def test_log_is_thread_safe(tmp_path):
    event_log = MirrorEventLog(tmp_path, now_provider=_fixed_now)

    def writer(index: int) -> None:
        event_log.log("forwarded", f"text {index}")

    threads = [threading.Thread(target=writer, args=(index,)) for index in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    event_log.close()

    assert len((tmp_path / "events.jsonl").read_text(encoding="utf-8").splitlines()) == 5
    assert _read_json(tmp_path / "metrics.json")["forwarded"] == 5


def test_unencodable_text_is_replaced_not_raised(tmp_path):
    event_log = MirrorEventLog(tmp_path, now_provider=_fixed_now)

    event_log.log("failed", "reply \ud83d cut", meta={"detail": "bad \udcff byte"})
    event_log.set_active_file(tmp_path / "sess-\udcff.jsonl")
    event_log.close()

    event = _read_json(tmp_path / "events.jsonl")
    assert event["message"] == "reply ? cut"
    assert event["meta"] == {"detail": "bad ? byte"}
    assert _read_json(tmp_path / "metrics.json")["active_file"].endswith("sess-?.jsonl")
