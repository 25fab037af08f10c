from __future__ import annotations

import json
import os

from chanmirror.session_store import SessionStore


def _write_jsonl(path, entries: list[dict | str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        for entry in entries:
            if isinstance(entry, str):
                handle.write(entry + "\n")
                continue
            handle.write(json.dumps(entry) + "\n")


def _message(role: str, content: list[dict], entry_id: str) -> dict:
    return {"type": "message", "id": entry_id, "message": {"role": role, "content": content}}


def test_returns_none_for_missing_session(tmp_path):
    store = SessionStore(tmp_path)

    assert store.last_assistant_text("nonexistent-session-id-12345") is None


def test_returns_latest_assistant_text(tmp_path):
    _write_jsonl(
        tmp_path / "sess-1.jsonl",
        [
            _message("user", [{"type": "text", "text": "Hello"}], "1"),
            _message("assistant", [{"type": "text", "text": "Hi there! How can I help?"}], "2"),
        ],
    )

    assert SessionStore(tmp_path).last_assistant_text("sess-1") == "Hi there! How can I help?"


def test_skips_tool_calls_results_and_malformed_rows(tmp_path):
    _write_jsonl(
        tmp_path / "sess-2.jsonl",
        [
            _message("assistant", [{"type": "text", "text": "Earlier reply"}], "0"),
            _message(
                "assistant",
                [{"type": "toolCall", "id": "tool1", "name": "exec", "arguments": {"command": "ls"}}],
                "1",
            ),
            {"type": "message", "id": "2", "message": {"role": "toolResult", "content": [{"type": "text", "text": "file1.txt"}]}},
            _message(
                "assistant",
                [
                    {"type": "thinking", "thinking": "hmm"},
                    {"type": "text", "text": "Here are your files."},
                ],
                "3",
            ),
            _message("assistant", [{"type": "toolCall", "id": "tool2", "name": "exec"}], "4"),
            "{truncated",
        ],
    )

    assert SessionStore(tmp_path).last_assistant_text("sess-2") == "Here are your files."


def test_rejects_path_like_session_ids(tmp_path):
    (tmp_path / "secret.jsonl").write_text("", encoding="utf-8")
    store = SessionStore(tmp_path / "sessions")

    assert store.last_assistant_text("../secret") is None
    assert store.transcript_path("..") is None
    assert store.transcript_path("") is None


def test_newest_transcript_by_mtime(tmp_path):
    recent = tmp_path / "a.jsonl"
    stale = tmp_path / "b.jsonl"
    recent.write_text("", encoding="utf-8")
    stale.write_text("", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")
    os.utime(recent, (2_000, 2_000))
    os.utime(stale, (1_000, 1_000))

    assert SessionStore(tmp_path).newest_transcript() == recent
    assert SessionStore(tmp_path / "missing").newest_transcript() is None


def test_deeply_nested_rows_are_skipped(tmp_path):
    _write_jsonl(
        tmp_path / "sess-1.jsonl",
        [
            _message("assistant", [{"type": "text", "text": "Earlier reply"}], "1"),
            "[" * 200000 + "]" * 200000,
        ],
    )

    assert SessionStore(tmp_path).last_assistant_text("sess-1") == "Earlier reply"
