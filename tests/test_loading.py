from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from token_topup_report import (
    MalformedSource,
    SourceUnavailable,
    load_companies,
    load_users,
    read_records,
)


def _write_json(path: Path, data) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_companies_last_write_wins_and_drops_invalid(caplog: pytest.LogCaptureFixture) -> None:
    records = [
        {"id": 1, "name": "First", "top_up": 5, "email_status": True},
        {"id": 2, "name": "", "top_up": 5, "email_status": True},
        {"id": 1, "name": "Second", "top_up": 7, "email_status": False},
        "not a record",
    ]
    with caplog.at_level(logging.DEBUG):
        companies = load_companies(records)

    assert list(companies) == [1]
    assert companies[1].name == "Second"
    assert companies[1].top_up == 7
    assert caplog.records == []


def test_load_users_keeps_order_and_drops_invalid(caplog: pytest.LogCaptureFixture) -> None:
    base = {
        "first_name": "A",
        "email": "a@x",
        "company_id": 1,
        "email_status": True,
        "active_status": True,
        "tokens": 0,
    }
    records = [
        dict(base, id=3, last_name="C"),
        dict(base, id=1, last_name="A", email_status="true"),
        dict(base, id=2, last_name="B"),
    ]
    with caplog.at_level(logging.DEBUG):
        users = load_users(records)

    assert [u.id for u in users] == [3, 2]
    assert caplog.records == []


def test_load_from_path(tmp_path: Path) -> None:
    path = _write_json(tmp_path / "companies.json", [{"id": 4, "name": "Acme", "top_up": 1.5, "email_status": False}])
    companies = load_companies(path)
    assert companies[4].top_up == 1.5

    companies_from_str = load_companies(str(path))
    assert companies_from_str == companies


def test_read_records_tolerates_bom(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    path.write_bytes(b"\xef\xbb\xbf[]")
    assert read_records(path) == []


def test_read_records_missing_file(tmp_path: Path) -> None:
    with pytest.raises(SourceUnavailable, match="File not found"):
        read_records(tmp_path / "nope.json")


def test_read_records_directory_is_unavailable(tmp_path: Path) -> None:
    with pytest.raises(SourceUnavailable):
        read_records(tmp_path)


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "",
        '{"id": 1}',
        "42",
        '[{"id": NaN}]',
        "[" * 100000,
    ],
)
def test_read_records_malformed(tmp_path: Path, content: str) -> None:
    path = tmp_path / "companies.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(MalformedSource):
        read_records(path)


def test_read_records_undecodable_bytes(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    path.write_bytes(b"[\xff\xfe]")
    with pytest.raises(MalformedSource):
        read_records(path)


def test_load_users_propagates_fatal_errors(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    path.write_text("[1, 2", encoding="utf-8")
    with pytest.raises(MalformedSource, match="Invalid JSON"):
        load_users(path)


def test_load_companies_treats_equal_numeric_ids_as_one_key() -> None:
    records = [
        {"id": 1, "name": "Int", "top_up": 1, "email_status": True},
        {"id": 1.0, "name": "Float", "top_up": 2, "email_status": True},
    ]
    companies = load_companies(records)
    assert len(companies) == 1
    assert companies[1].name == "Float"
