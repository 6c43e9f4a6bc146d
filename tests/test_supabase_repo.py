import hashlib

import pytest
from postgrest.exceptions import APIError

from stub_supabase import StubSupabaseClient
from waitlist_api.core.config import Settings
from waitlist_api.repositories.supabase_repo import (
    StoreNotConfiguredError,
    WaitlistRepository,
    hash_ip_address,
    is_missing_ip_hash_error,
)


def _repo(stub: StubSupabaseClient, **overrides) -> WaitlistRepository:
    settings = Settings(app_env="dev", supabase_url="", supabase_service_role_key="", **overrides)
    repo = WaitlistRepository(settings)
    repo._client = stub
    return repo


def _row(email: str = "a@b.com", updated_at: str = "2024-01-01T10:00:00.000Z") -> dict:
    return {"email": email, "qualifier": "other", "ip_address": "203.0.113.7", "updated_at": updated_at}


def test_upsert_targets_email_conflict_without_created_at() -> None:
    stub = StubSupabaseClient()
    repo = _repo(stub)

    repo.upsert_entry(_row(), ip_address="203.0.113.7")

    query = stub.upserts[0]
    assert query.name == "waitlist_entries"
    assert query.on_conflict == "email"
    assert "created_at" not in query.payload
    assert "ip_hash" not in query.payload


def test_second_upsert_overwrites_but_keeps_created_at() -> None:
    stub = StubSupabaseClient()
    repo = _repo(stub)

    repo.upsert_entry(_row(updated_at="2024-01-01T10:00:00.000Z"), ip_address="203.0.113.7")
    repo.upsert_entry(
        {**_row(updated_at="2024-01-01T11:00:00.000Z"), "qualifier": "founder_exec"},
        ip_address="203.0.113.7",
    )

    assert len(stub.rows) == 1
    row = stub.rows[0]
    assert row["qualifier"] == "founder_exec"
    assert row["created_at"] == "2024-01-01T10:00:00.000Z"
    assert row["updated_at"] == "2024-01-01T11:00:00.000Z"


def test_upsert_retries_with_ip_hash_when_column_is_required() -> None:
    stub = StubSupabaseClient(require_ip_hash=True)
    repo = _repo(stub)

    repo.upsert_entry(_row(), ip_address="203.0.113.7")

    assert len(stub.upserts) == 2
    assert "ip_hash" not in stub.upserts[0].payload
    expected = hashlib.sha256(b"203.0.113.7").hexdigest()
    assert stub.upserts[1].payload["ip_hash"] == expected
    assert stub.rows[0]["ip_hash"] == expected
    assert repo.ip_hash_required is True


def test_ip_hash_requirement_is_remembered() -> None:
    stub = StubSupabaseClient(require_ip_hash=True)
    repo = _repo(stub)

    repo.upsert_entry(_row("a@b.com"), ip_address="203.0.113.7")
    repo.upsert_entry(_row("c@d.com"), ip_address="203.0.113.7")

    assert len(stub.upserts) == 3
    assert stub.upserts[2].payload["ip_hash"] == hash_ip_address("203.0.113.7")


def test_always_mode_writes_ip_hash_up_front() -> None:
    stub = StubSupabaseClient(require_ip_hash=True)
    repo = _repo(stub, ip_hash_mode="always")

    repo.upsert_entry(_row(), ip_address="unknown")

    assert len(stub.upserts) == 1
    assert stub.upserts[0].payload["ip_hash"] == hash_ip_address("unknown")


def test_never_mode_propagates_ip_hash_error() -> None:
    stub = StubSupabaseClient(require_ip_hash=True)
    repo = _repo(stub, ip_hash_mode="never")

    with pytest.raises(APIError):
        repo.upsert_entry(_row(), ip_address="203.0.113.7")
    assert len(stub.upserts) == 1


def test_other_store_errors_propagate_without_retry() -> None:
    error = APIError({"code": "23505", "message": "duplicate key value", "details": None, "hint": None})
    stub = StubSupabaseClient(fail_with=error)
    repo = _repo(stub)

    with pytest.raises(APIError):
        repo.upsert_entry(_row(), ip_address="203.0.113.7")
    assert len(stub.upserts) == 1
    assert repo.ip_hash_required is False


def test_is_missing_ip_hash_error_needs_code_and_column() -> None:
    assert is_missing_ip_hash_error(
        APIError({"code": "23502", "message": 'null value in column "ip_hash" violates', "details": None, "hint": None})
    )
    assert not is_missing_ip_hash_error(
        APIError({"code": "23502", "message": 'null value in column "email" violates', "details": None, "hint": None})
    )
    assert not is_missing_ip_hash_error(
        APIError({"code": "42703", "message": 'column "ip_hash" does not exist', "details": None, "hint": None})
    )
    assert not is_missing_ip_hash_error(RuntimeError("ip_hash"))


def test_count_submissions_filters_by_ip_and_window() -> None:
    stub = StubSupabaseClient()
    stub.rows = [
        {"email": "1@x.com", "ip_address": "203.0.113.7", "created_at": "2024-01-01T00:00:00.000Z"},
        {"email": "2@x.com", "ip_address": "203.0.113.7", "created_at": "2024-01-01T23:59:59.999Z"},
        {"email": "3@x.com", "ip_address": "203.0.113.7", "created_at": "2024-01-02T00:00:00.000Z"},
        {"email": "4@x.com", "ip_address": "198.51.100.1", "created_at": "2024-01-01T12:00:00.000Z"},
    ]
    repo = _repo(stub)

    count = repo.count_submissions(
        ip_address="203.0.113.7",
        window_start="2024-01-01T00:00:00.000Z",
        window_end="2024-01-01T23:59:59.999Z",
    )

    assert count == 2
    query = stub.selects[0]
    assert query.count_mode == "exact"
    assert query.head is True


def test_repo_without_credentials_raises() -> None:
    repo = WaitlistRepository(Settings(app_env="dev", supabase_url="", supabase_service_role_key=""))
    assert repo.enabled is False
    with pytest.raises(StoreNotConfiguredError):
        repo.upsert_entry(_row(), ip_address="203.0.113.7")
