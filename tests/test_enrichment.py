from waitlist_api.services import enrichment
from waitlist_api.services.payload import normalize_payload
from waitlist_api.services.submission import validate_submission


def _facts() -> enrichment.RequestFacts:
    return enrichment.RequestFacts(
        method="POST",
        url="https://example.com/api/waitlist?ref=hn",
        path="/api/waitlist",
        query={"ref": "hn"},
        http_version="1.1",
    )


def test_sanitize_additional_fields_stringifies_and_caps() -> None:
    out = enrichment.sanitize_additional_fields(
        {
            "  teamSize  ": "3-10",
            "seats": 12,
            "ratio": 2.5,
            "whole": 4.0,
            "flag": True,
            "nested": {"a": 1},
            "blank": "   ",
            "   ": "no key",
            "k" * 80: "long key",
            "long": "v" * 1500,
        }
    )
    assert out["teamSize"] == "3-10"
    assert out["seats"] == "12"
    assert out["ratio"] == "2.5"
    assert out["whole"] == "4"
    assert "flag" not in out
    assert "nested" not in out
    assert "blank" not in out
    assert "" not in out
    assert out["k" * 64] == "long key"
    assert len(out["long"]) == 1200


def test_sanitize_additional_fields_keeps_at_most_24_entries() -> None:
    raw = {f"field{i}": str(i) for i in range(40)}
    out = enrichment.sanitize_additional_fields(raw)
    assert len(out) == 24
    assert list(out) == [f"field{i}" for i in range(24)]


def test_sanitize_additional_fields_removes_use_case_duplicate() -> None:
    out = enrichment.sanitize_additional_fields({"useCase": "dup", "use_case": "dup", "teamSize": "3-10"})
    assert out == {"teamSize": "3-10"}


def test_pick_headers_only_keeps_allowlisted_non_empty_values() -> None:
    headers = {"user-agent": "Mozilla/5.0", "accept": "", "cookie": "secret=1", "sec-fetch-mode": "cors"}
    assert enrichment.pick_headers(headers) == {"sec-fetch-mode": "cors", "user-agent": "Mozilla/5.0"}


def test_read_edge_snapshot_parses_headers_defensively() -> None:
    snapshot = enrichment.read_edge_snapshot(
        {
            "cf-ipcountry": "DE",
            "cf-ipcity": "Berlin",
            "cf-ray": "8a1b2c3d4e5f6789-FRA",
            "cf-asn": "3320.0",
            "cf-iplatitude": "52.52",
            "cf-iplongitude": "not-a-number",
            "cf-bot-score": "87",
            "cf-region": "",
        },
        http_version="2",
    )
    assert snapshot.country == "DE"
    assert snapshot.city == "Berlin"
    assert snapshot.colo == "FRA"
    assert snapshot.asn == 3320
    assert snapshot.latitude == 52.52
    assert snapshot.longitude is None
    assert snapshot.bot_score == 87
    assert snapshot.region is None
    assert snapshot.http_protocol == "HTTP/2"


def test_read_edge_snapshot_prefers_declared_protocol_header() -> None:
    snapshot = enrichment.read_edge_snapshot({"cf-http-protocol": "HTTP/3"}, http_version="1.1")
    assert snapshot.http_protocol == "HTTP/3"
    assert snapshot.colo is None


def test_build_metadata_combines_all_sections() -> None:
    submission = validate_submission(
        normalize_payload(
            {
                "email": "a@b.com",
                "locale": "en-US",
                "screen": "1920x1080",
                "additionalFields": {"teamSize": "3-10", "useCase": "dup"},
                "metadata": {"referrer": "https://x.com/"},
            }
        )
    )
    assert submission is not None
    headers = {"cf-ray": "abc-SJC", "referer": "https://x.com/", "accept-language": "en"}
    edge = enrichment.read_edge_snapshot(headers)

    metadata = enrichment.build_metadata(submission=submission, request=_facts(), headers=headers, edge=edge)

    assert metadata["provided"] == {"referrer": "https://x.com/"}
    assert metadata["additionalFields"] == {"teamSize": "3-10"}
    assert metadata["request"] == {
        "method": "POST",
        "path": "/api/waitlist",
        "query": {"ref": "hn"},
        "source": "https://example.com/api/waitlist?ref=hn",
        "cfRay": "abc-SJC",
    }
    assert metadata["client"]["locale"] == "en-US"
    assert metadata["client"]["screen"] == "1920x1080"
    assert metadata["client"]["cookieEnabled"] is None
    assert metadata["client"]["referrer"] == "https://x.com/"
    assert metadata["headers"] == {"accept-language": "en"}
    assert metadata["cloudflare"]["colo"] == "SJC"


def test_build_entry_row_lowercases_email_and_defaults_source() -> None:
    submission = validate_submission(
        normalize_payload({"email": "Owner@Example.COM", "cookieEnabled": "no", "qualifier": "other"})
    )
    assert submission is not None
    row = enrichment.build_entry_row(
        submission=submission,
        request=_facts(),
        headers={"user-agent": "UA", "host": "example.com"},
        edge=enrichment.EdgeSnapshot(country="US"),
        ip_address="203.0.113.7",
        metadata={"provided": {}},
        received_at="2024-01-01T00:00:00.000Z",
    )
    assert row["email"] == "owner@example.com"
    assert row["qualifier"] == "other"
    assert row["source_url"] == "https://example.com/api/waitlist?ref=hn"
    assert row["landing_path"] == "/api/waitlist"
    assert row["cookie_enabled"] is False
    assert row["ip_address"] == "203.0.113.7"
    assert row["user_agent"] == "UA"
    assert row["cf_country"] == "US"
    assert row["metadata_json"] == {"provided": {}}
    assert row["updated_at"] == "2024-01-01T00:00:00.000Z"
    assert "created_at" not in row
    assert "ip_hash" not in row
