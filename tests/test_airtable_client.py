import dataclasses

import polars as pl
import pytest

from grants_sync.airtable_client import AirtableClient, AirtableError
from grants_sync.config import Settings


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.headers = headers or {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class FakeSession:
    """Replays queued responses and records every request."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []
        self.headers = {}

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responses.pop(0)


def make_settings(**overrides):
    base = Settings(
        api_key="patTEST",
        base_id="appBASE",
        source_table="Foundation Grants Data",
        grants_table="Grants",
        reports_table="Progress_Reports",
        visits_table="Site_Visits",
        input_file="in.xlsx",
        output_file="out.xlsx",
        max_retries=2,
        rate_limit_delay=0.0,
        debug_mode=False,
        backup_before_write=False,
    )
    return dataclasses.replace(base, **overrides)


def make_client(responses, **overrides):
    session = FakeSession(responses)
    sleeps = []
    client = AirtableClient(make_settings(**overrides), session=session, sleep=sleeps.append)
    return client, session, sleeps


def test_requires_credentials():
    with pytest.raises(ValueError):
        AirtableClient(make_settings(api_key=""))


def test_fetch_all_follows_offsets_and_keeps_record_ids():
    client, session, _ = make_client(
        [
            FakeResponse(payload={"records": [{"id": "rec1", "fields": {"Grant_ID": "GR-2023-0001"}}], "offset": "p2"}),
            FakeResponse(payload={"records": [{"id": "rec2", "fields": {"Grant_ID": "GR-2023-0002"}}]}),
        ]
    )

    rows = client.fetch_all("Foundation Grants Data")

    assert rows == [
        {"Grant_ID": "GR-2023-0001", "airtable_record_id": "rec1"},
        {"Grant_ID": "GR-2023-0002", "airtable_record_id": "rec2"},
    ]
    assert session.calls[0][1] == "https://api.airtable.com/v0/appBASE/Foundation%20Grants%20Data"
    assert "offset" not in session.calls[0][2]["params"]
    assert session.calls[1][2]["params"]["offset"] == "p2"
    assert session.headers["Authorization"] == "Bearer patTEST"


def test_persist_batches_by_ten_and_drops_nulls():
    frame = pl.DataFrame(
        {
            "Report_ID": [f"RPT-2023-0001-{i:04d}" for i in range(1, 13)],
            "Challenges_Faced": [None] * 12,
        }
    )
    client, session, _ = make_client([FakeResponse(), FakeResponse()])

    written = client.persist("Progress_Reports", frame)

    assert written == 12
    batches = [kwargs["json"]["records"] for _, _, kwargs in session.calls]
    assert [len(b) for b in batches] == [10, 2]
    assert batches[0][0] == {"fields": {"Report_ID": "RPT-2023-0001-0001"}}
    assert all(method == "POST" for method, _, _ in session.calls)


def test_retries_rate_limited_requests_then_succeeds():
    client, session, sleeps = make_client(
        [
            FakeResponse(status_code=429, headers={"Retry-After": "1.5"}),
            FakeResponse(payload={"records": []}),
        ]
    )

    assert client.fetch_all("Grants") == []
    assert len(session.calls) == 2
    assert 1.5 in sleeps


def test_errors_propagate_after_retries_exhausted():
    client, session, _ = make_client([FakeResponse(status_code=503)] * 3)

    with pytest.raises(AirtableError) as excinfo:
        client.fetch_all("Grants")
    assert excinfo.value.status_code == 503
    assert len(session.calls) == 3


def test_client_errors_are_not_retried():
    client, session, _ = make_client([FakeResponse(status_code=422, payload={"error": "INVALID"})])

    with pytest.raises(AirtableError):
        client.persist("Grants", [{"Grant_ID": "GR-2023-0001"}])
    assert len(session.calls) == 1


def test_delete_all_records_in_batches():
    records = [{"id": f"rec{i}", "fields": {}} for i in range(11)]
    client, session, _ = make_client(
        [FakeResponse(payload={"records": records}), FakeResponse(), FakeResponse()]
    )

    assert client.delete_all_records("Grants") == 11
    deletes = [kwargs["params"] for method, _, kwargs in session.calls if method == "DELETE"]
    assert [len(p) for p in deletes] == [10, 1]
    assert deletes[1] == [("records[]", "rec10")]


def test_delete_all_records_skips_missing_table():
    client, _, _ = make_client([FakeResponse(status_code=404)])
    assert client.delete_all_records("Nope") == 0


def test_list_tables_uses_metadata_endpoint():
    client, session, _ = make_client([FakeResponse(payload={"tables": [{"id": "tbl1", "name": "Grants"}]})])

    assert client.list_tables() == [{"id": "tbl1", "name": "Grants"}]
    assert session.calls[0][1] == "https://api.airtable.com/v0/meta/bases/appBASE/tables"


def test_retry_backoff_is_linear_and_tolerates_http_date_retry_after():
    client, session, sleeps = make_client(
        [
            FakeResponse(status_code=503),
            FakeResponse(status_code=429, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"}),
            FakeResponse(payload={"records": []}),
        ]
    )

    assert client.fetch_all("Grants") == []
    assert len(session.calls) == 3
    # rate-limit delay is 0.0 in these settings, so only the backoff waits are non-zero
    assert [s for s in sleeps if s] == [1.0, 2.0]


def test_failed_writes_are_retried_only_when_throttled():
    client, session, _ = make_client([FakeResponse(status_code=502)])

    with pytest.raises(AirtableError) as excinfo:
        client.persist("Grants", [{"Grant_ID": "GR-2023-0001"}])
    assert excinfo.value.status_code == 502
    assert len(session.calls) == 1

    client, session, _ = make_client([FakeResponse(status_code=429), FakeResponse()])
    assert client.persist("Grants", [{"Grant_ID": "GR-2023-0001"}]) == 1
    assert len(session.calls) == 2
