from __future__ import annotations

import threading

import pytest

from fuel_directory.common.errors import FetchCancelledError, RemoteFetchError
from fuel_directory.common.http import HttpClient, RetryConfig
from fuel_directory.remote.table_client import TableClient

API = "https://api.example.test/api"


class FakeHttpClient:
    def __init__(self, pages: dict[str, dict]):
        self.pages = pages
        self.calls: list[tuple[str, dict | None]] = []

    def get_json(self, url, *, params=None, headers=None, timeout=None, cancel=None):
        self.calls.append((url, params))
        if url not in self.pages:
            raise RemoteFetchError("HTTP status: 404", status=404, url=url)
        return self.pages[url]


def _rows(start: int, count: int) -> list[dict]:
    return [{"id": i, "Station Name": f"Station {i}"} for i in range(start, start + count)]


def test_fetch_all_rows_follows_cursor_until_exhausted():
    first = f"{API}/database/rows/table/7/"
    second = f"{API}/database/rows/table/7/?page=2&size=50&user_field_names=true"
    http = FakeHttpClient(
        {
            first: {"count": 61, "next": second, "previous": None, "results": _rows(1, 50)},
            second: {"count": 61, "next": None, "previous": first, "results": _rows(51, 11)},
        }
    )

    rows = TableClient(API, http_client=http).fetch_all_rows(7, 50)

    assert len(rows) == 61
    assert [row["id"] for row in rows] == list(range(1, 62))
    assert http.calls[0] == (first, {"user_field_names": "true", "size": 50})


def test_next_cursor_is_used_verbatim_without_extra_params():
    first = f"{API}/database/rows/table/9/"
    odd_next = "https://mirror.example.test/rows?cursor=abc%3D%3D&x=1"
    http = FakeHttpClient(
        {
            first: {"next": odd_next, "results": _rows(1, 2)},
            odd_next: {"next": "", "results": _rows(3, 1)},
        }
    )

    rows = TableClient(API, http_client=http).fetch_all_rows(9, 2)

    assert len(rows) == 3
    assert http.calls[1] == (odd_next, None)


def test_empty_table_returns_empty_list():
    first = f"{API}/database/rows/table/1/"
    http = FakeHttpClient({first: {"count": 0, "next": None, "results": []}})

    assert TableClient(API, http_client=http).fetch_all_rows(1) == []


def test_page_without_results_array_is_an_error():
    first = f"{API}/database/rows/table/1/"
    http = FakeHttpClient({first: {"detail": "oops"}})

    with pytest.raises(RemoteFetchError):
        TableClient(API, http_client=http).fetch_all_rows(1)


def test_failure_on_later_page_discards_partial_rows():
    first = f"{API}/database/rows/table/1/"
    http = FakeHttpClient({first: {"next": f"{API}/missing", "results": _rows(1, 5)}})

    with pytest.raises(RemoteFetchError):
        TableClient(API, http_client=http).fetch_all_rows(1, 5)


def test_pagination_cycle_is_detected():
    first = f"{API}/database/rows/table/1/"
    http = FakeHttpClient({first: {"next": first, "results": _rows(1, 1)}})

    with pytest.raises(RemoteFetchError, match="cycle"):
        TableClient(API, http_client=http).fetch_all_rows(1, 1)


@pytest.mark.parametrize("page_size", [0, 201])
def test_page_size_out_of_range(page_size):
    with pytest.raises(ValueError):
        TableClient(API, http_client=FakeHttpClient({})).fetch_all_rows(1, page_size)


def test_cancelled_fetch_stops_before_requesting():
    http = FakeHttpClient({})
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(FetchCancelledError):
        TableClient(API, http_client=http).fetch_all_rows(1, cancel=cancel)
    assert http.calls == []


def test_check_connection_reports_failure_without_raising():
    result = TableClient(API, http_client=FakeHttpClient({})).check_connection(3)

    assert result["connected"] is False
    assert result["status"] == 404


def test_check_connection_counts_fields():
    url = f"{API}/database/fields/table/3/"
    http = FakeHttpClient({url: [{"id": 1, "name": "Station Name"}, {"id": 2, "name": "Brand"}]})

    assert TableClient(API, http_client=http).check_connection(3) == {"connected": True, "field_count": 2}


@pytest.mark.parametrize("bad_row", ["garbage", None, 42, ["id", 1]])
def test_non_object_row_in_results_is_an_error(bad_row):
    first = f"{API}/database/rows/table/1/"
    http = FakeHttpClient({first: {"next": None, "results": [{"id": 1}, bad_row]}})

    with pytest.raises(RemoteFetchError, match="Non-object row"):
        TableClient(API, http_client=http).fetch_all_rows(1)


class FakeResponse:
    def __init__(self, status_code: int, payload=None, headers=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text

    def json(self):
        return self._payload


def _live_client(sleeps: list, max_attempts: int = 4) -> HttpClient:
    return HttpClient(retry=RetryConfig(max_attempts=max_attempts), rate_per_sec=None, sleep=sleeps.append)


def test_rate_limited_page_is_retried_in_place(monkeypatch):
    first = f"{API}/database/rows/table/4/"
    second = f"{API}/database/rows/table/4/?page=2&size=1&user_field_names=true"
    script = {
        first: [FakeResponse(200, {"next": second, "results": [{"id": 1}]})],
        second: [
            FakeResponse(429, text="slow down"),
            FakeResponse(429, text="slow down"),
            FakeResponse(200, {"next": None, "results": [{"id": 2}]}),
        ],
    }
    requested: list[str] = []

    def _request(**kwargs):
        requested.append(kwargs["url"])
        return script[kwargs["url"]].pop(0)

    sleeps: list = []
    http = _live_client(sleeps)
    monkeypatch.setattr(http.session, "request", _request)

    rows = TableClient(API, http_client=http).fetch_all_rows(4, 1)

    assert [row["id"] for row in rows] == [1, 2]
    assert sleeps == [1.0, 2.0]
    assert requested == [first, second, second, second]


def test_cancel_during_backoff_stops_the_fetch(monkeypatch):
    cancel = threading.Event()
    requested: list[str] = []

    def _request(**kwargs):
        requested.append(kwargs["url"])
        cancel.set()
        return FakeResponse(503, text="busy")

    http = _live_client([])
    monkeypatch.setattr(http.session, "request", _request)

    with pytest.raises(FetchCancelledError):
        TableClient(API, http_client=http).fetch_all_rows(4, cancel=cancel)
    assert len(requested) == 1
