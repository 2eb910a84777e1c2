"""Brief: Tests for the external subdomain file fetcher.

Inputs:
  - None

Outputs:
  - None
"""

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests
from urllib3.exceptions import ReadTimeoutError

from bnsresolver.cache.in_memory_ttl import InMemoryTTLCache
from bnsresolver.errors import (
    ExternalFileError,
    ExternalFileTimeoutError,
    ExternalFileTooLargeError,
    SchemaViolationError,
    UnsafeUrlError,
)
from bnsresolver.subdomains.fetcher import ExternalSubdomainFetcher, schema_errors

from conftest import FakeResponse, FakeSession, base_fields

URL = "https://names.s3.amazonaws.com/alice.json"
JSON_HEADERS = {"content-type": "application/json; charset=utf-8", "content-length": "100"}


def _body(doc=None):
    doc = doc if doc is not None else {"subdomains": {"pay": base_fields("SP2")}}
    return json.dumps(doc).encode("utf-8")


def _fetcher(session, **kwargs):
    return ExternalSubdomainFetcher(InMemoryTTLCache(), session=session, **kwargs)


@pytest.mark.parametrize(
    "url,message",
    [
        ("http://names.s3.amazonaws.com/a.json", "External URL must be HTTPS"),
        ("https://names.s3.amazonaws.com/a.txt", "External file must end with .json"),
        ("https://localhost/a.json", "External URL domain is not safe"),
        ("https://127.0.0.1/a.json", "External URL domain is not safe"),
        ("https://names.s3.amazonaws.com/a.json?x=1", "External URL must not have query or fragment"),
        ("https://names.s3.amazonaws.com/a.json#top", "External URL must not have query or fragment"),
        ("https://u:p@names.s3.amazonaws.com/a.json", "External URL must not contain user info"),
        ("https://evil.example.com/a.json", "External URL must be an allowed S3 domain"),
        ("https://s3.amazonaws.com.evil.io/a.json", "External URL must be an allowed S3 domain"),
    ],
)
def test_unsafe_urls_rejected_without_network(url, message) -> None:
    """Brief: URL checks run in order and fail before any HTTP request.

    Inputs:
      - url: Candidate URL.
      - message: Expected first failing check.

    Outputs:
      - None
    """

    session = FakeSession(get=AssertionError("no GET"), head=AssertionError("no HEAD"))
    with pytest.raises(UnsafeUrlError) as excinfo:
        _fetcher(session).fetch(url)
    assert excinfo.value.message == message
    assert excinfo.value.status_code == 400
    assert session.calls == []


@pytest.mark.parametrize(
    "host",
    ["names.s3.amazonaws.com", "names.s3.us-east-1.amazonaws.com", "a.b.s3-eu-west-1.amazonaws.com"],
)
def test_allowed_s3_hosts(host) -> None:
    """Brief: Virtual-hosted S3 hostnames pass the URL policy.

    Inputs:
      - host: S3 hostname.

    Outputs:
      - None
    """

    _fetcher(FakeSession()).check_url(f"https://{host}/subdomains.json")


def test_fetch_success_is_cached_by_url() -> None:
    """Brief: A successful fetch sends HEAD then GET and is cached by URL.

    Inputs:
      - None

    Outputs:
      - None
    """

    resp = FakeResponse(200, chunks=[_body()])
    session = FakeSession(get=resp, head=FakeResponse(200, headers=JSON_HEADERS))
    fetcher = _fetcher(session)

    first = fetcher.fetch(URL)
    second = fetcher.fetch(URL)
    assert first == second
    assert first["subdomains"]["pay"]["owner"] == "SP2"
    assert [c[0] for c in session.calls] == ["HEAD", "GET"]
    head_kwargs = session.calls[0][2]
    get_kwargs = session.calls[1][2]
    assert head_kwargs["allow_redirects"] is False
    assert head_kwargs["timeout"] == 5.0
    assert get_kwargs["allow_redirects"] is False
    assert get_kwargs["stream"] is True
    assert get_kwargs["timeout"] == 5.0
    assert resp.closed is True


@pytest.mark.parametrize(
    "head,message",
    [
        (requests.ConnectionError("down"), "Unable to verify external subdomains file"),
        (FakeResponse(404, headers=JSON_HEADERS), "Unable to verify external subdomains file"),
        (FakeResponse(200, headers={"content-type": "text/html"}), "External file is not application/json"),
    ],
)
def test_head_failures(head, message) -> None:
    """Brief: HEAD problems are reported before any GET.

    Inputs:
      - head: HEAD outcome.
      - message: Expected error message.

    Outputs:
      - None
    """

    session = FakeSession(get=AssertionError("no GET"), head=head)
    with pytest.raises(ExternalFileError) as excinfo:
        _fetcher(session).fetch(URL)
    assert excinfo.value.message == message
    assert [c[0] for c in session.calls] == ["HEAD"]


def test_reported_size_over_cap_is_rejected() -> None:
    """Brief: A Content-Length above the cap fails without downloading.

    Inputs:
      - None

    Outputs:
      - None
    """

    head = FakeResponse(200, headers={"content-type": "application/json", "content-length": "11"})
    session = FakeSession(get=AssertionError("no GET"), head=head)
    with pytest.raises(ExternalFileTooLargeError) as excinfo:
        _fetcher(session, max_bytes=10).fetch(URL)
    assert excinfo.value.message == "External subdomain file too large"


def test_oversize_body_aborts_mid_stream() -> None:
    """Brief: A body larger than reported is cut off once it passes the cap.

    Inputs:
      - None

    Outputs:
      - None
    """

    resp = FakeResponse(200, chunks=[b"x" * 6, b"y" * 6, b"z" * 6])
    session = FakeSession(get=resp, head=FakeResponse(200, headers={"content-type": "application/json"}))
    with pytest.raises(ExternalFileTooLargeError):
        _fetcher(session, max_bytes=10).fetch(URL)
    assert resp.chunks_served == 2
    assert resp.closed is True


def test_slow_body_times_out() -> None:
    """Brief: A transfer exceeding the wall-clock budget reports a 504 timeout.

    Inputs:
      - None

    Outputs:
      - None
    """

    now = {"t": 0.0}

    class SlowResponse(FakeResponse):
        def iter_content(self, chunk_size=None):
            yield b"{"
            now["t"] = 5.5
            yield b"}"

    session = FakeSession(
        get=SlowResponse(200), head=FakeResponse(200, headers={"content-type": "application/json"})
    )
    fetcher = _fetcher(session, clock=lambda: now["t"])
    with pytest.raises(ExternalFileTimeoutError) as excinfo:
        fetcher.fetch(URL)
    assert excinfo.value.status_code == 504


@pytest.mark.parametrize(
    "get,error,message",
    [
        (requests.Timeout("slow"), ExternalFileTimeoutError,
         "Failed to fetch external subdomains file (timeout or network error)"),
        (FakeResponse(500), ExternalFileError, "Failed to fetch external subdomains file"),
        (FakeResponse(200, chunks=[b"a"], raise_on_iter=requests.ConnectionError("reset")),
         ExternalFileError, "Error reading external subdomains file"),
    ],
)
def test_get_failures(get, error, message) -> None:
    """Brief: GET transport, status and stream errors map to distinct messages.

    Inputs:
      - get: GET outcome.
      - error: Expected exception type.
      - message: Expected message.

    Outputs:
      - None
    """

    session = FakeSession(get=get, head=FakeResponse(200, headers=JSON_HEADERS))
    with pytest.raises(error) as excinfo:
        _fetcher(session).fetch(URL)
    assert excinfo.value.message == message


@pytest.mark.parametrize(
    "body,message",
    [
        (b"not json", "Invalid JSON format in external subdomains file"),
        (_body({"records": {}}), "No 'subdomains' property found in the JSON"),
        (_body([1, 2]), "No 'subdomains' property found in the JSON"),
    ],
)
def test_parse_rejects_bad_documents(body, message) -> None:
    """Brief: Invalid JSON and a missing 'subdomains' key are rejected.

    Inputs:
      - body: Raw bytes.
      - message: Expected message.

    Outputs:
      - None
    """

    with pytest.raises(ExternalFileError) as excinfo:
        ExternalSubdomainFetcher.parse(body)
    assert excinfo.value.message == message


def test_schema_violations_are_aggregated() -> None:
    """Brief: Every schema violation in the subdomains map is reported.

    Inputs:
      - None

    Outputs:
      - None
    """

    bad_record = base_fields("SP2")
    del bad_record["url"]
    bad_record["extra"] = "x"
    doc = {"subdomains": {"ok": base_fields("SP3"), "bad": bad_record, "Upper": base_fields("SP4")}}

    errors = schema_errors(doc["subdomains"])
    assert len(errors) >= 3
    with pytest.raises(SchemaViolationError) as excinfo:
        ExternalSubdomainFetcher.parse(_body(doc))
    assert excinfo.value.message.startswith("Invalid subdomains schema: ")
    assert excinfo.value.details == errors
    assert excinfo.value.status_code == 400


def test_failed_fetch_is_not_cached() -> None:
    """Brief: Failures are not cached; the next call retries the transfer.

    Inputs:
      - None

    Outputs:
      - None
    """

    answers = [FakeResponse(500), FakeResponse(200, chunks=[_body()])]
    session = FakeSession(
        get=lambda: answers.pop(0), head=FakeResponse(200, headers=JSON_HEADERS)
    )
    fetcher = _fetcher(session)
    with pytest.raises(ExternalFileError):
        fetcher.fetch(URL)
    assert "subdomains" in fetcher.fetch(URL)


def test_configured_blocklist_extends_builtin_patterns() -> None:
    """Brief: Configured blocked hosts add to the loopback checks, never replace them.

    Inputs:
      - None

    Outputs:
      - None
    """

    session = FakeSession(get=AssertionError("no GET"), head=AssertionError("no HEAD"))
    for patterns in ([], [r"^internal\.s3\.amazonaws\.com$"]):
        fetcher = _fetcher(session, blocked_host_patterns=patterns)
        with pytest.raises(UnsafeUrlError) as excinfo:
            fetcher.check_url("https://localhost/a.json")
        assert excinfo.value.message == "External URL domain is not safe"

    fetcher = _fetcher(session, blocked_host_patterns=[r"^internal\.s3\.amazonaws\.com$"])
    with pytest.raises(UnsafeUrlError) as excinfo:
        fetcher.check_url("https://internal.s3.amazonaws.com/a.json")
    assert excinfo.value.message == "External URL domain is not safe"
    fetcher.check_url(URL)
    assert session.calls == []


def test_wrapped_read_timeout_mid_body_reports_timeout() -> None:
    """Brief: requests wraps a stalled body read in ConnectionError; it still maps to 504.

    Inputs:
      - None

    Outputs:
      - None
    """

    stall = requests.ConnectionError(ReadTimeoutError(None, URL, "Read timed out."))
    resp = FakeResponse(200, chunks=[b'{"subdomains"'], raise_on_iter=stall)
    session = FakeSession(get=resp, head=FakeResponse(200, headers=JSON_HEADERS))
    with pytest.raises(ExternalFileTimeoutError) as excinfo:
        _fetcher(session).fetch(URL)
    assert excinfo.value.status_code == 504
    assert resp.closed is True


def _local_fetcher(timeout_seconds):
    session = requests.Session()
    session.trust_env = False
    return ExternalSubdomainFetcher(
        InMemoryTTLCache(), session=session, timeout_seconds=timeout_seconds
    )


class _ScriptedBodyHandler(BaseHTTPRequestHandler):
    """Serve a JSON body as (bytes, pause_seconds) steps from server.script."""

    def do_GET(self):
        total = sum(len(data) for data, _ in self.server.script)
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(total))
        self.end_headers()
        try:
            for data, pause in self.server.script:
                self.wfile.write(data)
                self.wfile.flush()
                time.sleep(pause)
        except OSError:
            return

    def log_message(self, format, *args):
        pass


@pytest.fixture
def scripted_server():
    """Brief: Local HTTP server whose response body follows a per-test script.

    Inputs:
      - None

    Outputs:
      - Callable taking the script and returning the file URL.
    """

    server = ThreadingHTTPServer(("127.0.0.1", 0), _ScriptedBodyHandler)
    server.daemon_threads = True
    server.script = []
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    def _serve(script):
        server.script = script
        return f"http://127.0.0.1:{server.server_address[1]}/subdomains.json"

    try:
        yield _serve
    finally:
        server.shutdown()
        server.server_close()


def test_dripping_server_is_cut_off_at_budget(scripted_server) -> None:
    """Brief: Bytes trickling in under the socket timeout cannot outlast the budget.

    Inputs:
      - scripted_server: fixture serving one byte every 0.3s (about 5s total).

    Outputs:
      - None
    """

    url = scripted_server([(bytes([b]), 0.3) for b in b'{"subdomains":{}}'])
    fetcher = _local_fetcher(1.0)
    started = time.monotonic()
    with pytest.raises(ExternalFileTimeoutError):
        fetcher._download(url)
    assert time.monotonic() - started < 3.0


def test_stall_mid_body_is_a_timeout(scripted_server) -> None:
    """Brief: A server that stalls past the budget mid-body yields a timeout, not a read error.

    Inputs:
      - scripted_server: fixture sending part of the body, pausing 2.5s, then the rest.

    Outputs:
      - None
    """

    url = scripted_server([(b'{"subdomains"', 2.5), (b":{}}", 0.0)])
    fetcher = _local_fetcher(1.0)
    started = time.monotonic()
    with pytest.raises(ExternalFileTimeoutError):
        fetcher._download(url)
    assert time.monotonic() - started < 2.4


def test_fast_local_server_body_is_returned(scripted_server) -> None:
    """Brief: A body delivered within the budget is returned intact.

    Inputs:
      - scripted_server: fixture serving the whole body at once.

    Outputs:
      - None
    """

    url = scripted_server([(b'{"subdomains":{}}', 0.0)])
    fetcher = _local_fetcher(2.0)
    assert fetcher.parse(fetcher._download(url)) == {"subdomains": {}}
