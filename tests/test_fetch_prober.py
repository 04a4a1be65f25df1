# tests/test_fetch_prober.py
"""
Testes do probe de existencia: rate limit limitado, fallback com padding,
mapeamento de status HTTP e contrato "nunca levanta".
Transporte HTTP e sempre fake (nenhuma chamada de rede).
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from sgglaw.fetch.http_probe import TRANSPORT_ERROR_STATUS, HttpProbe
from sgglaw.fetch.prober import DocumentProber
from sgglaw.fetch.rate_limit import RateLimitHandler
from sgglaw.models import LegalDocument, ProcessingStatus

BASE = "https://sgg.test/doc"
S = ProcessingStatus


# ─── Helpers ─────────────────────────────────────────────────────────

class ScriptedTransport:
    """Devolve status por URL; lista = sequencia consumida a cada chamada."""

    def __init__(self, script=None, default=404):
        self.script = script or {}
        self.default = default
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        value = self.script.get(url, self.default)
        if isinstance(value, list):
            return value.pop(0) if len(value) > 1 else value[0]
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def limiter(sleeps):
    return RateLimitHandler(max_retries=3, base_delay=1.0, sleep=sleeps.append)


# ─── RateLimitHandler ────────────────────────────────────────────────

class TestRateLimitHandler:
    def test_no_retry_when_ok(self, limiter, sleeps):
        transport = ScriptedTransport(default=200)
        assert limiter.execute_with_retry("u", transport) == 200
        assert len(transport.calls) == 1
        assert sleeps == []

    def test_retries_then_succeeds(self, limiter, sleeps):
        transport = ScriptedTransport({"u": [429, 429, 200]})
        assert limiter.execute_with_retry("u", transport) == 200
        assert len(transport.calls) == 3
        assert sleeps == [1.0, 2.0]

    def test_bounded_retries(self, limiter, sleeps):
        transport = ScriptedTransport(default=429)
        assert limiter.execute_with_retry("u", transport) == 429
        assert len(transport.calls) == 4      # inicial + 3 retries
        assert len(sleeps) == 3

    def test_zero_retries(self, sleeps):
        handler = RateLimitHandler(max_retries=0, sleep=sleeps.append)
        assert handler.execute_with_retry("u", ScriptedTransport(default=429)) == 429
        assert sleeps == []


# ─── DocumentProber ──────────────────────────────────────────────────

class TestDocumentProber:
    def test_found(self, limiter):
        transport = ScriptedTransport(default=200)
        doc = LegalDocument("loi", 2024, 15)
        outcome = DocumentProber(BASE, transport, limiter).probe(doc)
        assert outcome.status == S.FETCHED
        assert doc.status == S.FETCHED
        assert doc.url == f"{BASE}/loi-2024-15"
        assert outcome.network_calls == 1

    def test_rate_limited_then_found(self, limiter):
        url = f"{BASE}/loi-2024-15"
        transport = ScriptedTransport({url: [429, 429, 200]})
        doc = LegalDocument("loi", 2024, 15)
        outcome = DocumentProber(BASE, transport, limiter).probe(doc)
        assert outcome.status == S.FETCHED
        assert outcome.network_calls == 3

    def test_persistent_429_is_rate_limited(self, limiter):
        transport = ScriptedTransport(default=429)
        doc = LegalDocument("loi", 2024, 15)
        outcome = DocumentProber(BASE, transport, limiter).probe(doc)
        assert outcome.status == S.RATE_LIMITED
        assert doc.status == S.RATE_LIMITED
        assert len(transport.calls) == 4

    def test_not_found_large_number_has_no_padding(self, limiter):
        transport = ScriptedTransport(default=404)
        doc = LegalDocument("loi", 2024, 15)
        outcome = DocumentProber(BASE, transport, limiter).probe(doc)
        assert outcome.status == S.NOT_FOUND
        assert transport.calls == [f"{BASE}/loi-2024-15"]

    def test_padded_fallback(self, limiter):
        transport = ScriptedTransport({f"{BASE}/decret-2019-5": 404, f"{BASE}/decret-2019-05": 200})
        doc = LegalDocument("decret", 2019, 5)
        outcome = DocumentProber(BASE, transport, limiter).probe(doc)
        assert outcome.status == S.FETCHED
        assert doc.url == f"{BASE}/decret-2019-05"
        assert outcome.network_calls == 2

    def test_padded_fallback_both_missing(self, limiter):
        transport = ScriptedTransport(default=404)
        doc = LegalDocument("decret", 2019, 5)
        assert DocumentProber(BASE, transport, limiter).probe(doc).status == S.NOT_FOUND
        assert len(transport.calls) == 2

    def test_other_status_is_failed(self, limiter):
        doc = LegalDocument("loi", 2024, 15)
        outcome = DocumentProber(BASE, ScriptedTransport(default=503), limiter).probe(doc)
        assert outcome.status == S.FAILED
        assert doc.error_message == "HTTP 503"

    def test_transport_exception_never_escapes(self, limiter):
        doc = LegalDocument("loi", 2024, 15)
        transport = ScriptedTransport({f"{BASE}/loi-2024-15": RuntimeError("dns")})
        outcome = DocumentProber(BASE, transport, limiter).probe(doc)
        assert outcome.status == S.FAILED
        assert "dns" in doc.error_message

    @pytest.mark.parametrize("status", [S.FETCHED, S.NOT_FOUND, S.DOWNLOADED, S.FAILED])
    def test_resolved_document_makes_no_call(self, limiter, status):
        transport = ScriptedTransport(default=200)
        doc = LegalDocument("loi", 2024, 15, status=status)
        outcome = DocumentProber(BASE, transport, limiter).probe(doc)
        assert transport.calls == []
        assert outcome.status == status
        assert doc.status == status

    def test_rate_limited_is_eligible_again(self, limiter):
        transport = ScriptedTransport(default=200)
        doc = LegalDocument("loi", 2024, 15, status=S.RATE_LIMITED)
        assert DocumentProber(BASE, transport, limiter).probe(doc).status == S.FETCHED


# ─── HttpProbe ───────────────────────────────────────────────────────

class TestHttpProbe:
    def test_returns_status_code(self):
        session = MagicMock()
        session.headers = {}
        session.head.return_value = MagicMock(status_code=404)
        probe = HttpProbe(timeout=5, user_agent="ua-test", session=session)
        assert probe("https://x/loi-2024-1") == 404
        assert session.headers["User-Agent"] == "ua-test"
        session.head.assert_called_once_with("https://x/loi-2024-1", timeout=5, allow_redirects=True)

    def test_transport_error_becomes_500(self):
        session = MagicMock()
        session.headers = {}
        session.head.side_effect = requests.ConnectionError("refused")
        assert HttpProbe(session=session).head("https://x") == TRANSPORT_ERROR_STATUS
