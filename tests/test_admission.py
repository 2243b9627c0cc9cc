"""
Tests for the admission gate.
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from fluxguard.core.admission import INDEX_PATH, WELCOME_PAGE, resolve_source


class TestResolveSource:
    """Source identity resolution."""

    def test_forwarded_for_wins(self):
        assert resolve_source("203.0.113.5", "127.0.0.1") == "203.0.113.5"

    @pytest.mark.parametrize("header", [None, ""])
    def test_falls_back_to_peer(self, header):
        """Missing or empty X-Forwarded-For uses the peer address."""
        assert resolve_source(header, "10.1.1.1") == "10.1.1.1"

    def test_header_used_verbatim(self):
        """Comma-separated chains are not split or normalized."""
        assert resolve_source("1.1.1.1, 2.2.2.2", "3.3.3.3") == "1.1.1.1, 2.2.2.2"


class TestAdmit:
    """Accept/reject behavior and counter exactness."""

    def test_root_redirects(self, core):
        result = core.gate.admit("10.0.0.1", "/")
        assert result.status == 302
        assert result.headers["Location"] == INDEX_PATH
        assert result.body == b""

    @pytest.mark.parametrize("path", ["/index.html", "/anything/else"])
    def test_other_paths_serve_welcome_page(self, core, path):
        result = core.gate.admit("10.0.0.1", path)
        assert result.status == 200
        assert result.headers["Content-Type"].startswith("text/html")
        assert result.body == WELCOME_PAGE

    def test_unblocked_source_counts_served(self, core):
        """Each admitted request increments attempts and served by exactly one."""
        for _ in range(5):
            core.gate.admit("10.0.0.1", "/index.html")
        assert core.ledger.attempts("10.0.0.1") == 5
        assert core.ledger.served("10.0.0.1") == 5

    def test_blocked_source_rejected_without_served(self, core):
        """Blocked sources get an empty 403 and served never moves."""
        core.registry.add("6.6.6.6")
        for path in ("/", "/index.html"):
            result = core.gate.admit("6.6.6.6", path)
            assert result.status == 403
            assert result.rejected
            assert result.body == b""
        assert core.ledger.attempts("6.6.6.6") == 2
        assert core.ledger.served("6.6.6.6") == 0

    def test_concurrent_requests_from_one_source(self, core):
        """1000 concurrent admissions: attempts == served == 1000."""
        with ThreadPoolExecutor(max_workers=32) as pool:
            results = list(pool.map(lambda _: core.gate.admit("7.7.7.7", "/index.html"), range(1000)))
        assert all(r.status == 200 for r in results)
        assert core.ledger.attempts("7.7.7.7") == 1000
        assert core.ledger.served("7.7.7.7") == 1000
        assert core.ledger.total_attempted == 1000
        assert core.ledger.total_served == 1000

    def test_blocking_via_engine_then_release(self, core, feed):
        """Decisions made by the engine are enforced by the gate."""
        feed(core, "8.8.8.8", 500)
        core.engine.tick()
        assert core.gate.admit("8.8.8.8", "/").status == 403
        for _ in range(3):
            core.engine.tick()
        assert core.gate.admit("8.8.8.8", "/").status == 302
