"""
FluxGuard - Admission gate.

Per-request enforcement point: count the attempt, reject blocked sources
with an empty 403, otherwise count the request as served and produce the
normal response. Framework-free; http_server translates Admission objects
into WSGI responses.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from fluxguard.core.block_registry import BlockRegistry
from fluxguard.core.ledger import SourceLedger

logger = logging.getLogger(__name__)

WELCOME_PAGE = b"<html><body><h1>Welcome to DoS Test Server</h1></body></html>"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
INDEX_PATH = "/index.html"


@dataclass
class Admission:
    """Outcome of one admission decision."""

    source: str
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def rejected(self) -> bool:
        return self.status == 403


def resolve_source(forwarded_for: Optional[str], peer: Optional[str]) -> str:
    """
    Source identity for a request: the X-Forwarded-For value verbatim when
    present and non-empty, else the peer address.
    """
    if forwarded_for:
        return forwarded_for
    return peer or ""


class AdmissionGate:
    """Consults the block registry and records attempts/served per source."""

    def __init__(self, ledger: SourceLedger, registry: BlockRegistry) -> None:
        self._ledger = ledger
        self._registry = registry

    def admit(self, source: str, path: str = "/") -> Admission:
        self._ledger.record_attempt(source)

        if self._registry.contains(source):
            logger.debug("[GATE] Rejected %s %s", source, path)
            return Admission(source=source, status=403)

        self._ledger.record_served(source)
        if path == "/":
            return Admission(source=source, status=302, headers={"Location": INDEX_PATH})
        return Admission(
            source=source,
            status=200,
            headers={"Content-Type": HTML_CONTENT_TYPE},
            body=WELCOME_PAGE,
        )
