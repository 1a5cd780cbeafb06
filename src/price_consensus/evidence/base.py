"""
Evidence source contract.

A source answers ``fetch(item_name, category)`` with a SourceResult. An
expected "nothing here" (no listings, no VIN, no credentials) is an
unavailable result. Credentials the remote side rejects raise
EvidenceUnavailableError; any other transport failure raises
EvidenceSourceError. The Fetch stage isolates both.
"""

from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from ..models.evidence import SourceKind, SourceResult


@runtime_checkable
class EvidenceSource(Protocol):
    name: str
    kind: SourceKind

    @property
    def is_available(self) -> bool: ...

    def handles(self, category: str) -> bool: ...

    async def fetch(
        self,
        item_name: str,
        category: str,
        *,
        identifiers: Mapping[str, str] | None = None,
    ) -> SourceResult: ...
