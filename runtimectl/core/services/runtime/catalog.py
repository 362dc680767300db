"""
Metadata catalog client — which majors can be downloaded.

``GET <base_url>/metadata-<kind>.json`` returns a mapping of major to
:class:`RemoteMetadataEntry`.  Calls go through a circuit breaker per
catalog host so an unreachable host is not retried on every refresh.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from urllib.parse import urlparse

from pydantic import ValidationError

from runtimectl import __version__
from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.models.kind import RuntimeKind
from runtimectl.core.reliability.circuit_breaker import CircuitBreaker
from runtimectl.core.services.runtime.errors import MetadataUnavailable

logger = logging.getLogger(__name__)


class MetadataCatalogClient:
    """Fetch remote metadata for a runtime kind.

    Args:
        base_url: Host serving ``metadata-<kind>.json``.
        timeout: Socket timeout in seconds.
        breaker: Optional circuit breaker guarding the host.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self.breaker = breaker

    @property
    def host(self) -> str:
        return urlparse(self._base_url).netloc or self._base_url

    def url_for(self, kind: RuntimeKind) -> str:
        return f"{self._base_url}/metadata-{kind.name}.json"

    def fetch(self, kind: RuntimeKind) -> dict[str, RemoteMetadataEntry]:
        """Fetch and validate the catalog for ``kind``.

        Raises:
            MetadataUnavailable: Network error, bad JSON, schema
                mismatch, or the circuit is open.
        """
        if self.breaker is not None and not self.breaker.allow_request():
            raise MetadataUnavailable(kind.display_name, f"{self.host} is unavailable (circuit open)")

        url = self.url_for(kind)
        req = urllib.request.Request(
            url,
            headers={
                "Accept": "application/json",
                "User-Agent": f"runtimectl/{__version__}",
                "Cache-Control": "no-cache",
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                data = json.loads(resp.read())
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            entries = {
                str(major): RemoteMetadataEntry.model_validate(entry)
                for major, entry in data.items()
            }
        except (urllib.error.URLError, OSError, ValueError, ValidationError) as e:
            if self.breaker is not None:
                self.breaker.record_failure()
            logger.warning("Catalog fetch failed for %s: %s", url, e)
            raise MetadataUnavailable(kind.display_name, str(e)) from e

        if self.breaker is not None:
            self.breaker.record_success()
        logger.info("Catalog for %s: %d majors", kind.display_name, len(entries))
        return entries
