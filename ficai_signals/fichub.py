import logging
from typing import Optional

import httpx
from pydantic import BaseModel, ValidationError

from ficai_signals.errors import InternalError

log = logging.getLogger(__name__)


class Meta(BaseModel):
    """Document metadata as resolved by fichub."""
    id: str
    title: str
    source: str


class FichubClient:
    """
    Minimal client for the fichub metadata API.

    Every request is bounded by timeout so a slow upstream cannot hold a
    worker indefinitely.
    """

    def __init__(self, base_url: str, timeout: float, transport: httpx.BaseTransport = None):
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def meta(self, url: str) -> Optional[Meta]:
        """
        Look up metadata for a document url. Returns None if fichub does
        not know the url.
        """
        try:
            response = self._client.get("/api/v0/meta", params={"q": url})
        except httpx.TimeoutException as e:
            raise InternalError("metadata lookup timed out") from e
        except httpx.HTTPError as e:
            raise InternalError("failed to send metadata request") from e

        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        try:
            response.raise_for_status()
            return Meta.model_validate(response.json())
        except (httpx.HTTPStatusError, ValueError, ValidationError) as e:
            log.warning("bad metadata response for %s: %s", url, e)
            raise InternalError("failed to fetch metadata") from e
