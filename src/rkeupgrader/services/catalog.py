"""GitHub release catalog client for RKE."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import requests

from rkeupgrader.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    PER_PAGE,
    PRERELEASE_MARKER,
    RATE_LIMIT_MARKER,
    RKE_RELEASES_URL,
)
from rkeupgrader.errors import CatalogError, MalformedCatalogResponseError, RateLimitedError
from rkeupgrader.errors_catalog import actionable_error
from rkeupgrader.models import Release


@dataclass(frozen=True)
class CatalogPage:
    releases: Tuple[Release, ...]
    rate_limit_remaining: Optional[str] = None


class ReleaseCatalogClient:
    """Reads one page of RKE releases at a time. Never retries."""

    def __init__(
        self,
        logger,
        token: Optional[str] = None,
        per_page: int = PER_PAGE,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        base_url: str = RKE_RELEASES_URL,
        requests_module=requests,
    ):
        self.logger = logger
        self.token = token
        self.per_page = per_page
        self.timeout = timeout
        self.base_url = base_url
        self.requests = requests_module

    def fetch_page(self, page: int) -> CatalogPage:
        self.logger.info("Fetching page %s of RKE releases from GitHub...", page)
        response = self._get(self.base_url, params={"per_page": self.per_page, "page": page})
        payload = self._decode(response)

        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            detail = "expected a list of releases"
            if isinstance(payload, dict) and payload.get("message"):
                detail = f"{detail}, GitHub said: {payload['message']}"
            raise MalformedCatalogResponseError(actionable_error("malformed_catalog", detail=detail))

        releases = tuple(self._to_release(item) for item in payload)
        return CatalogPage(
            releases=releases,
            rate_limit_remaining=response.headers.get("X-RateLimit-Remaining"),
        )

    def fetch_release(self, tag: str) -> Release:
        response = self._get(f"{self.base_url}/tags/{tag}")
        payload = self._decode(response)
        if not isinstance(payload, dict) or "tag_name" not in payload:
            raise MalformedCatalogResponseError(
                actionable_error("malformed_catalog", detail=f"release {tag} not found")
            )
        return self._to_release(payload)

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None):
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"

        try:
            response = self.requests.get(url, params=params, headers=headers, timeout=self.timeout)
        except self.requests.RequestException as exc:
            raise CatalogError(f"Could not reach the GitHub release API: {exc}") from exc

        # GitHub reports exhausted quota in the body, not through a distinct status.
        if RATE_LIMIT_MARKER in (response.text or ""):
            raise RateLimitedError(actionable_error("rate_limited"))
        return response

    @staticmethod
    def _decode(response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedCatalogResponseError(
                actionable_error("malformed_catalog", detail=str(exc))
            ) from exc

    @staticmethod
    def _to_release(item: Dict[str, Any]) -> Release:
        tag = str(item.get("tag_name") or "")
        return Release(
            tag=tag,
            body=item.get("body") or "",
            is_prerelease=bool(item.get("prerelease")) or PRERELEASE_MARKER in tag.lower(),
        )
