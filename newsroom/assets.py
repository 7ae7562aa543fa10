"""
Trusted asset store: URL trust checks, removed-image diffs and
best-effort deletion.

Deletion talks to a Cloudinary-compatible ``destroy`` endpoint over
``httpx``.  Every failure on that path (missing credentials, network
errors, non-``ok`` answers) is logged and reported in the returned
``CleanupResult``; nothing is ever raised back into a content mutation.
"""
import hashlib
import logging
import re
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from urllib.parse import urlsplit

import httpx

from newsroom.config import Settings
from newsroom.errors import InvalidInput

logger = logging.getLogger(__name__)

_PUBLIC_ID_RE = re.compile(r"/upload/(?:v\d+/)?([^/]+)\.\w+$")
_CLOUDINARY_API = "https://api.cloudinary.com/v1_1"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class AssetValidator:
    """Accepts only http(s) URLs served from one of *trusted_hosts* (or a subdomain)."""

    def __init__(self, trusted_hosts: Iterable[str]) -> None:
        self.trusted_hosts = tuple(h.lower().strip(".") for h in trusted_hosts if h)

    def is_trusted(self, url: str) -> bool:
        if not url:
            return False
        try:
            parts = urlsplit(url.strip())
            host = (parts.hostname or "").lower()
        except ValueError:
            return False
        if parts.scheme not in ("http", "https") or not host:
            return False
        return any(host == h or host.endswith("." + h) for h in self.trusted_hosts)

    def require_trusted(self, urls: Iterable[str], what: str = "image") -> None:
        """Raise ``InvalidInput`` naming the first untrusted URL, if any."""
        for url in urls:
            if not self.is_trusted(url):
                raise InvalidInput(f"{what} URL is not served by the trusted asset store: {url}")


def diff_removed(old_urls: Sequence[str], new_urls: Sequence[str]) -> list[str]:
    """URLs present in *old_urls* but absent from *new_urls* (first-seen order, no repeats)."""
    keep = set(new_urls)
    removed: list[str] = []
    for url in old_urls:
        if url not in keep and url not in removed:
            removed.append(url)
    return removed


def public_id_from_url(url: str) -> str | None:
    """Return the Cloudinary public id embedded in a delivery URL, if any."""
    match = _PUBLIC_ID_RE.search(urlsplit(url).path)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------

@dataclass
class CleanupResult:
    deleted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class AssetStore:
    """Delete-by-reference client for the trusted asset store."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "AssetStore":
        return cls(
            settings.CLOUDINARY_CLOUD_NAME,
            settings.CLOUDINARY_API_KEY,
            settings.CLOUDINARY_API_SECRET,
            timeout=settings.ASSET_DELETE_TIMEOUT,
        )

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _signature(self, params: dict) -> str:
        payload = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return hashlib.sha1((payload + self.api_secret).encode()).hexdigest()

    async def _destroy(self, client: httpx.AsyncClient, public_id: str) -> bool:
        params = {"public_id": public_id, "timestamp": int(time.time())}
        data = {**params, "api_key": self.api_key, "signature": self._signature(params)}
        resp = await client.post(f"{_CLOUDINARY_API}/{self.cloud_name}/image/destroy", data=data)
        resp.raise_for_status()
        return resp.json().get("result") == "ok"

    async def delete_many(self, urls: Sequence[str]) -> CleanupResult:
        """
        Delete every asset in *urls*, one request each.

        Never raises: per-URL failures are logged at WARNING and collected
        in ``CleanupResult.failed``.
        """
        result = CleanupResult()
        if not urls:
            return result
        if not self.configured:
            logger.warning("Asset store credentials missing; skipping cleanup of %d asset(s)", len(urls))
            result.failed.extend(urls)
            return result

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for url in urls:
                public_id = public_id_from_url(url)
                if public_id is None:
                    logger.warning("Cannot derive asset id from %s; skipping", url)
                    result.failed.append(url)
                    continue
                try:
                    removed = await self._destroy(client, public_id)
                except (httpx.HTTPError, ValueError) as exc:
                    logger.warning("Asset deletion failed for %s: %s", url, exc)
                    result.failed.append(url)
                    continue
                if removed:
                    result.deleted.append(url)
                else:
                    logger.warning("Asset store did not delete %s", url)
                    result.failed.append(url)

        if result.deleted:
            logger.info("Deleted %d asset(s) from the asset store", len(result.deleted))
        return result
