"""GitHub Releases API client.

This module handles:
- Finding a release by tag (drafts included)
- Creating or updating the release for a tag
- Replacing release assets

The token is sent only in the Authorization header and is redacted from
every error message this module produces.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any

import httpx

from ci_release.errors import ReleaseAuthError, ReleasePublishError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"

# Page size for release listing
RELEASES_PER_PAGE = 100

# Timeout for API requests (seconds)
DEFAULT_TIMEOUT = 120

REDACTED = "***"


class GitHubReleaseClient:
    """Client for the release endpoints of one repository.

    Args:
        client: HTTPX client instance.
        repository: Repository in owner/name form.
        token: Bearer token.
        api_url: API base URL.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        client: httpx.Client,
        repository: str,
        token: str,
        api_url: str = GITHUB_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.client = client
        self.repository = repository
        self._token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    @property
    def releases_url(self) -> str:
        return f"{self.api_url}/repos/{self.repository}/releases"

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if extra:
            headers.update(extra)
        return headers

    def _redact(self, text: str) -> str:
        if self._token:
            return text.replace(self._token, REDACTED)
        return text

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request, mapping failures onto release errors.

        Raises:
            ReleaseAuthError: On 401/403 responses.
            ReleasePublishError: On other HTTP or network errors.
        """
        try:
            response = self.client.request(
                method,
                url,
                headers=self._headers(headers),
                timeout=self.timeout,
                **kwargs,
            )
            response.raise_for_status()
            return response

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status in (401, 403):
                raise ReleaseAuthError(
                    f"Release token rejected ({status}) for {method} {url}"
                ) from None
            raise ReleasePublishError(
                self._redact(
                    f"HTTP error {status} {e.response.reason_phrase} for {method} {url}"
                ),
                status_code=status,
            ) from None
        except httpx.TimeoutException:
            raise ReleasePublishError(f"Timeout for {method} {url}") from None
        except httpx.RequestError as e:
            raise ReleasePublishError(
                self._redact(f"Network error for {method} {url}: {e}")
            ) from None

    def find_release(self, tag: str) -> dict[str, Any] | None:
        """Find the release for a tag.

        Draft releases are not returned by the tag lookup endpoint, so
        the release list is searched instead.

        Args:
            tag: Release tag.

        Returns:
            Release JSON object, or None if no release has that tag.
        """
        page = 1
        while True:
            response = self._request(
                "GET",
                self.releases_url,
                params={"per_page": RELEASES_PER_PAGE, "page": page},
            )
            releases = response.json()
            for release in releases:
                if release.get("tag_name") == tag:
                    return release
            if len(releases) < RELEASES_PER_PAGE:
                return None
            page += 1

    def create_release(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Create a release."""
        logger.info("Creating release %s", payload.get("tag_name"))
        return self._request("POST", self.releases_url, json=payload).json()

    def update_release(self, release_id: int, payload: dict[str, Any]) -> dict[str, Any]:
        """Update an existing release in place."""
        logger.info("Updating release %s (id=%d)", payload.get("tag_name"), release_id)
        return self._request(
            "PATCH", f"{self.releases_url}/{release_id}", json=payload
        ).json()

    def delete_asset(self, asset_id: int) -> None:
        """Delete a release asset."""
        self._request("DELETE", f"{self.releases_url}/assets/{asset_id}")

    def upload_asset(self, release: dict[str, Any], path: Path) -> dict[str, Any]:
        """Upload a file to a release, replacing any asset with the same name.

        Args:
            release: Release JSON object.
            path: File to upload.

        Returns:
            Asset JSON object.
        """
        for asset in release.get("assets", []):
            if asset.get("name") == path.name:
                logger.info("Replacing existing asset %s", path.name)
                self.delete_asset(asset["id"])

        # upload_url is a URI template: ".../assets{?name,label}"
        upload_url = release["upload_url"].split("{", 1)[0]
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        logger.info("Uploading asset %s (%d bytes)", path.name, path.stat().st_size)
        return self._request(
            "POST",
            upload_url,
            headers={"Content-Type": content_type},
            params={"name": path.name},
            content=path.read_bytes(),
        ).json()


__all__ = ["GITHUB_API_URL", "GitHubReleaseClient"]
