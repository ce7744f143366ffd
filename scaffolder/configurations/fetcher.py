"""Configuration fetcher and per-run cache.

Documents and template files are addressed by a location string: an
``http``/``https`` URL, or a local path. Local locations are normalized to
absolute paths so the same file always has the same identity.
"""

import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from urllib.parse import urljoin, urlparse

import anyio
import httpx
from loguru import logger

from scaffolder.core.errors import ConfigFetchError, ConfigParseError, ConfigurationNotFoundError


def is_url(value: str | None) -> bool:
    """Check whether ``value`` is an http(s) URL."""
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def resolve_location(
    reference: str,
    base: str | None = None,
    cwd: str | Path | None = None,
) -> str:
    """
    Resolve a document or file reference to its canonical identity.

    Args:
        reference: Path or URL as written in a document.
        base: Identity of the referring document, if any.
        cwd: Directory used for relative references without a base.

    Returns:
        The URL unchanged, or an absolute local path.

    Example:
        >>> resolve_location("base.json", "https://example.com/cfg/child.json")
        'https://example.com/cfg/base.json'
    """
    if is_url(reference):
        return reference
    if base and is_url(base):
        return urljoin(base, reference)

    path = Path(reference).expanduser()
    if not path.is_absolute():
        if base:
            path = Path(base).parent / path
        else:
            path = Path(cwd or Path.cwd()) / path
    return str(path.resolve())


def display_name(location: str | None, cwd: str | Path | None = None) -> str:
    """Short label for diagnostics: relative to ``cwd`` when possible."""
    if not location:
        return "current configuration"
    if is_url(location):
        return location

    root = Path(cwd or Path.cwd()).resolve()
    try:
        return str(Path(location).resolve().relative_to(root))
    except ValueError:
        return location


class ConfigurationFetcher:
    """
    Retrieve text for local or remote locations.

    Remote requests use httpx; a custom transport can be injected for tests.

    Example:
        >>> fetcher = ConfigurationFetcher()
        >>> text = await fetcher.fetch_text("https://example.com/base.json")
    """

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport

    async def fetch_text(self, location: str) -> str:
        """
        Fetch the text at ``location``.

        Raises:
            ConfigFetchError: If a remote request fails or returns non-success.
            ConfigurationNotFoundError: If a local file does not exist.
        """
        if is_url(location):
            return await self._fetch_remote(location)
        return await self._read_local(location)

    async def _fetch_remote(self, url: str) -> str:
        logger.debug(f"Fetching remote configuration: {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise ConfigFetchError.for_exception(url, e) from e

        if not response.is_success:
            raise ConfigFetchError.for_status(url, response.status_code, response.reason_phrase)
        return response.text

    async def _read_local(self, location: str) -> str:
        path = anyio.Path(location)
        if not await path.is_file():
            raise ConfigurationNotFoundError.for_path(location)
        try:
            return await path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise ConfigParseError.for_file(location, e) from e


@asynccontextmanager
async def local_copy(
    fetcher: ConfigurationFetcher,
    location: str,
    suffix: str = "",
) -> AsyncIterator[Path]:
    """
    Yield a local path for ``location``.

    Remote files are downloaded into a ``scaffolder-exec-*`` temporary file
    that is deleted on exit. Local files are yielded in place.

    Raises:
        ConfigurationNotFoundError: If a local file does not exist.
        ConfigFetchError: If the download fails.
    """
    if not is_url(location):
        path = Path(location)
        if not path.is_file():
            raise ConfigurationNotFoundError(f"File not found: {location}", location)
        yield path
        return

    content = await fetcher.fetch_text(location)
    suffix = suffix or Path(urlparse(location).path).suffix
    fd, name = tempfile.mkstemp(prefix="scaffolder-exec-", suffix=suffix)
    temp_path = Path(name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        temp_path.chmod(0o700)
        logger.debug(f"Downloaded {location} to {temp_path}")
        yield temp_path
    finally:
        temp_path.unlink(missing_ok=True)


class ConfigurationCache:
    """Identity-keyed memo of loaded documents, scoped to one run."""

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}

    def get(self, location: str) -> Any | None:
        return self._entries.get(location)

    def set(self, location: str, document: Any) -> None:
        self._entries[location] = document

    def __contains__(self, location: object) -> bool:
        return location in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        """Drop every cached document."""
        self._entries.clear()
