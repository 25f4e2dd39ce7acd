from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from fullrestore.types import TextureDescriptor

log = logging.getLogger(__name__)


class LookupFailed(Exception):
    """The identity lookup service failed or answered with garbage."""


class FetchFailed(Exception):
    """The profile service failed or answered with garbage."""


@dataclass
class MojangConfig:
    api_base: str = "https://api.mojang.com"
    session_base: str = "https://sessionserver.mojang.com"
    timeout: float = 10.0
    user_agent: str = "fullrestore/1.0 (+premium data restore)"


class MojangClient:
    """
    Thin HTTP client for the Mojang account and session services.

    Sync only (`requests`). Callers run it off the event loop through the
    worker pool.
    """

    def __init__(self, config: MojangConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            }
        )

    def get(self, url: str) -> requests.Response:
        """
        GET a URL with the configured timeout.

        Raises requests.RequestException on transport failure; status codes
        are left to the caller since a non-200 is a normal answer here.
        """
        return self._session.get(url, timeout=self.config.timeout)

    def profile_lookup_url(self, username: str) -> str:
        return f"{self.config.api_base.rstrip('/')}/users/profiles/minecraft/{quote(username, safe='')}"

    def session_profile_url(self, verified: uuid.UUID) -> str:
        return (
            f"{self.config.session_base.rstrip('/')}/session/minecraft/profile/"
            f"{verified.hex}?unsigned=false"
        )

    def close(self) -> None:
        try:
            self._session.close()
        except Exception:
            pass


def _parse_json_object(resp: requests.Response, error: type) -> Dict[str, Any]:
    try:
        data: Any = resp.json()
    except ValueError as exc:
        raise error(f"Invalid JSON from {resp.url}: {exc}") from exc
    if not isinstance(data, dict):
        raise error(f"Unexpected response shape from {resp.url}")
    return data


def parse_identity(raw: Any) -> uuid.UUID:
    """
    Normalize a wire identity (undashed or dashed hex) to a UUID.

    Raises ValueError for anything that is not 128 bits of hex.
    """
    if not isinstance(raw, str):
        raise ValueError(f"identity must be a string, got {type(raw).__name__}")
    text = raw.strip().replace("-", "")
    if len(text) != 32:
        raise ValueError(f"identity must be 32 hex characters, got {raw!r}")
    return uuid.UUID(hex=text)


class IdentityResolver:
    """
    Username -> premium UUID.

    Returns None when the service has no premium account for the name (any
    non-200 or an empty body). Transport errors and malformed answers raise
    LookupFailed. Nothing is retried.
    """

    def __init__(self, client: MojangClient) -> None:
        self.client = client

    def resolve(self, username: str) -> Optional[uuid.UUID]:
        name = (username or "").strip()
        if not name:
            return None

        url = self.client.profile_lookup_url(name)
        try:
            resp = self.client.get(url)
        except requests.RequestException as exc:
            raise LookupFailed(f"Error contacting identity service for {name}: {exc}") from exc

        if resp.status_code != 200 or not resp.content or not resp.content.strip():
            log.info("no premium account for %s (HTTP %s)", name, resp.status_code)
            return None

        data = _parse_json_object(resp, LookupFailed)
        try:
            return parse_identity(data.get("id"))
        except ValueError as exc:
            raise LookupFailed(f"Malformed identity for {name}: {exc}") from exc


class SkinPropertyFetcher:
    """
    Fetch the `textures` property of a premium profile.

    Never raises: every failure is logged and reported as None.
    """

    PROPERTY = "textures"

    def __init__(self, client: MojangClient, resolver: IdentityResolver) -> None:
        self.client = client
        self.resolver = resolver

    def fetch(self, username: str) -> Optional[TextureDescriptor]:
        """Resolve the username, then fetch its profile."""
        log.info("starting skin lookup for %s", username)
        try:
            verified = self.resolver.resolve(username)
        except LookupFailed as exc:
            log.warning("skin lookup failed for %s: %s", username, exc)
            return None
        if verified is None:
            return None
        return self.fetch_for(verified)

    def fetch_for(self, verified: uuid.UUID) -> Optional[TextureDescriptor]:
        try:
            return self._fetch_textures(verified)
        except FetchFailed as exc:
            log.warning("skin lookup failed for %s: %s", verified, exc)
            return None

    def _fetch_textures(self, verified: uuid.UUID) -> Optional[TextureDescriptor]:
        url = self.client.session_profile_url(verified)
        try:
            resp = self.client.get(url)
        except requests.RequestException as exc:
            raise FetchFailed(f"Error contacting profile service: {exc}") from exc

        if resp.status_code != 200 or not resp.content:
            log.info("no profile for %s (HTTP %s)", verified, resp.status_code)
            return None

        data = _parse_json_object(resp, FetchFailed)
        props = data.get("properties")
        if not isinstance(props, list):
            log.info("profile for %s has no properties", verified)
            return None

        for prop in props:
            if not isinstance(prop, dict) or prop.get("name") != self.PROPERTY:
                continue
            value = prop.get("value")
            if not isinstance(value, str):
                raise FetchFailed(f"textures property for {verified} has no value")
            signature = prop.get("signature")
            return TextureDescriptor(
                value=value,
                signature=signature if isinstance(signature, str) else None,
            )

        log.info("no textures property for %s", verified)
        return None


def create_mojang_client(
    api_base: str,
    session_base: str,
    timeout: float = 10.0,
) -> MojangClient:
    return MojangClient(MojangConfig(api_base=api_base, session_base=session_base, timeout=timeout))
