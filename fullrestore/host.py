from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from fullrestore.types import TextureDescriptor


class HostBridgeError(Exception):
    """Errors talking to the game server's bridge API."""


@runtime_checkable
class HostBridge(Protocol):
    """
    What the restore service needs from the running game server.

    Every call mutates or reads live session state, so the orchestrator
    only ever invokes these through the ControlContext.
    """

    async def is_online(self, identity: uuid.UUID) -> bool:
        ...

    async def disconnect(self, identity: uuid.UUID, message: str) -> None:
        ...

    async def send_message(self, identity: uuid.UUID, message: str) -> None:
        ...

    async def apply_skin(self, identity: uuid.UUID, descriptor: TextureDescriptor) -> None:
        ...


@dataclass(frozen=True)
class HostBridgeConfig:
    base_url: str
    token: str = ""
    timeout: float = 5.0


class HttpHostBridge:
    """
    HostBridge backed by the game server's bridge plugin over HTTP.

        GET  /players/{uuid}          200 = connected, 404 = not connected
        POST /players/{uuid}/kick     {"message": ...}
        POST /players/{uuid}/message  {"message": ...}
        POST /players/{uuid}/skin     {"name", "value", "signature"}
    """

    def __init__(
        self,
        config: HostBridgeConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not config.base_url:
            raise HostBridgeError("RESTORE_HOST_BRIDGE_URL is not configured")
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        async with httpx.AsyncClient(timeout=self.config.timeout, transport=self._transport) as client:
            try:
                return await client.request(method, url, headers=self._headers(), json=json_body)
            except httpx.RequestError as exc:
                raise HostBridgeError(f"Request error talking to host bridge: {exc}") from exc

    @staticmethod
    def _check(resp: httpx.Response, what: str) -> None:
        if resp.status_code >= 400:
            raise HostBridgeError(
                f"Host bridge returned HTTP {resp.status_code} for {what}: {resp.text[:200]}"
            )

    async def is_online(self, identity: uuid.UUID) -> bool:
        resp = await self._request("GET", f"/players/{identity}")
        if resp.status_code == 404:
            return False
        self._check(resp, f"player lookup {identity}")
        try:
            data = resp.json()
        except ValueError:
            return True
        if isinstance(data, dict) and "online" in data:
            return bool(data["online"])
        return True

    async def disconnect(self, identity: uuid.UUID, message: str) -> None:
        resp = await self._request("POST", f"/players/{identity}/kick", {"message": message})
        self._check(resp, f"kick {identity}")

    async def send_message(self, identity: uuid.UUID, message: str) -> None:
        resp = await self._request("POST", f"/players/{identity}/message", {"message": message})
        self._check(resp, f"message {identity}")

    async def apply_skin(self, identity: uuid.UUID, descriptor: TextureDescriptor) -> None:
        payload = {
            "name": descriptor.name,
            "value": descriptor.value,
            "signature": descriptor.signature,
        }
        resp = await self._request("POST", f"/players/{identity}/skin", payload)
        self._check(resp, f"skin {identity}")


def create_host_bridge(base_url: str, token: str = "", timeout: float = 5.0) -> HttpHostBridge:
    return HttpHostBridge(HostBridgeConfig(base_url=base_url, token=token, timeout=timeout))
