"""
HTTP client for the lab_gear inventory API.

Used by the resource controller to talk to the inventory as a remote service.
Each method performs exactly one HTTP call and maps the status code onto an
outcome: a decoded record, an explicit "absent" (None), or an exception that
carries the status code and raw body.
"""

import json
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .config import ClientConfig
from .errors import LabAPIError, LabRequestError
from .logging import get_logger
from .models import MachineRecord

MACHINES_PATH = "/api/v1/machines"


class LabGearClient:
    """
    Async client for the machine inventory API.

    Owns its ``httpx.AsyncClient`` unless one is passed in, in which case the
    caller is responsible for closing it.
    """

    def __init__(
        self,
        endpoint: str,
        token: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Base URL of the inventory API (e.g. https://assets.lab.local)
            token: Shared secret sent as a bearer credential
            timeout: Per-request timeout in seconds
            transport: Optional transport (tests use httpx.ASGITransport)
            client: Optional pre-built AsyncClient to reuse
        """
        self.endpoint = endpoint.rstrip("/")
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.endpoint, timeout=timeout, transport=transport
        )
        self.logger = get_logger("lab_gear.client")

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs) -> "LabGearClient":
        return cls(config.endpoint, config.token, timeout=config.timeout_seconds, **kwargs)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "LabGearClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def create_machine(self, payload: Dict[str, Any]) -> MachineRecord:
        """POST a new machine and return the server-assigned record."""
        response = await self._request("POST", MACHINES_PATH, payload=payload)
        if response.status_code != 201:
            raise self._unexpected("create machine", response)
        return self._decode_record(response)

    async def get_machine(self, machine_id: str) -> Optional[MachineRecord]:
        """Fetch a machine by id. Returns None when the server answers 404."""
        response = await self._request("GET", self._machine_path(machine_id))
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise self._unexpected(f"get machine {machine_id!r}", response)
        return self._decode_record(response)

    async def list_machines(self, kind: Optional[str] = None) -> List[MachineRecord]:
        """List machines, optionally filtered by kind."""
        params = {"kind": kind} if kind else None
        response = await self._request("GET", MACHINES_PATH, params=params)
        if response.status_code != 200:
            raise self._unexpected("list machines", response)
        try:
            return [MachineRecord.model_validate(item) for item in response.json()]
        except (ValueError, TypeError) as e:
            raise LabAPIError(
                response.status_code, response.text, f"list machines: undecodable response ({e})"
            ) from e

    async def update_machine(self, machine_id: str, payload: Dict[str, Any]) -> MachineRecord:
        """PUT a full replacement. A 404 is an error: there is nothing to update."""
        response = await self._request("PUT", self._machine_path(machine_id), payload=payload)
        if response.status_code == 404:
            raise LabAPIError(404, response.text, f"update machine {machine_id!r}: not found")
        if response.status_code != 200:
            raise self._unexpected(f"update machine {machine_id!r}", response)
        return self._decode_record(response)

    async def delete_machine(self, machine_id: str) -> None:
        """DELETE a machine. A 404 means it is already gone, which is success."""
        response = await self._request("DELETE", self._machine_path(machine_id))
        if response.status_code in (204, 404):
            return
        raise self._unexpected(f"delete machine {machine_id!r}", response)

    @staticmethod
    def _machine_path(machine_id: str) -> str:
        return f"{MACHINES_PATH}/{quote(machine_id, safe='')}"

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        url = f"{self.endpoint}{path}"
        headers = {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}
        content = None
        if payload is not None:
            content = json.dumps(payload).encode("utf-8")
            headers["Content-Type"] = "application/json"

        self.logger.log_client_request(method, url)
        start_time = time.time()
        try:
            response = await self._client.request(
                method, url, headers=headers, content=content, params=params
            )
        except httpx.HTTPError as e:
            self.logger.log_client_error(method, url, e)
            raise LabRequestError(f"{method} {url} failed: {e}", cause=e) from e

        self.logger.log_client_response(
            method, url, response.status_code, (time.time() - start_time) * 1000
        )
        return response

    def _unexpected(self, action: str, response: httpx.Response) -> LabAPIError:
        error = LabAPIError(
            response.status_code,
            response.text,
            f"{action}: unexpected status {response.status_code}: {response.text}",
        )
        self.logger.log_client_error(
            response.request.method,
            str(response.request.url),
            error,
            metadata={"status_code": response.status_code},
        )
        return error

    @staticmethod
    def _decode_record(response: httpx.Response) -> MachineRecord:
        try:
            return MachineRecord.model_validate(response.json())
        except ValueError as e:
            raise LabAPIError(
                response.status_code, response.text, f"undecodable machine record ({e})"
            ) from e
