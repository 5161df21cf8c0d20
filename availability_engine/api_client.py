from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from availability_engine.errors import NetworkError

logger = logging.getLogger(__name__)


class SchedulingApi(Protocol):
    """The two Scheduling API reads the availability engine depends on."""

    async def get_available_schedules(self, location_id: str, modality_id: str, date: str) -> dict[str, Any]: ...

    async def get_available_locations(self, modality_id: str, city_id: str) -> dict[str, Any]: ...


class SchedulingApiClient:
    """Scheduling API reader with async httpx under the hood."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        logger.debug("Scheduling API request: %s %s", method, path)
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("Scheduling API timed out: %s %s", method, path)
            raise NetworkError(f"Timed out calling {path}") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("Scheduling API answered %s: %s %s", status, method, path)
            raise NetworkError(f"{path} answered HTTP {status}", status_code=status) from exc
        except httpx.HTTPError as exc:
            logger.warning("Scheduling API transport error: %s %s (%s)", method, path, exc)
            raise NetworkError(f"Could not reach {path}: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise NetworkError(f"{path} returned a non-JSON body", status_code=response.status_code) from exc
        if not isinstance(body, dict):
            raise NetworkError(f"{path} returned an unexpected body", status_code=response.status_code)
        if body.get("success") is False:
            raise NetworkError(body.get("message") or f"{path} reported failure", status_code=response.status_code)
        return body

    async def get_available_schedules(self, location_id: str, modality_id: str, date: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/schedules/available",
            params={"sedeId": location_id, "modalityId": modality_id, "date": date},
        )

    async def get_available_locations(self, modality_id: str, city_id: str) -> dict[str, Any]:
        return await self._request(
            "GET",
            "/available-sedes",
            params={"modalityId": modality_id, "cityId": city_id},
        )
