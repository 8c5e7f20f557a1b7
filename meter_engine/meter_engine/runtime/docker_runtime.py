"""HTTP client for the Docker Engine API."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any

import httpx

from meter_engine.errors import RuntimeUnavailable, UnknownService

logger = logging.getLogger(__name__)

# RFC 3339 with optional fractional seconds of any precision; Docker reports
# nanoseconds, Python datetimes hold microseconds.
_DOCKER_TIME_RE = re.compile(r"^(?P<base>[0-9-]+T[0-9:]+)(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$")

_OK_STATUSES = (200, 204)
_ALREADY_IN_STATE = 304


def parse_docker_time(value: str) -> datetime:
    """Parse a Docker timestamp such as ``2024-05-01T10:00:00.123456789Z``."""
    match = _DOCKER_TIME_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Unrecognised Docker timestamp: {value!r}")
    frac = (match.group("frac") or "")[:6].ljust(6, "0")
    tz = "+00:00" if match.group("tz") == "Z" else match.group("tz")
    return datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}").astimezone(UTC)


def _resolve_host(host: str) -> tuple[str, httpx.AsyncBaseTransport | None]:
    """Map a ``DOCKER_HOST``-style address to an httpx base URL and transport."""
    if host.startswith("unix://"):
        return "http://docker", httpx.AsyncHTTPTransport(uds=host[len("unix://") :])
    if host.startswith("tcp://"):
        return "http://" + host[len("tcp://") :], None
    if host.startswith(("http://", "https://")):
        return host, None
    raise ValueError(f"Unsupported docker host: {host!r}")


class DockerRuntime:
    """Thin async wrapper around the Docker Engine REST API.

    Parameters
    ----------
    host:
        Daemon address: ``unix:///var/run/docker.sock``, ``tcp://host:2375``
        or an ``http(s)://`` URL.
    api_version:
        Optional API version prefix such as ``v1.43``.  Unversioned paths
        use the daemon's current version.
    timeout:
        Per-request timeout in seconds.
    stop_timeout:
        Seconds the daemon waits for a graceful stop before killing.
    transport:
        Explicit httpx transport, overriding the one derived from *host*.
    """

    def __init__(
        self,
        host: str = "unix:///var/run/docker.sock",
        api_version: str | None = None,
        timeout: float = 10.0,
        stop_timeout: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        base_url, default_transport = _resolve_host(host)
        if api_version:
            self._prefix = "/" + (api_version if api_version.startswith("v") else f"v{api_version}")
        else:
            self._prefix = ""
        self._timeout = timeout
        self._stop_timeout = stop_timeout
        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport or default_transport,
            timeout=httpx.Timeout(timeout),
        )

    async def __aenter__(self) -> DockerRuntime:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- ContainerRuntime ----------------------------------------------------

    async def query_egress_counter(self, service_id: str) -> int:
        """Sum ``tx_bytes`` over every network attached to the container."""
        data = await self._get_json(
            f"/containers/{service_id}/stats",
            service_id,
            params={"stream": "false", "one-shot": "true"},
        )
        networks = data.get("networks")
        if not networks:
            raise RuntimeUnavailable(
                f"Container({service_id[:12]}) reports no network stats",
                service_id=service_id,
            )
        try:
            return sum(int(net.get("tx_bytes", 0)) for net in networks.values())
        except (TypeError, ValueError, AttributeError) as exc:
            raise RuntimeUnavailable(
                f"Container({service_id[:12]}) reports malformed network stats: {exc}",
                service_id=service_id,
            ) from exc

    async def query_container_start_time(self, service_id: str) -> datetime:
        started_at = (await self._state(service_id)).get("StartedAt")
        if not started_at:
            raise RuntimeUnavailable(
                f"Container({service_id[:12]}) has no start time",
                service_id=service_id,
            )
        try:
            return parse_docker_time(started_at)
        except (TypeError, ValueError, AttributeError) as exc:
            raise RuntimeUnavailable(str(exc), service_id=service_id) from exc

    async def is_container_running(self, service_id: str) -> bool:
        return (await self._state(service_id)).get("Running") is True

    async def stop_container(self, service_id: str) -> None:
        await self._command(
            f"/containers/{service_id}/stop",
            service_id,
            params={"t": str(self._stop_timeout)},
            timeout=self._timeout + self._stop_timeout,
        )

    async def start_container(self, service_id: str) -> None:
        await self._command(f"/containers/{service_id}/start", service_id)

    # -- Internal helpers ----------------------------------------------------

    async def _state(self, service_id: str) -> dict[str, Any]:
        """Return the ``State`` object of the container's inspect payload."""
        data = await self._get_json(f"/containers/{service_id}/json", service_id)
        state = data.get("State")
        if not isinstance(state, dict):
            raise RuntimeUnavailable(
                f"Container({service_id[:12]}) reports no state",
                service_id=service_id,
            )
        return state

    async def _request(
        self,
        method: str,
        path: str,
        service_id: str,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, self._prefix + path, **kwargs)
        except httpx.HTTPError as exc:
            raise RuntimeUnavailable(
                f"Docker {method} {path} failed: {exc}",
                service_id=service_id,
            ) from exc
        if response.status_code == 404:
            raise UnknownService(
                f"No such container: {service_id[:12]}",
                service_id=service_id,
            )
        return response

    async def _get_json(self, path: str, service_id: str, **kwargs: Any) -> dict[str, Any]:
        response = await self._request("GET", path, service_id, **kwargs)
        if response.status_code != 200:
            raise RuntimeUnavailable(
                f"Docker GET {path} returned {response.status_code}: {_error_message(response)}",
                service_id=service_id,
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise RuntimeUnavailable(f"Docker GET {path} returned invalid JSON", service_id=service_id) from exc
        if not isinstance(data, dict):
            raise RuntimeUnavailable(f"Docker GET {path} returned unexpected payload", service_id=service_id)
        return data

    async def _command(self, path: str, service_id: str, **kwargs: Any) -> None:
        response = await self._request("POST", path, service_id, **kwargs)
        if response.status_code == _ALREADY_IN_STATE:
            logger.debug("Docker POST %s: container already in requested state", path)
            return
        if response.status_code not in _OK_STATUSES:
            raise RuntimeUnavailable(
                f"Docker POST {path} returned {response.status_code}: {_error_message(response)}",
                service_id=service_id,
            )


def _error_message(response: httpx.Response) -> str:
    """Extract Docker's ``{"message": ...}`` error body, falling back to text."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "message" in body:
        return str(body["message"])
    return response.text
