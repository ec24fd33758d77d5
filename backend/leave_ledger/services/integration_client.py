"""Clients that hand integration payloads to payroll and time-management systems."""

from __future__ import annotations

import logging
from collections import deque
from typing import Protocol, runtime_checkable

import httpx

from leave_ledger.config import get_settings
from leave_ledger.exceptions import IntegrationDeliveryError
from leave_ledger.models.enums import AckOutcome, ExternalSystem
from leave_ledger.schemas.integration import IntegrationAck, IntegrationPayload

logger = logging.getLogger(__name__)


@runtime_checkable
class IntegrationClient(Protocol):
    """Interface for one external system's receiving endpoint."""

    async def dispatch(self, payload: IntegrationPayload) -> IntegrationAck:
        """Deliver one payload.

        Raises IntegrationDeliveryError when the system could not be reached
        or did not acknowledge the payload.
        """
        ...


class HttpIntegrationClient:
    """POSTs payloads as JSON. 2xx is accepted, 409 means the payload was already applied."""

    def __init__(self, url: str, *, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def dispatch(self, payload: IntegrationPayload) -> IntegrationAck:
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": str(payload.log_id),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, content=payload.model_dump_json(), headers=headers)
        except httpx.HTTPError as exc:
            raise IntegrationDeliveryError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code == httpx.codes.CONFLICT:
            return IntegrationAck(outcome=AckOutcome.ALREADY_APPLIED, external_id=_external_id(response))
        if response.is_success:
            return IntegrationAck(outcome=AckOutcome.ACCEPTED, external_id=_external_id(response))
        raise IntegrationDeliveryError(f"HTTP {response.status_code}: {response.text[:500]}")


def _external_id(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("id") is not None:
        return str(body["id"])
    return None


class InMemoryIntegrationClient:
    """In-memory stub that accepts everything unless outcomes are scripted.

    Scripted outcomes are consumed in order; an exception instance is raised,
    an ``AckOutcome`` is returned as the acknowledgement.
    """

    def __init__(self) -> None:
        self.dispatched: list[IntegrationPayload] = []
        self._script: deque[AckOutcome | Exception] = deque()

    def script(self, *outcomes: AckOutcome | Exception) -> None:
        self._script.extend(outcomes)

    async def dispatch(self, payload: IntegrationPayload) -> IntegrationAck:
        self.dispatched.append(payload)
        outcome = self._script.popleft() if self._script else AckOutcome.ACCEPTED
        if isinstance(outcome, Exception):
            raise outcome
        return IntegrationAck(outcome=outcome, external_id=f"mem-{len(self.dispatched)}")


_clients: dict[ExternalSystem, IntegrationClient] = {}


def _default_client(system: ExternalSystem) -> IntegrationClient:
    settings = get_settings()
    url = {
        ExternalSystem.PAYROLL: settings.payroll_sync_url,
        ExternalSystem.TIME_MANAGEMENT: settings.time_sync_url,
    }.get(system)
    if url:
        return HttpIntegrationClient(url, timeout=settings.integration_timeout_seconds)
    logger.info("No endpoint configured for %s; using in-memory integration client", system.value)
    return InMemoryIntegrationClient()


def get_integration_client(system: ExternalSystem) -> IntegrationClient:
    client = _clients.get(system)
    if client is None:
        client = _default_client(system)
        _clients[system] = client
    return client


def set_integration_client(system: ExternalSystem, client: IntegrationClient) -> None:
    """Override the client for one system (for testing or production wiring)."""
    _clients[system] = client


def reset_integration_clients() -> None:
    _clients.clear()
