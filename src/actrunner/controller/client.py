"""Controller API client used for registration, job polling and reporting."""
import logging
from typing import Iterable, Optional, Protocol
from urllib.parse import quote
import httpx
from pydantic import ValidationError
from actrunner.config import get_settings
from actrunner.core.exceptions import AuthError, ControllerError, NetworkError
from actrunner.schemas.identity import (
    RegistrationRequest,
    RegistrationResponse,
    RunnerIdentity,
)
from actrunner.schemas.job import JobAssignment, JobResult, StepOutcome

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

# Status codes the controller may answer with while it is overloaded or restarting
TRANSIENT_STATUS_CODES = {408, 425, 429}


def _segment(value: str) -> str:
    """Escape an ID for use as a single URL path segment."""
    return quote(value, safe="")


class ControllerClient(Protocol):
    """
    Capabilities the runner needs from its controller.

    Any transport (HTTP long-poll, WebSocket, a test double) can satisfy it.
    """

    async def register(self, token: str, name: str, labels: Iterable[str]) -> RunnerIdentity: ...

    async def remove(self, identity: RunnerIdentity, token: str) -> None: ...

    async def poll(self, identity: RunnerIdentity, wait: float) -> Optional[JobAssignment]: ...

    async def report_step(self, identity: RunnerIdentity, job_id: str, outcome: StepOutcome) -> None: ...

    async def complete(self, identity: RunnerIdentity, result: JobResult) -> None: ...

    async def aclose(self) -> None: ...


class HttpControllerClient:
    """
    ControllerClient over HTTP using a shared httpx.AsyncClient.

    Maps HTTP failures onto the runner error taxonomy:
    401/403 -> AuthError, transport errors/5xx/throttling -> NetworkError,
    anything else unexpected -> ControllerError.
    """

    def __init__(
        self,
        url: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP controller client.

        Args:
            url: Controller base URL
            timeout: Request timeout in seconds (long-poll hold is added on top)
            transport: Optional httpx transport (used by tests)
        """
        settings = get_settings()
        self.url = url.rstrip("/")
        self.timeout = timeout if timeout is not None else settings.CONTROLLER_TIMEOUT
        self._client = httpx.AsyncClient(
            base_url=self.url,
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            headers={"User-Agent": f"{settings.APP_NAME}/{settings.APP_VERSION}"},
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "HttpControllerClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def register(self, token: str, name: str, labels: Iterable[str]) -> RunnerIdentity:
        body = RegistrationRequest(token=token, name=name, labels=sorted(labels))
        response = await self._request(
            "POST", f"{API_PREFIX}/runners/register", json=body.model_dump()
        )
        try:
            data = RegistrationResponse.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise ControllerError(f"Malformed registration response: {e}") from e

        return RunnerIdentity(
            id=data.id,
            name=data.name,
            labels=data.labels if data.labels is not None else body.labels,
            credential=data.credential,
            url=self.url,
        )

    async def remove(self, identity: RunnerIdentity, token: str) -> None:
        await self._request(
            "DELETE",
            f"{API_PREFIX}/runners/{_segment(identity.id)}",
            headers={"X-Runner-Token": token},
        )

    async def poll(self, identity: RunnerIdentity, wait: float) -> Optional[JobAssignment]:
        response = await self._request(
            "GET",
            f"{API_PREFIX}/runners/{_segment(identity.id)}/jobs/next",
            params={"wait": int(wait), "labels": ",".join(sorted(identity.labels))},
            headers=self._auth(identity),
            # Let the server hold the request for the whole long-poll window
            timeout=httpx.Timeout(self.timeout + wait, connect=min(self.timeout, 10.0)),
        )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return JobAssignment.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            raise ControllerError(f"Malformed job assignment: {e}") from e

    async def report_step(self, identity: RunnerIdentity, job_id: str, outcome: StepOutcome) -> None:
        await self._request(
            "POST",
            f"{API_PREFIX}/jobs/{_segment(job_id)}/steps",
            content=outcome.model_dump_json(),
            headers={**self._auth(identity), "Content-Type": "application/json"},
        )

    async def complete(self, identity: RunnerIdentity, result: JobResult) -> None:
        await self._request(
            "POST",
            f"{API_PREFIX}/jobs/{_segment(result.job_id)}/complete",
            content=result.model_dump_json(),
            headers={**self._auth(identity), "Content-Type": "application/json"},
        )

    @staticmethod
    def _auth(identity: RunnerIdentity) -> dict:
        return {"Authorization": f"Bearer {identity.credential}"}

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Send a request and translate failures into runner exceptions.

        Raises:
            AuthError: On 401/403
            NetworkError: On transport errors, 5xx and throttling
            ControllerError: On any other non-success status
        """
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            raise NetworkError(f"{method} {path} failed: {type(e).__name__}: {e}") from e

        status = response.status_code
        if status < 400:
            return response

        detail = response.text[:200]
        if status in (401, 403):
            raise AuthError(f"Controller rejected credentials ({status}): {detail}")
        if status >= 500 or status in TRANSIENT_STATUS_CODES:
            raise NetworkError(f"{method} {path} returned {status}: {detail}")

        logger.error(f"Unexpected controller response {status} for {method} {path}: {detail}")
        raise ControllerError(f"{method} {path} returned {status}: {detail}", status_code=status)
