"""Unit tests for the HTTP controller client."""
import json
import httpx
import pytest
from actrunner.controller.client import HttpControllerClient
from actrunner.core.enums import StepStatus
from actrunner.core.exceptions import AuthError, ControllerError, NetworkError
from actrunner.schemas.job import StepOutcome
from tests.factories.job_factory import make_result

URL = "http://controller.test"


def client_for(handler) -> HttpControllerClient:
    return HttpControllerClient(URL, timeout=5, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
class TestHttpControllerClient:
    """Tests for HttpControllerClient requests and error mapping."""

    async def test_register_returns_identity(self):
        """Test registration posts token/name/labels and builds an identity."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                201,
                json={"id": "r-9", "name": "box", "labels": ["linux", "riscv64"], "credential": "cred"},
            )

        async with client_for(handler) as client:
            identity = await client.register("tok", "box", {"riscv64", "linux"})

        assert seen["path"] == "/api/v1/runners/register"
        assert seen["body"] == {"token": "tok", "name": "box", "labels": ["linux", "riscv64"]}
        assert identity.id == "r-9"
        assert identity.credential == "cred"
        assert identity.labels == {"linux", "riscv64"}
        assert identity.url == URL

    async def test_register_with_bad_token_raises_auth_error(self):
        """Test 401 maps to AuthError."""
        client = client_for(lambda request: httpx.Response(401, text="token expired"))

        with pytest.raises(AuthError):
            await client.register("expired", "box", [])
        await client.aclose()

    async def test_unreachable_controller_raises_network_error(self):
        """Test transport failures map to NetworkError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = client_for(handler)

        with pytest.raises(NetworkError):
            await client.register("tok", "box", [])
        await client.aclose()

    @pytest.mark.parametrize("status_code", [429, 500, 503])
    async def test_transient_statuses_raise_network_error(self, status_code, identity):
        """Test 5xx and throttling map to NetworkError."""
        client = client_for(lambda request: httpx.Response(status_code))

        with pytest.raises(NetworkError):
            await client.poll(identity, wait=0)
        await client.aclose()

    async def test_unexpected_status_raises_controller_error(self, identity):
        """Test other 4xx map to ControllerError with the status code."""
        client = client_for(lambda request: httpx.Response(404, text="no such runner"))

        with pytest.raises(ControllerError) as exc_info:
            await client.poll(identity, wait=0)
        assert exc_info.value.status_code == 404
        await client.aclose()

    async def test_poll_without_job_returns_none(self, identity):
        """Test 204 means no job is available."""
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["params"] = dict(request.url.params)
            return httpx.Response(204)

        async with client_for(handler) as client:
            assert await client.poll(identity, wait=30) is None

        assert seen["auth"] == "Bearer secret-credential"
        assert seen["params"] == {"wait": "30", "labels": "linux,riscv64,self-hosted"}

    async def test_poll_parses_assignment(self, identity):
        """Test a 200 body becomes a JobAssignment."""
        payload = {"job_id": "j-1", "steps": [{"command": "echo hi", "timeout": 5}]}

        async with client_for(lambda request: httpx.Response(200, json=payload)) as client:
            assignment = await client.poll(identity, wait=0)

        assert assignment.job_id == "j-1"
        assert assignment.steps[0].command == "echo hi"

    async def test_poll_with_malformed_job_raises_controller_error(self, identity):
        """Test an invalid assignment body raises ControllerError."""
        async with client_for(lambda request: httpx.Response(200, json={"steps": "x"})) as client:
            with pytest.raises(ControllerError):
                await client.poll(identity, wait=0)

    async def test_report_step_and_complete(self, identity):
        """Test step outcomes and results are posted to the job endpoints."""
        requests = []

        def handler(request):
            requests.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(200)

        outcome = StepOutcome(index=0, name="echo", status=StepStatus.SUCCEEDED, exit_code=0)
        result = make_result("j-1", StepStatus.SUCCEEDED)

        async with client_for(handler) as client:
            await client.report_step(identity, "j-1", outcome)
            await client.complete(identity, result)

        assert requests[0][:2] == ("POST", "/api/v1/jobs/j-1/steps")
        assert requests[0][2]["status"] == "succeeded"
        assert requests[1][:2] == ("POST", "/api/v1/jobs/j-1/complete")
        assert requests[1][2]["outcome"] == "succeeded"

    async def test_remove_sends_token(self, identity):
        """Test removal uses DELETE with the removal token header."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["token"] = request.headers.get("X-Runner-Token")
            return httpx.Response(204)

        async with client_for(handler) as client:
            await client.remove(identity, "remove-me")

        assert seen == {"method": "DELETE", "path": "/api/v1/runners/runner-1", "token": "remove-me"}

    async def test_ids_are_escaped_in_paths(self, identity):
        """Test reserved characters in ids stay inside their path segment."""
        paths = []

        def handler(request):
            paths.append(request.url.raw_path)
            return httpx.Response(204)

        outcome = StepOutcome(index=0, name="echo", status=StepStatus.SUCCEEDED, exit_code=0)
        result = make_result("build/42?x=1", StepStatus.SUCCEEDED)
        pooled = identity.model_copy(update={"id": "pool/runner#1"})

        async with client_for(handler) as client:
            await client.report_step(identity, "build/42?x=1", outcome)
            await client.complete(identity, result)
            await client.remove(pooled, "remove-me")

        assert paths == [
            b"/api/v1/jobs/build%2F42%3Fx%3D1/steps",
            b"/api/v1/jobs/build%2F42%3Fx%3D1/complete",
            b"/api/v1/runners/pool%2Frunner%231",
        ]

    async def test_register_without_labels_keeps_requested_labels(self):
        """Test an identity falls back to the requested labels when the reply omits them."""
        response = {"id": "r-9", "name": "box", "credential": "cred"}

        async with client_for(lambda request: httpx.Response(201, json=response)) as client:
            identity = await client.register("tok", "box", {"riscv64", "linux"})

        assert identity.labels == {"linux", "riscv64"}

    async def test_register_with_empty_labels_is_respected(self):
        """Test an explicit empty label list from the controller is kept."""
        response = {"id": "r-9", "name": "box", "labels": [], "credential": "cred"}

        async with client_for(lambda request: httpx.Response(201, json=response)) as client:
            identity = await client.register("tok", "box", {"riscv64"})

        assert identity.labels == frozenset()
