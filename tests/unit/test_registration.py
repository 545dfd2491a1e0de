"""Unit tests for runner registration."""
import pytest
from actrunner.core.exceptions import AuthError
from actrunner.services.identity_store import IdentityStore
from actrunner.services.registration import RegistrationClient, default_labels
from tests.factories.fake_controller import CONTROLLER_URL, FakeController


@pytest.fixture
def fake_controller():
    return FakeController()


@pytest.fixture
def registration(tmp_path, fake_controller):
    return RegistrationClient(
        IdentityStore(tmp_path / ".runner"),
        client_factory=lambda url: fake_controller,
        include_default_labels=False,
    )


class TestDefaultLabels:
    """Tests for host platform labels."""

    def test_default_labels_include_self_hosted(self):
        """Test every runner advertises self-hosted and its OS."""
        labels = default_labels()

        assert "self-hosted" in labels
        assert len(labels) >= 2

    def test_architecture_names_are_mapped(self, monkeypatch):
        """Test platform.machine() values map to CI architecture labels."""
        monkeypatch.setattr("platform.machine", lambda: "x86_64")
        monkeypatch.setattr("platform.system", lambda: "Linux")

        assert default_labels() == {"self-hosted", "linux", "x64"}

    def test_riscv64_label(self, monkeypatch):
        """Test riscv64 hosts advertise riscv64."""
        monkeypatch.setattr("platform.machine", lambda: "riscv64")
        monkeypatch.setattr("platform.system", lambda: "Linux")

        assert "riscv64" in default_labels()


@pytest.mark.asyncio
class TestRegistrationClient:
    """Tests for RegistrationClient register/remove."""

    async def test_register_persists_identity(self, registration):
        """Test a successful registration is saved for restarts."""
        identity = await registration.register(CONTROLLER_URL, "reg-token", "box", "GPU, linux")

        assert identity.labels == {"gpu", "linux"}
        assert registration.load() == identity

    async def test_register_adds_default_labels(self, registration, monkeypatch):
        """Test host labels are merged in when enabled."""
        monkeypatch.setattr("platform.machine", lambda: "riscv64")
        monkeypatch.setattr("platform.system", lambda: "Linux")
        registration.include_default_labels = True

        identity = await registration.register(CONTROLLER_URL, "reg-token", "box", ["gpu"])

        assert identity.labels == {"gpu", "self-hosted", "linux", "riscv64"}

    async def test_register_with_invalid_token_raises(self, registration):
        """Test an invalid token raises AuthError and stores nothing."""
        with pytest.raises(AuthError):
            await registration.register(CONTROLLER_URL, "bogus", "box", [])

        assert registration.load() is None

    async def test_register_closes_client(self, registration, fake_controller):
        """Test the controller client is closed after registering."""
        await registration.register(CONTROLLER_URL, "reg-token", "box", [])

        assert fake_controller.closed is True

    async def test_remove_clears_identity(self, registration, fake_controller):
        """Test removal unregisters and forgets the identity."""
        identity = await registration.register(CONTROLLER_URL, "reg-token", "box", [])

        await registration.remove(identity, "remove-token")

        assert identity.id not in fake_controller.runners
        assert registration.load() is None

    async def test_remove_with_bad_token_keeps_identity(self, registration):
        """Test a rejected removal raises AuthError and keeps local state."""
        identity = await registration.register(CONTROLLER_URL, "reg-token", "box", [])

        with pytest.raises(AuthError):
            await registration.remove(identity, "wrong")

        assert registration.load() == identity

    async def test_reregistration_after_removal(self, registration):
        """Test a new token yields a new credential with identical labels."""
        first = await registration.register(CONTROLLER_URL, "reg-token", "box", "linux,riscv64")
        await registration.remove(first, "remove-token")

        second = await registration.register(CONTROLLER_URL, "reg-token-2", "box", "linux,riscv64")

        assert second.credential != first.credential
        assert second.labels == first.labels
        assert registration.load() == second

    async def test_registration_token_is_single_use(self, registration):
        """Test the same registration token cannot be reused."""
        await registration.register(CONTROLLER_URL, "reg-token", "box", [])

        with pytest.raises(AuthError):
            await registration.register(CONTROLLER_URL, "reg-token", "box", [])
