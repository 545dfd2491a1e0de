"""Runner registration: exchanging a registration token for an identity."""
import logging
import platform
from typing import Callable, Iterable, Optional, Set
from actrunner.controller.client import ControllerClient, HttpControllerClient
from actrunner.schemas.identity import RunnerIdentity, normalize_labels
from actrunner.services.identity_store import IdentityStore

logger = logging.getLogger(__name__)

# platform.machine() spellings mapped onto the labels CI workflows expect
_ARCH_LABELS = {
    "x86_64": "x64",
    "amd64": "x64",
    "i386": "x86",
    "i686": "x86",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "riscv64": "riscv64",
}


def default_labels() -> Set[str]:
    """
    Labels every runner advertises for its host platform.

    Returns:
        Set[str]: e.g. {"self-hosted", "linux", "riscv64"}
    """
    labels = {"self-hosted", platform.system().lower() or "unknown"}
    machine = platform.machine().lower()
    if machine:
        labels.add(_ARCH_LABELS.get(machine, machine))
    return labels


class RegistrationClient:
    """
    Registers and removes runners with the controller.

    Persists the resulting identity through an IdentityStore so a restarted
    runner can resume without a new registration token.
    """

    def __init__(
        self,
        store: IdentityStore,
        client_factory: Callable[[str], ControllerClient] = HttpControllerClient,
        include_default_labels: bool = True,
    ):
        """
        Initialize registration client.

        Args:
            store: Identity store for persistence
            client_factory: Builds a controller client for a base URL
            include_default_labels: Add host platform labels on register
        """
        self.store = store
        self.client_factory = client_factory
        self.include_default_labels = include_default_labels

    def load(self) -> Optional[RunnerIdentity]:
        """Return the stored identity, if any."""
        return self.store.load()

    async def register(
        self,
        url: str,
        token: str,
        name: str,
        labels: Iterable[str] = (),
    ) -> RunnerIdentity:
        """
        Register this runner with the controller.

        Args:
            url: Controller base URL
            token: Short-lived registration token
            name: Runner name
            labels: Routing labels (CSV string or iterable)

        Returns:
            RunnerIdentity: Newly issued identity

        Raises:
            AuthError: If the token is invalid or expired
            NetworkError: If the controller is unreachable
        """
        wanted = set(normalize_labels(labels))
        if self.include_default_labels:
            wanted |= default_labels()

        logger.info(f"Registering runner {name!r} at {url} with labels {sorted(wanted)}")

        client = self.client_factory(url)
        try:
            identity = await client.register(token, name, wanted)
        finally:
            await client.aclose()

        self.store.save(identity)
        logger.info(f"Runner registered as {identity.id}")
        return identity

    async def remove(self, identity: RunnerIdentity, token: str) -> None:
        """
        Remove this runner from the controller and forget its identity.

        Args:
            identity: Identity to remove
            token: Removal token issued by the controller

        Raises:
            AuthError: If the token is rejected
        """
        logger.info(f"Removing runner {identity.id} from {identity.url}")

        client = self.client_factory(identity.url)
        try:
            await client.remove(identity, token)
        finally:
            await client.aclose()

        self.store.clear()
        logger.info(f"Runner {identity.id} removed")
