"""CLI entry point: configure, run and remove a runner."""
import argparse
import asyncio
import logging
import signal
import socket
import sys
from typing import List, Optional
from actrunner.config import get_settings
from actrunner.controller.client import HttpControllerClient
from actrunner.core.database import close_db, get_session_factory
from actrunner.core.exceptions import (
    AuthError,
    NetworkError,
    PollExhaustedError,
    RunnerConfigError,
    RunnerException,
)
from actrunner.services.identity_store import IdentityStore
from actrunner.services.registration import RegistrationClient
from actrunner.worker.runner_service import RunnerService

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="actrunner",
        description="Self-hosted CI runner agent",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    configure = subparsers.add_parser("configure", help="Register this runner with a controller")
    configure.add_argument("--url", required=True, help="Controller base URL")
    configure.add_argument("--token", required=True, help="Registration token")
    configure.add_argument("--name", default=socket.gethostname(), help="Runner name")
    configure.add_argument("--labels", default="", help="Comma-separated labels")
    configure.add_argument(
        "--no-default-labels",
        action="store_true",
        help="Do not add the self-hosted/os/architecture labels",
    )
    configure.add_argument(
        "--replace",
        action="store_true",
        help="Overwrite an existing local registration",
    )

    run = subparsers.add_parser("run", help="Listen for jobs and run them")
    run.add_argument("--once", action="store_true", help="Exit after one job")

    remove = subparsers.add_parser("remove", help="Unregister this runner")
    remove.add_argument("--token", required=True, help="Removal token")

    return parser


def _registration() -> RegistrationClient:
    settings = get_settings()
    return RegistrationClient(
        IdentityStore(settings.identity_file),
        include_default_labels=settings.RUNNER_DEFAULT_LABELS,
    )


async def configure_runner(args: argparse.Namespace) -> int:
    """Register the runner and store its identity."""
    registration = _registration()
    if args.no_default_labels:
        registration.include_default_labels = False

    if registration.store.exists() and not args.replace:
        logger.error(
            f"Runner already configured ({registration.store.path}); "
            f"run 'actrunner remove' first or pass --replace"
        )
        return EXIT_USAGE

    identity = await registration.register(args.url, args.token, args.name, args.labels)
    print(f"Runner {identity.name} registered as {identity.id} with labels {','.join(sorted(identity.labels))}")
    return EXIT_OK


async def remove_runner(args: argparse.Namespace) -> int:
    """Unregister the runner and delete its identity."""
    registration = _registration()
    identity = registration.load()
    if identity is None:
        logger.error("Runner is not configured, nothing to remove")
        return EXIT_USAGE

    await registration.remove(identity, args.token)
    print(f"Runner {identity.name} ({identity.id}) removed")
    return EXIT_OK


async def run_runner(args: argparse.Namespace) -> int:
    """Run the runner service until stopped."""
    settings = get_settings()
    identity = _registration().load()
    if identity is None:
        logger.error("Runner is not configured, run 'actrunner configure' first")
        return EXIT_USAGE

    session_factory = get_session_factory()
    client = HttpControllerClient(identity.url)
    service = RunnerService(
        client,
        identity=identity,
        session_factory=session_factory,
        max_jobs=1 if args.once else None,
    )

    # Setup signal handlers for graceful shutdown
    loop = asyncio.get_running_loop()

    def signal_handler(signum: int) -> None:
        logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        service.stop()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, signal_handler, signum)

    status_server = None
    status_task = None
    if settings.STATUS_PORT:
        import uvicorn
        from actrunner.main import create_app

        status_server = uvicorn.Server(
            uvicorn.Config(
                create_app(service, session_factory),
                host=settings.STATUS_HOST,
                port=settings.STATUS_PORT,
                log_level=settings.LOG_LEVEL.lower(),
            )
        )
        # Signals are handled by the runner, not uvicorn
        status_server.install_signal_handlers = lambda: None
        status_task = asyncio.create_task(status_server.serve())
        logger.info(f"Status API on http://{settings.STATUS_HOST}:{settings.STATUS_PORT}")

    try:
        await service.start()
        return EXIT_OK
    except (AuthError, PollExhaustedError) as e:
        logger.error(f"Runner stopped: {e}")
        return EXIT_FAILURE
    finally:
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(signum)
        if status_server is not None:
            status_server.should_exit = True
            await status_task
        await client.aclose()
        close_db()


COMMANDS = {
    "configure": configure_runner,
    "run": run_runner,
    "remove": remove_runner,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(get_settings().LOG_LEVEL)

    try:
        return asyncio.run(COMMANDS[args.command](args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return EXIT_FAILURE
    except AuthError as e:
        logger.error(f"Authentication failed: {e}")
        return EXIT_FAILURE
    except NetworkError as e:
        logger.error(f"Controller unreachable: {e}")
        return EXIT_FAILURE
    except RunnerConfigError as e:
        logger.error(str(e))
        return EXIT_USAGE
    except RunnerException as e:
        logger.error(f"Runner error: {e}", exc_info=True)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
