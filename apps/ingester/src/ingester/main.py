from __future__ import annotations

import argparse
from dataclasses import dataclass
import logging
import math
import signal
import socket
from threading import Event, Thread
import time
from typing import Callable, Sequence

import uvicorn
from sqlalchemy.exc import ArgumentError

from ingester.api import create_app
from ingester.config import Settings, get_settings
from ingester.db import resolve_database_url
from ingester.errors import ServerBindError, StoreError, TrackerError
from ingester.fetcher import HttpRecordFetcher
from ingester.logging_config import configure_logging
from ingester.orchestrator import IngestionOrchestrator
from ingester.store import SqlRecordStore
from ingester.tracker import SqlStatusTracker
from ingester.transformer import RecordTransformer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Components:
    fetcher: HttpRecordFetcher
    store: SqlRecordStore
    tracker: SqlStatusTracker
    orchestrator: IngestionOrchestrator


class ApiServerThread(Thread):
    def __init__(self, server: uvicorn.Server, sock: socket.socket, cancel: Event) -> None:
        super().__init__(name="ingest-api", daemon=True)
        self._server = server
        self._socket = sock
        self._cancel = cancel
        self.failed = False

    def run(self) -> None:
        try:
            self._server.run(sockets=[self._socket])
        except (Exception, SystemExit) as exc:
            logger.error("API server error: %r", exc)
            self.failed = True
        else:
            if not self._cancel.is_set():
                logger.error("API server exited unexpectedly")
                self.failed = True
        finally:
            self._cancel.set()

    def stop(self) -> None:
        self._server.should_exit = True


def open_components(settings: Settings) -> Components:
    try:
        database_url = resolve_database_url(settings.database_url, settings.database_name)
    except ArgumentError as exc:
        raise StoreError(f"invalid database URL: {exc}") from exc

    store = SqlRecordStore.open(
        database_url,
        collection=settings.collection,
        echo=settings.db_echo,
    )
    try:
        tracker = SqlStatusTracker.open(database_url, echo=settings.db_echo)
    except TrackerError:
        store.close()
        raise

    fetcher = HttpRecordFetcher(
        settings.source_url,
        timeout_seconds=settings.fetch_timeout_seconds,
    )
    orchestrator = IngestionOrchestrator(
        fetcher=fetcher,
        transformer=RecordTransformer(settings.source_name),
        store=store,
        tracker=tracker,
        interval_seconds=settings.fetch_interval_seconds,
    )
    return Components(fetcher=fetcher, store=store, tracker=tracker, orchestrator=orchestrator)


def close_components(components: Components, *, deadline: float) -> None:
    closers: list[tuple[str, Callable[[], None]]] = [
        ("fetcher", components.fetcher.close),
        ("storage", components.store.close),
        ("tracker", components.tracker.close),
    ]
    workers = [
        (name, Thread(target=_close_quietly, args=(name, closer), name=f"close-{name}", daemon=True))
        for name, closer in closers
    ]
    for _, worker in workers:
        worker.start()
    for name, worker in workers:
        worker.join(timeout=_remaining(deadline))
        if worker.is_alive():
            logger.error("error closing %s: did not finish within shutdown grace period", name)


def _close_quietly(name: str, closer: Callable[[], None]) -> None:
    try:
        closer()
    except Exception as exc:
        logger.error("error closing %s error=%s", name, exc)


def _remaining(deadline: float) -> float:
    return max(0.0, deadline - time.monotonic())


def bind_server_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        return socket.create_server((host, port), family=family, backlog=2048)
    except (OSError, OverflowError) as exc:
        raise ServerBindError(f"failed to bind {host}:{port}: {exc}") from exc


def install_signal_handlers(cancel: Event) -> dict[int, object]:
    def _handle(signum: int, frame: object) -> None:
        del frame
        logger.info("received shutdown signal signal=%s", signal.Signals(signum).name)
        cancel.set()

    previous: dict[int, object] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handle)
    return previous


def restore_signal_handlers(previous: dict[int, object]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def serve(
    components: Components,
    sock: socket.socket,
    settings: Settings,
    *,
    server_factory: Callable[[uvicorn.Config], uvicorn.Server] = uvicorn.Server,
) -> int:
    cancel = Event()
    previous_handlers = install_signal_handlers(cancel)
    try:
        return _serve_until_cancelled(components, sock, settings, cancel, server_factory)
    finally:
        restore_signal_handlers(previous_handlers)


def _serve_until_cancelled(
    components: Components,
    sock: socket.socket,
    settings: Settings,
    cancel: Event,
    server_factory: Callable[[uvicorn.Config], uvicorn.Server],
) -> int:
    config = uvicorn.Config(
        create_app(components.store, components.tracker),
        log_config=None,
        timeout_graceful_shutdown=max(1, math.ceil(settings.shutdown_grace_seconds)),
    )
    server_thread = ApiServerThread(server_factory(config), sock, cancel)
    scheduler_thread = Thread(
        target=components.orchestrator.run,
        args=(cancel,),
        name="ingest-scheduler",
        daemon=True,
    )

    server_thread.start()
    scheduler_thread.start()
    host, port = sock.getsockname()[:2]
    logger.info("service started listen=%s:%s interval=%.3fs", host, port, settings.fetch_interval_seconds)

    while not cancel.wait(0.5):
        pass

    logger.info("shutting down grace=%.1fs", settings.shutdown_grace_seconds)
    deadline = time.monotonic() + settings.shutdown_grace_seconds
    server_thread.stop()
    server_thread.join(timeout=_remaining(deadline))
    scheduler_thread.join(timeout=_remaining(deadline))
    for thread in (server_thread, scheduler_thread):
        if thread.is_alive():
            logger.warning("thread did not stop within shutdown grace period name=%s", thread.name)

    close_components(components, deadline=deadline)
    sock.close()
    logger.info("application shutdown complete")
    return 1 if server_thread.failed else 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="log-ingester",
        description="Periodically ingest records from a JSON source and serve them over HTTP",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single ingestion cycle and exit (exit code 1 when the cycle fails)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)

    try:
        components = open_components(settings)
    except (StoreError, TrackerError) as exc:
        logger.critical("failed to initialize storage: %s", exc)
        return 1

    if args.once:
        try:
            result = components.orchestrator.run_cycle(Event())
        finally:
            close_components(components, deadline=time.monotonic() + settings.shutdown_grace_seconds)
        return 0 if result.success else 1

    try:
        sock = bind_server_socket(settings.server_host, settings.server_port)
    except ServerBindError as exc:
        logger.critical("API server cannot start: %s", exc)
        close_components(components, deadline=time.monotonic() + settings.shutdown_grace_seconds)
        return 1

    return serve(components, sock, settings)


def run() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    run()
