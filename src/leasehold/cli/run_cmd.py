"""CLI command for claiming the lease and running the leader job.

Usage:
    leasehold run --claimant pod-a
    CLAIMANT=pod-b leasehold run --log-level debug
    leasehold run -c pod-a --store memory --job-iterations 3 --job-interval 1
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable
from enum import Enum
from typing import TypeVar

import typer

from leasehold.config import STORE_BACKENDS, Settings, settings
from leasehold.errors import LeaseConfigError, LeaseInitError, LeaseStoreError, ObserverClosed
from leasehold.lease import ClaimParams, HolderReceiver, LeaseManager
from leasehold.observability import configure_logging, start_metrics_server
from leasehold.store import create_store

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LogLevel(str, Enum):
    """Log levels accepted on the command line."""

    trace = "trace"
    debug = "debug"
    info = "info"
    warn = "warn"
    error = "error"


app = typer.Typer(help="Claim the lease and run the leader job")


@app.callback(invoke_without_command=True)
def run(
    claimant: str | None = typer.Option(
        None,
        "--claimant",
        "-c",
        envvar="CLAIMANT",
        help="ID of the claimant - must be unique. Falls back to LEASEHOLD_CLAIMANT",
    ),
    log_level: LogLevel = typer.Option(
        LogLevel.info,
        "--log-level",
        "-l",
        envvar="LOG_LEVEL",
        case_sensitive=False,
        help="Log level",
    ),
    lease_name: str = typer.Option(
        settings.lease_name,
        "--lease-name",
        help="Name of the shared lease record",
    ),
    namespace: str = typer.Option(
        settings.namespace,
        "--namespace",
        "-n",
        help="Namespace of the lease record",
    ),
    store: str = typer.Option(
        settings.store_backend,
        "--store",
        help="Lease store backend: redis or memory",
    ),
    job_iterations: int = typer.Option(
        10,
        "--job-iterations",
        help="How many times the leader job wakes up before finishing",
    ),
    job_interval: float = typer.Option(
        5.0,
        "--job-interval",
        help="Seconds between leader job wake-ups",
    ),
    metrics_port: int | None = typer.Option(
        settings.metrics_port,
        "--metrics-port",
        help="Serve Prometheus metrics on this port",
    ),
    json_logs: bool = typer.Option(
        settings.log_json,
        "--json-logs/--console-logs",
        help="Emit JSON logs or human-readable console logs",
    ),
) -> None:
    """Wait to become leader of the lease, then run the leader job.

    Exits 0 on graceful shutdown (job finished, SIGINT or SIGTERM) and 1
    when the lease cannot be initialized or the configuration is invalid.
    """
    claimant = claimant or settings.claimant
    if not claimant:
        raise typer.BadParameter("a claimant identity is required", param_hint="--claimant")

    configure_logging(json_format=json_logs, level=log_level.value)

    try:
        if store not in STORE_BACKENDS:
            raise LeaseConfigError(
                f"--store must be one of {', '.join(STORE_BACKENDS)}, got {store!r}"
            )
        run_settings = settings.model_copy(update={"store_backend": store})
        params = run_settings.claim_params()
    except LeaseConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        raise typer.Exit(code=1) from e

    if metrics_port is not None:
        start_metrics_server(metrics_port)

    exit_code = asyncio.run(
        run_claimant(
            claimant=claimant,
            lease_name=lease_name,
            namespace=namespace,
            run_settings=run_settings,
            params=params,
            job_iterations=job_iterations,
            job_interval=job_interval,
        )
    )
    raise typer.Exit(code=exit_code)


async def run_claimant(
    claimant: str,
    lease_name: str,
    namespace: str,
    run_settings: Settings,
    params: ClaimParams,
    job_iterations: int,
    job_interval: float,
) -> int:
    """Initialize the lease, wait for leadership, run the job. Returns the exit code."""
    store = await create_store(run_settings)
    try:
        if not await store.health_check():
            logger.warning(
                f"Lease store ({run_settings.store_backend}) is not reachable yet, "
                f"initialization will retry {run_settings.init_retries} time(s)"
            )

        try:
            manager = await LeaseManager.init(
                store,
                lease_name,
                namespace=namespace,
                labels={"leasehold/component": "claimant", "leasehold/namespace": namespace},
                retries=run_settings.init_retries,
                retry_delay=run_settings.init_retry_delay_seconds,
            )
        except LeaseInitError as e:
            logger.error(f"Lease initialization failed: {e}")
            return 1

        try:
            for record in await store.list(namespace):
                logger.debug(f"found lease {record.name}")
        except LeaseStoreError as e:
            logger.warning(f"Could not list leases in {namespace}: {e}")

        try:
            receiver, task = await manager.spawn(claimant, params)
        except LeaseConfigError as e:
            logger.error(f"Invalid claim: {e}")
            return 1

        shutdown = asyncio.Event()
        _install_signal_handlers(shutdown)
        try:
            return await _lead(receiver, claimant, shutdown, job_iterations, job_interval)
        except ObserverClosed as e:
            logger.error(f"Claim task terminated: {e}")
            return 1
        finally:
            await task.stop()
    finally:
        await store.close()


async def _lead(
    receiver: HolderReceiver,
    claimant: str,
    shutdown: asyncio.Event,
    job_iterations: int,
    job_interval: float,
) -> int:
    logger.debug("waiting to be leader")
    claim = await _until_shutdown(
        receiver.wait_for(lambda claim: claim.is_current_for(claimant)), shutdown
    )
    if claim is None:
        logger.info("Shutdown requested before becoming leader")
        return 0

    logger.info(f"Became leader, claim valid until {claim.expiry}")
    lost = asyncio.create_task(
        receiver.wait_for(lambda claim: not claim.is_current_for(claimant))
    )
    job = asyncio.create_task(leader_job(job_iterations, job_interval))
    stop = asyncio.create_task(shutdown.wait())
    try:
        done, _ = await asyncio.wait({lost, job, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for pending in (lost, job, stop):
            pending.cancel()
        await asyncio.gather(lost, job, stop, return_exceptions=True)

    if job in done:
        job.result()
        logger.info("Leader job finished")
        return 0
    if stop in done:
        logger.info("Shutdown requested, stopping leader job")
        return 0
    lost.result()
    logger.warning("Lost leadership, stopping leader job")
    return 1


async def leader_job(iterations: int, interval: float) -> None:
    """Stand-in for the work only the leader may do."""
    logger.debug("starting job")
    for i in range(iterations):
        logger.debug(f"{i} awake")
        await asyncio.sleep(interval)


async def _until_shutdown(awaitable: Awaitable[T], shutdown: asyncio.Event) -> T | None:
    """Await ``awaitable`` unless ``shutdown`` is set first, in which case return None."""
    waiter = asyncio.ensure_future(awaitable)
    stop = asyncio.create_task(shutdown.wait())
    try:
        await asyncio.wait({waiter, stop}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        stop.cancel()
        if not waiter.done():
            waiter.cancel()
        await asyncio.gather(waiter, stop, return_exceptions=True)
    if waiter.cancelled():
        return None
    return waiter.result()


def _install_signal_handlers(shutdown: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform or outside the main thread
            logger.debug(f"Cannot install handler for {sig.name}")
