"""Claim task: drives a claim state machine in the background.

One claim task runs per spawned claim. It sleeps for whatever delay each
state machine step returns, so all timing (poll interval, renewal
deadline, backoff) is decided by the state machine and all waiting
happens here.
"""

from __future__ import annotations

import asyncio
import logging

from leasehold.errors import LeaseConfigError, LeaseSchemaError
from leasehold.lease.machine import ClaimPhase, ClaimStateMachine
from leasehold.observability.logging import LogContext
from leasehold.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

# Errors that no amount of retrying will fix
FATAL_ERRORS = (LeaseSchemaError, LeaseConfigError)


class ClaimTask:
    """Background task running one claimant's state machine.

    The task runs until cancelled or until a fatal error (an incompatible
    record schema, invalid configuration). Either way the holder observer
    is closed, so anyone blocked in ``wait_for`` is released.
    """

    def __init__(self, machine: ClaimStateMachine) -> None:
        self.machine = machine
        self._task: asyncio.Task[None] | None = None

    @property
    def claimant(self) -> str:
        return self.machine.claimant

    @property
    def phase(self) -> ClaimPhase:
        return self.machine.phase

    @property
    def is_holder(self) -> bool:
        return self.machine.is_holder

    def start(self) -> None:
        """Start the background task. Starting twice is a no-op."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(
            self._run(), name=f"leasehold-claim-{self.machine.lease}-{self.claimant}"
        )
        # Covers cancellation before the first step, when _run never executes
        self._task.add_done_callback(lambda _: self.machine.observer.close())

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def cancel(self) -> None:
        """Request cancellation. Any in-flight store call is abandoned."""
        if self._task is not None:
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel the task and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # Already reported through the observer; wait() re-raises it
            logger.debug(f"Claim task for lease {self.machine.lease} ended with {e!r}")

    async def wait(self) -> None:
        """Wait for the task to end; re-raises a fatal error."""
        if self._task is not None:
            await self._task

    def __await__(self):  # type: ignore[no-untyped-def]
        return self.wait().__await__()

    async def _run(self) -> None:
        machine = self.machine
        with LogContext(claimant=machine.claimant, lease=machine.lease):
            logger.info(f"Claim task started for lease {machine.lease} as {machine.claimant}")
            try:
                while True:
                    delay = await machine.step()
                    if delay > 0:
                        await asyncio.sleep(delay)
                    else:
                        # Give other tasks a turn between immediate transitions
                        await asyncio.sleep(0)
            except asyncio.CancelledError:
                logger.info(f"Claim task for lease {machine.lease} cancelled")
                machine.observer.close()
                raise
            except FATAL_ERRORS as e:
                logger.error(f"Claim task for lease {machine.lease} stopped: {e}")
                machine.observer.close(e)
                raise
            except Exception as e:
                logger.exception(f"Claim task for lease {machine.lease} failed")
                machine.observer.close(e)
                raise
            finally:
                get_metrics().set_leader(machine.lease, machine.claimant, False)
