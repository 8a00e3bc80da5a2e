"""Lease claiming for leader election.

Replicas agree on one leader by competing for a shared lease record:
- LeaseManager: creates the record and spawns claims
- ClaimStateMachine: acquire / renew / back off logic
- ClaimTask: background driver of the state machine
- HolderReceiver: who holds the lease, and waiting for a change

Example:
    from leasehold.lease import ClaimParams, LeaseManager

    manager = await LeaseManager.init(store, "scheduler")
    receiver, task = await manager.spawn("pod-a", ClaimParams())
    await receiver.wait_for(lambda claim: claim.is_current_for("pod-a"))
"""

from leasehold.lease.backoff import BackoffPolicy
from leasehold.lease.machine import ClaimPhase, ClaimState, ClaimStateMachine
from leasehold.lease.manager import LeaseManager
from leasehold.lease.observer import HolderObserver, HolderReceiver
from leasehold.lease.record import Claim, ClaimParams, LeaseRecord, LeaseUpdate, utcnow
from leasehold.lease.task import ClaimTask

__all__ = [
    "BackoffPolicy",
    "Claim",
    "ClaimParams",
    "ClaimPhase",
    "ClaimState",
    "ClaimStateMachine",
    "ClaimTask",
    "HolderObserver",
    "HolderReceiver",
    "LeaseManager",
    "LeaseRecord",
    "LeaseUpdate",
    "utcnow",
]
