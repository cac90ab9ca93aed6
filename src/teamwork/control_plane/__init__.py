"""Control-plane public API: claim protocol, stale-claim reclamation and team wiring."""

from teamwork.control_plane.claims import ClaimProtocol
from teamwork.control_plane.coordinator import TeamCoordinator
from teamwork.control_plane.reclaimer import (
    ReclaimPolicy,
    StaleClaimReclaimer,
    SweepResult,
)

__all__ = [
    "ClaimProtocol",
    "ReclaimPolicy",
    "StaleClaimReclaimer",
    "SweepResult",
    "TeamCoordinator",
]
