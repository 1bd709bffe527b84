"""Claim services package.

- ClaimService: lifecycle verbs (create, edit, archive, restore, delete, complete)
- LiveClaimList: live snapshot view with optimistic overlays and retry
- ClaimStreamManager: SSE adapter over LiveClaimList
"""

from cospec_claims.services.claims.claim_service import ClaimService
from cospec_claims.services.claims.claim_stream import ClaimStreamManager
from cospec_claims.services.claims.live_list import FilterMode, ListError, LiveClaimList, PendingOp, reconcile

__all__ = [
    "ClaimService",
    "ClaimStreamManager",
    "FilterMode",
    "ListError",
    "LiveClaimList",
    "PendingOp",
    "reconcile",
]
