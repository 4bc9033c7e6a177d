"""Session reconciliation: bucket dedup and per-session folding."""

from behaveguard.reconcile.dedup import dedupe, make_bucket_key, minute_bucket
from behaveguard.reconcile.reconciler import FIELD_POLICIES, MergePolicy, SessionReconciler

__all__ = [
    "FIELD_POLICIES",
    "MergePolicy",
    "SessionReconciler",
    "dedupe",
    "make_bucket_key",
    "minute_bucket",
]
