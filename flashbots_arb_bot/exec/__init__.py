"""Execution module for bundle construction and submission."""

from ..connector import Bundle, BundledTransaction
from .bundle_executor import BundleExecutorContract
from .submitter import (
    AttemptStatus,
    BundleAttempt,
    BundleBroadcastError,
    BundleSubmitter,
    NoArbitrageSubmitted,
    SkipReason,
)

__all__ = [
    "Bundle",
    "BundledTransaction",
    "BundleExecutorContract",
    "AttemptStatus",
    "BundleAttempt",
    "BundleBroadcastError",
    "BundleSubmitter",
    "NoArbitrageSubmitted",
    "SkipReason",
]
