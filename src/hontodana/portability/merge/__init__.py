"""Merge resolution strategies."""

from .resolver import (
    MergeAction,
    MergeOutcome,
    MergeStrategy,
    is_present,
    merge_records,
    resolve,
)

__all__ = [
    "MergeAction",
    "MergeOutcome",
    "MergeStrategy",
    "is_present",
    "merge_records",
    "resolve",
]
