"""Merge resolution for duplicate records.

Given an existing record and an incoming duplicate, produce the record to
store according to a strategy. Records are never mutated in place; every
outcome carries a new instance (or the untouched existing one).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Union

from ..errors import PortabilityError, duplicate_handling_error
from ..logs import get_logger
from ..records import RecordModel, generate_id

logger = get_logger(__name__)

# Fields that identify a record and survive every strategy except create_new
IDENTITY_FIELDS = ("id", "user_id")


class MergeStrategy(str, Enum):
    """How to reconcile an incoming duplicate."""

    SKIP = "skip"  # Keep existing, ignore incoming
    UPDATE = "update"  # Incoming replaces existing, identity kept
    MERGE = "merge"  # Field-by-field, present incoming values win (default)
    CREATE_NEW = "create_new"  # Insert incoming as an independent record


class MergeAction(str, Enum):
    """What the store should do with the resolved record."""

    ADDED = "added"
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass
class MergeOutcome:
    """Result of resolving one duplicate pair."""

    record: Any
    action: MergeAction
    warning: Optional[str] = None
    error: Optional[PortabilityError] = None

    @property
    def success(self) -> bool:
        return self.error is None


def is_present(value: Any) -> bool:
    """A value counts as supplied unless None, an empty string, or an empty list."""
    if value is None:
        return False
    if isinstance(value, str) and value == "":
        return False
    if isinstance(value, (list, tuple)) and not value:
        return False
    return True


def _label(record: Any) -> str:
    return getattr(record, "title", None) or getattr(record, "name", None) or record.id


def _field_names(model: type[RecordModel], merge_fields: Optional[Iterable[str]]) -> list[str]:
    """Resolve field names, accepting either snake_case or camelCase."""
    model_fields = model.model_fields
    if merge_fields is None:
        return [name for name in model_fields if name not in IDENTITY_FIELDS]

    by_alias = {info.alias: name for name, info in model_fields.items() if info.alias}
    names = []
    for requested in merge_fields:
        name = requested if requested in model_fields else by_alias.get(requested)
        if name and name not in IDENTITY_FIELDS and name not in names:
            names.append(name)
    return names


def merge_records(
    existing: RecordModel,
    incoming: RecordModel,
    merge_fields: Optional[Iterable[str]] = None,
) -> RecordModel:
    """Field-by-field merge: supplied incoming values win, absent ones never erase.

    A field counts as supplied only when it was set explicitly on ``incoming``
    (``model_fields_set``); model defaults never overwrite stored data.
    ``current_page`` keeps the furthest progress of the two.
    """
    update: dict[str, Any] = {}
    supplied = incoming.model_fields_set

    for name in _field_names(type(existing), merge_fields):
        if name == "current_page":
            update[name] = max(getattr(existing, name) or 0, getattr(incoming, name) or 0)
            continue
        if name not in supplied:
            continue
        value = getattr(incoming, name)
        if is_present(value):
            update[name] = value

    return existing.model_copy(update=update)


def resolve(
    existing: RecordModel,
    incoming: RecordModel,
    strategy: Union[MergeStrategy, str] = MergeStrategy.MERGE,
    merge_fields: Optional[Iterable[str]] = None,
) -> MergeOutcome:
    """Resolve a duplicate pair.

    Args:
        existing: Record already in the store
        incoming: Duplicate record being imported
        strategy: Merge strategy
        merge_fields: Restrict a merge to these fields

    Returns:
        MergeOutcome; on failure ``error`` is set and the existing record is kept
    """
    if type(existing) is not type(incoming):
        logger.warning(
            "merge_failed",
            reason="incompatible record types",
            existing=type(existing).__name__,
            incoming=type(incoming).__name__,
        )
        return MergeOutcome(
            record=existing,
            action=MergeAction.SKIPPED,
            error=duplicate_handling_error(
                "merge",
                reason="Incompatible record types",
                existingType=type(existing).__name__,
                incomingType=type(incoming).__name__,
            ),
        )

    try:
        strategy = MergeStrategy(strategy)
    except ValueError:
        logger.warning("merge_failed", reason="unknown strategy", strategy=str(strategy))
        return MergeOutcome(
            record=existing,
            action=MergeAction.SKIPPED,
            error=duplicate_handling_error("merge", reason=f"Unknown strategy: {strategy}"),
        )

    if strategy == MergeStrategy.SKIP:
        return MergeOutcome(record=existing, action=MergeAction.SKIPPED)

    if strategy == MergeStrategy.UPDATE:
        identity = {
            name: getattr(existing, name)
            for name in IDENTITY_FIELDS
            if name in type(existing).model_fields
        }
        return MergeOutcome(
            record=incoming.model_copy(update=identity),
            action=MergeAction.UPDATED,
        )

    if strategy == MergeStrategy.CREATE_NEW:
        return MergeOutcome(
            record=incoming.model_copy(update={"id": generate_id()}),
            action=MergeAction.ADDED,
            warning=(
                f"Created '{_label(incoming)}' as a new record although it "
                f"duplicates existing record {existing.id}"
            ),
        )

    return MergeOutcome(
        record=merge_records(existing, incoming, merge_fields),
        action=MergeAction.UPDATED,
    )
