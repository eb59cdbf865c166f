"""
Diffing of desired state (from the config) against recorded state (from the report).

Every resource kind is reconciled by key: keys only in the desired set must be
created (or re-associated), keys only in the recorded set are stale, and keys
in both are left untouched. All key lists come back sorted so that the
transactions derived from them are issued in a reproducible order.

What happens to stale keys depends on the resource kind: lookup-table entries
and router routes are disabled on-chain, everything else is only reported so
that an operator can retire it by hand.
"""

from typing import Any, Hashable, Iterable, List, Mapping, NamedTuple


class Reconciliation(NamedTuple):
    create_or_update: List[Hashable]
    remove: List[Hashable]
    unchanged: List[Hashable]

    @property
    def is_noop(self) -> bool:
        return not self.create_or_update and not self.remove


class MappingReconciliation(NamedTuple):
    create: List[Hashable]
    update: List[Hashable]
    remove: List[Hashable]
    unchanged: List[Hashable]

    @property
    def is_noop(self) -> bool:
        return not (self.create or self.update or self.remove)


def reconcile(desired: Iterable[Hashable], existing: Iterable[Hashable]) -> Reconciliation:
    """Splits two key sets into (desired - existing, existing - desired, desired & existing)."""
    desired, existing = set(desired), set(existing)
    return Reconciliation(
        create_or_update=sorted(desired - existing),
        remove=sorted(existing - desired),
        unchanged=sorted(desired & existing),
    )


def reconcile_mapping(
    desired: Mapping[Hashable, Any], existing: Mapping[Hashable, Any]
) -> MappingReconciliation:
    """
    Like ``reconcile`` but for keyed values: shared keys whose recorded value
    differs from the desired one are reported as updates.
    """
    keys = reconcile(desired, existing)
    update, unchanged = list(), list()
    for key in keys.unchanged:
        if existing[key] != desired[key]:
            update.append(key)
        else:
            unchanged.append(key)
    return MappingReconciliation(
        create=keys.create_or_update,
        update=update,
        remove=keys.remove,
        unchanged=unchanged,
    )


def warn_manual_removal(resource: str, keys: Iterable[Any], hint: str = "remove it manually") -> None:
    """Reports stale resources that are never retired automatically."""
    for key in keys:
        print(f"WARNING: {resource} {key} is in the report but not in the config - {hint}.")
