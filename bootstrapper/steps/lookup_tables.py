from eth_typing import ChecksumAddress

from bootstrapper.constants import VERIFIER_LOOKUP_TABLE, LookupTableKind, ProverMode
from bootstrapper.context import DeploymentContext
from bootstrapper.errors import MissingDependency
from bootstrapper.reconcile import reconcile, warn_manual_removal
from bootstrapper.report import (
    DeletionVerifiers,
    GroupLookupTables,
    InsertionVerifiers,
    LookupTable,
    LookupTables,
    Verifiers,
)
from bootstrapper.transactor import ContractSpec
from bootstrapper.types import BatchSize, GroupId, TreeDepth

LOOKUP_TABLE = ContractSpec(name=VERIFIER_LOOKUP_TABLE)


def _lookup_tables_section(context: DeploymentContext) -> LookupTables:
    if context.report.lookup_tables is None:
        context.report.lookup_tables = LookupTables()
    return context.report.lookup_tables


async def deploy_group_lookup_tables(
    context: DeploymentContext, lookup_tables: LookupTables, group_id: GroupId
) -> GroupLookupTables:
    group = lookup_tables.groups.get(group_id)
    if group is None:
        group = GroupLookupTables()
        lookup_tables.groups[group_id] = group

    for kind in LookupTableKind:
        table = group.get(kind)
        if table is not None:
            print(
                f"(i) Found {kind.value} lookup table for group {group_id} "
                f"at {table.deployment.address}"
            )
            continue
        deployment = await context.deploy(LOOKUP_TABLE)
        group.set(kind, LookupTable(deployment=deployment))
    return group


def _verifier_address(
    verifiers: Verifiers, mode: ProverMode, tree_depth: TreeDepth, batch_size: BatchSize
) -> ChecksumAddress:
    deployment = verifiers.verifiers.get((tree_depth, batch_size))
    if deployment is None:
        raise MissingDependency(
            f"No {mode.value} verifier for tree depth {tree_depth} and batch size {batch_size}; "
            f"run the {mode.value}-verifiers stage first."
        )
    return deployment.address


async def associate_verifier(
    context: DeploymentContext,
    table: LookupTable,
    batch_size: BatchSize,
    verifier: ChecksumAddress,
) -> None:
    await context.transact(
        table.deployment.address, LOOKUP_TABLE, "updateVerifier", batch_size, verifier
    )
    table.entries[batch_size] = verifier


async def disable_verifier(
    context: DeploymentContext, table: LookupTable, batch_size: BatchSize
) -> None:
    await context.transact(table.deployment.address, LOOKUP_TABLE, "disableVerifier", batch_size)
    del table.entries[batch_size]


async def update_lookup_table(
    context: DeploymentContext,
    group_id: GroupId,
    kind: LookupTableKind,
    table: LookupTable,
    verifiers: Verifiers,
) -> None:
    """
    Associates every configured batch size with its verifier and disables batch
    sizes that are no longer configured. Batch sizes already present in the
    table are left alone.
    """
    mode = kind.prover_mode
    group_config = context.config.groups[group_id]
    plan = reconcile(group_config.batch_sizes(mode), table.entries)
    if plan.is_noop:
        return

    # resolve everything before the first transaction
    addresses = {
        batch_size: _verifier_address(verifiers, mode, group_config.tree_depth, batch_size)
        for batch_size in plan.create_or_update
    }
    print(
        f"(i) Updating {kind.value} lookup table for group {group_id}: "
        f"associate {plan.create_or_update}, disable {plan.remove}"
    )
    for batch_size in sorted(set(plan.create_or_update) | set(plan.remove)):
        if batch_size in addresses:
            await associate_verifier(context, table, batch_size, addresses[batch_size])
        else:
            await disable_verifier(context, table, batch_size)


async def deploy_lookup_tables(
    context: DeploymentContext,
    insertion_verifiers: InsertionVerifiers,
    deletion_verifiers: DeletionVerifiers,
) -> LookupTables:
    lookup_tables = _lookup_tables_section(context)
    group_ids = context.config.group_ids
    stale = reconcile(group_ids, lookup_tables.groups).remove
    warn_manual_removal("lookup tables for group", stale)

    for group_id in group_ids:
        await deploy_group_lookup_tables(context, lookup_tables, group_id)

    verifiers = {
        ProverMode.INSERTION: insertion_verifiers,
        ProverMode.DELETION: deletion_verifiers,
    }
    for group_id in group_ids:
        group = lookup_tables.groups[group_id]
        for kind in LookupTableKind:
            if kind.prover_mode is None:
                continue
            await update_lookup_table(
                context, group_id, kind, group.get(kind), verifiers[kind.prover_mode]
            )
    return lookup_tables
