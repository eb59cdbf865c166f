from eth_typing import ChecksumAddress

from bootstrapper.constants import (
    IDENTITY_MANAGER,
    IDENTITY_MANAGER_IMPL_V1,
    IDENTITY_MANAGER_IMPL_V2,
    LookupTableKind,
)
from bootstrapper.context import DeploymentContext
from bootstrapper.errors import MissingDependency
from bootstrapper.reconcile import reconcile, warn_manual_removal
from bootstrapper.report import (
    IdentityManagerDeployment,
    IdentityManagers,
    IdentityManagerState,
    LookupTables,
    SemaphoreVerifierDeployment,
)
from bootstrapper.transactor import ContractSpec
from bootstrapper.types import GroupId
from bootstrapper.utils import initial_root

IMPL_V1 = ContractSpec(name=IDENTITY_MANAGER_IMPL_V1)
IMPL_V2 = ContractSpec(name=IDENTITY_MANAGER_IMPL_V2)
PROXY = ContractSpec(name=IDENTITY_MANAGER)


def _lookup_table_address(
    lookup_tables: LookupTables, group_id: GroupId, kind: LookupTableKind
) -> ChecksumAddress:
    group = lookup_tables.groups.get(group_id)
    table = group.get(kind) if group is not None else None
    if table is None:
        raise MissingDependency(
            f"No {kind.value} lookup table for group {group_id}; "
            "run the lookup-tables stage first."
        )
    return table.deployment.address


def _semaphore_verifier_address(semaphore_verifier: SemaphoreVerifierDeployment) -> ChecksumAddress:
    if semaphore_verifier.verifier_deployment is None:
        raise MissingDependency(
            "The semaphore verifier is not deployed; run the semaphore-verifier stage first."
        )
    return semaphore_verifier.verifier_deployment.address


async def deploy_v1(
    context: DeploymentContext,
    group_id: GroupId,
    record: IdentityManagerDeployment,
    lookup_tables: LookupTables,
    semaphore_verifier: SemaphoreVerifierDeployment,
) -> None:
    """Deploys the V1 implementation and a proxy initialized through it."""
    group_config = context.config.groups[group_id]
    tree_depth = group_config.tree_depth
    root = initial_root(
        tree_depth,
        initial_leaf_value=context.config.initial_leaf_value,
        override=group_config.initial_root,
        root_hasher=context.root_hasher,
    )
    insert_table = _lookup_table_address(lookup_tables, group_id, LookupTableKind.INSERT)
    update_table = _lookup_table_address(lookup_tables, group_id, LookupTableKind.UPDATE)
    verifier = _semaphore_verifier_address(semaphore_verifier)

    if record.impl_v1_deployment is None:
        record.impl_v1_deployment = await context.deploy(IMPL_V1)
    else:
        print(
            f"(i) Reusing {IDENTITY_MANAGER_IMPL_V1} for group {group_id} "
            f"at {record.impl_v1_deployment.address}"
        )

    call_data = context.deployer.encode(
        IMPL_V1, "initialize", tree_depth, root, insert_table, update_table, verifier
    )
    record.proxy_deployment = await context.deploy(
        PROXY, record.impl_v1_deployment.address, call_data
    )


async def upgrade_to_v2(
    context: DeploymentContext,
    group_id: GroupId,
    record: IdentityManagerDeployment,
    lookup_tables: LookupTables,
) -> None:
    """Upgrades a V1 proxy in place; the proxy address is kept, the V1 record is dropped."""
    delete_table = _lookup_table_address(lookup_tables, group_id, LookupTableKind.DELETE)
    impl_v2 = await context.deploy(IMPL_V2)
    call_data = context.deployer.encode(IMPL_V2, "initializeV2", delete_table)
    await context.transact(
        record.proxy_deployment.address, IMPL_V2, "upgradeToAndCall", impl_v2.address, call_data
    )
    record.impl_v1_deployment = None
    record.impl_v2_deployment = impl_v2


async def deploy_identity_manager(
    context: DeploymentContext,
    identity_managers: IdentityManagers,
    group_id: GroupId,
    lookup_tables: LookupTables,
    semaphore_verifier: SemaphoreVerifierDeployment,
) -> IdentityManagerDeployment:
    record = identity_managers.groups.get(group_id)
    if record is None:
        record = IdentityManagerDeployment()
        identity_managers.groups[group_id] = record

    state = record.state
    if state == IdentityManagerState.V2_UPGRADED:
        print(
            f"(i) Identity manager for group {group_id} is up to date "
            f"at {record.proxy_deployment.address}"
        )
        return record

    if state == IdentityManagerState.ABSENT:
        print(f"(i) Deploying identity manager for group {group_id}")
        await deploy_v1(context, group_id, record, lookup_tables, semaphore_verifier)
    else:
        print(
            f"(i) Upgrading identity manager for group {group_id} "
            f"at {record.proxy_deployment.address}"
        )
    await upgrade_to_v2(context, group_id, record, lookup_tables)
    return record


async def deploy_identity_managers(
    context: DeploymentContext,
    lookup_tables: LookupTables,
    semaphore_verifier: SemaphoreVerifierDeployment,
) -> IdentityManagers:
    if context.report.identity_managers is None:
        context.report.identity_managers = IdentityManagers()
    identity_managers = context.report.identity_managers

    group_ids = context.config.group_ids
    stale = reconcile(group_ids, identity_managers.groups).remove
    warn_manual_removal("identity manager for group", stale)

    for group_id in group_ids:
        await deploy_identity_manager(
            context, identity_managers, group_id, lookup_tables, semaphore_verifier
        )
    return identity_managers
