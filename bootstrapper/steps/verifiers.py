from bootstrapper.constants import VERIFIER, ProverMode
from bootstrapper.context import DeploymentContext
from bootstrapper.reconcile import reconcile, warn_manual_removal
from bootstrapper.report import (
    ContractDeployment,
    DeletionVerifiers,
    InsertionVerifiers,
    Verifiers,
)
from bootstrapper.transactor import ContractSpec
from bootstrapper.types import BatchSize, TreeDepth

_REPORT_SECTIONS = {
    ProverMode.INSERTION: ("insertion_verifiers", InsertionVerifiers),
    ProverMode.DELETION: ("deletion_verifiers", DeletionVerifiers),
}


def _verifiers_section(context: DeploymentContext, mode: ProverMode) -> Verifiers:
    attribute, section_cls = _REPORT_SECTIONS[mode]
    verifiers = getattr(context.report, attribute)
    if verifiers is None:
        verifiers = section_cls()
        setattr(context.report, attribute, verifiers)
    return verifiers


async def deploy_verifier(
    context: DeploymentContext,
    verifiers: Verifiers,
    tree_depth: TreeDepth,
    batch_size: BatchSize,
    mode: ProverMode,
) -> ContractDeployment:
    key = (tree_depth, batch_size)
    existing = verifiers.verifiers.get(key)
    if existing is not None:
        print(
            f"(i) Found {mode.value} verifier for tree depth {tree_depth}, "
            f"batch size {batch_size} at {existing.address}"
        )
        return existing

    source = await context.generator.generate(tree_depth, batch_size, mode)
    contract = ContractSpec(name=VERIFIER, path=source, verify=False)
    deployment = await context.deploy(contract)
    verifiers.verifiers[key] = deployment
    return deployment


async def deploy_verifiers(context: DeploymentContext, mode: ProverMode) -> Verifiers:
    """
    Generates and deploys one verifier per distinct (tree depth, batch size) pair
    configured for ``mode``. Recorded verifiers are reused as-is.
    """
    verifiers = _verifiers_section(context, mode)
    desired = context.config.unique_tree_depths_and_batch_sizes(mode)
    plan = reconcile(desired, verifiers.verifiers)

    warn_manual_removal(f"{mode.value} verifier (tree depth, batch size)", plan.remove)
    if plan.create_or_update:
        print(f"(i) Deploying {len(plan.create_or_update)} {mode.value} verifier(s)")
    for tree_depth, batch_size in plan.create_or_update:
        await deploy_verifier(context, verifiers, tree_depth, batch_size, mode)
    return verifiers


async def deploy_insertion_verifiers(context: DeploymentContext) -> InsertionVerifiers:
    return await deploy_verifiers(context, ProverMode.INSERTION)


async def deploy_deletion_verifiers(context: DeploymentContext) -> DeletionVerifiers:
    return await deploy_verifiers(context, ProverMode.DELETION)
