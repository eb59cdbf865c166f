from typing import Dict

from eth_typing import ChecksumAddress

from bootstrapper.constants import ROUTER, ROUTER_BOOTSTRAP_GROUP, ROUTER_IMPL_V1
from bootstrapper.context import DeploymentContext
from bootstrapper.errors import ConfigError, MissingDependency
from bootstrapper.reconcile import reconcile_mapping
from bootstrapper.report import IdentityManagers, RouterDeployment
from bootstrapper.transactor import ContractSpec
from bootstrapper.types import GroupId

IMPL_V1 = ContractSpec(name=ROUTER_IMPL_V1)
PROXY = ContractSpec(name=ROUTER)


def desired_routes(
    context: DeploymentContext, identity_managers: IdentityManagers
) -> Dict[GroupId, ChecksumAddress]:
    routes = dict()
    for group_id in context.config.group_ids:
        record = identity_managers.groups.get(group_id)
        if record is None or record.proxy_deployment is None:
            raise MissingDependency(
                f"No identity manager for group {group_id}; "
                "run the identity-managers stage first."
            )
        routes[group_id] = record.proxy_deployment.address
    return routes


async def deploy_router_proxy(
    context: DeploymentContext, router: RouterDeployment, bootstrap_address: ChecksumAddress
) -> None:
    """The router can only be initialized with the bootstrap group's identity manager."""
    if router.impl_v1_deployment is None:
        router.impl_v1_deployment = await context.deploy(IMPL_V1)
    call_data = context.deployer.encode(IMPL_V1, "initialize", bootstrap_address)
    router.proxy_deployment = await context.deploy(
        PROXY, router.impl_v1_deployment.address, call_data
    )
    router.entries[ROUTER_BOOTSTRAP_GROUP] = bootstrap_address


async def deploy_router(
    context: DeploymentContext, identity_managers: IdentityManagers
) -> RouterDeployment:
    """
    Deploys the router if needed, then makes its routes match the identity managers:
    missing groups are added, moved groups are updated, and groups that are no longer
    configured are disabled.
    """
    routes = desired_routes(context, identity_managers)
    if context.report.world_id_router is None:
        context.report.world_id_router = RouterDeployment()
    router = context.report.world_id_router

    if router.proxy_deployment is None:
        if not context.config.has_bootstrap_group:
            raise ConfigError(
                f"Group {ROUTER_BOOTSTRAP_GROUP} must be configured to deploy the router."
            )
        print("(i) Deploying the router")
        await deploy_router_proxy(context, router, routes[ROUTER_BOOTSTRAP_GROUP])
    else:
        print(f"(i) Found router at {router.proxy_deployment.address}")

    address = router.proxy_deployment.address
    plan = reconcile_mapping(routes, router.entries)
    # ascending group id; the router assigns ids to added groups in call order
    for group_id in sorted(set(plan.create) | set(plan.update) | set(plan.remove)):
        if group_id in plan.remove:
            await context.transact(address, IMPL_V1, "disableGroup", group_id)
            del router.entries[group_id]
            continue
        if group_id in plan.create:
            await context.transact(address, IMPL_V1, "addGroup", routes[group_id])
        else:
            await context.transact(address, IMPL_V1, "updateGroup", group_id, routes[group_id])
        router.entries[group_id] = routes[group_id]
    return router
