import asyncio

import pytest
from eth_utils import to_checksum_address

from bootstrapper.config import DeploymentConfig
from bootstrapper.errors import ConfigError, MissingDependency
from bootstrapper.report import (
    ContractDeployment,
    GroupLookupTables,
    IdentityManagerDeployment,
    IdentityManagers,
    LookupTable,
    LookupTables,
    Report,
    SemaphoreVerifierDeployment,
)
from bootstrapper.steps.identity_managers import deploy_identity_managers


def deployment(n):
    return ContractDeployment(address=to_checksum_address(f"0x{n:040x}"))


def group_tables(offset):
    return GroupLookupTables(
        insert=LookupTable(deployment(offset + 1)),
        update=LookupTable(deployment(offset + 2)),
        delete=LookupTable(deployment(offset + 3)),
    )


LOOKUP_TABLES = LookupTables(groups={0: group_tables(100), 1: group_tables(200)})
SEMAPHORE_VERIFIER = SemaphoreVerifierDeployment(
    pairing_deployment=deployment(300), verifier_deployment=deployment(301)
)


def run(context, lookup_tables=LOOKUP_TABLES, semaphore_verifier=SEMAPHORE_VERIFIER):
    return asyncio.run(deploy_identity_managers(context, lookup_tables, semaphore_verifier))


def report_with(config, groups):
    report = Report.default_with_config(config)
    report.identity_managers = IdentityManagers(groups=groups)
    return report


def test_fresh_deployment_ends_upgraded(context, deployer):
    managers = run(context)

    assert deployer.deployed_names == [
        "WorldIDIdentityManagerImplV1",
        "WorldIDIdentityManager",
        "WorldIDIdentityManagerImplV2",
    ] * 2
    group_0 = managers.groups[0]
    assert group_0.impl_v1_deployment is None
    assert group_0.impl_v2_deployment.address == deployer.deployments[2]["address"]
    assert group_0.proxy_deployment.address == deployer.deployments[1]["address"]

    # proxy constructor gets the implementation and its initializer call
    impl_v1, call_data = deployer.deployments[1]["args"]
    assert impl_v1 == deployer.deployments[0]["address"]
    contract, function, args = deployer.decode(call_data)
    assert (contract, function) == ("WorldIDIdentityManagerImplV1", "initialize")
    assert args == (
        16,
        int("01" * 32, 16),
        deployment(101).address,
        deployment(102).address,
        deployment(301).address,
    )

    upgrade = deployer.transactions[0]
    assert upgrade["to"] == group_0.proxy_deployment.address
    assert upgrade["function"] == "upgradeToAndCall"
    impl_v2, call_data = upgrade["args"]
    assert impl_v2 == group_0.impl_v2_deployment.address
    assert deployer.decode(call_data)[1:] == ("initializeV2", (deployment(103).address,))


def test_v1_is_upgraded_in_place(make_context, config, deployer):
    record = IdentityManagerDeployment(
        proxy_deployment=deployment(1), impl_v1_deployment=deployment(2)
    )
    upgraded = IdentityManagerDeployment(
        proxy_deployment=deployment(3), impl_v2_deployment=deployment(4)
    )
    context = make_context(config, report_with(config, {0: record, 1: upgraded}))

    run(context)

    assert deployer.deployed_names == ["WorldIDIdentityManagerImplV2"]
    assert [t["function"] for t in deployer.transactions] == ["upgradeToAndCall"]
    assert record.proxy_deployment == deployment(1)
    assert record.impl_v1_deployment is None
    assert record.impl_v2_deployment.address == deployer.deployments[0]["address"]
    assert upgraded == IdentityManagerDeployment(
        proxy_deployment=deployment(3), impl_v2_deployment=deployment(4)
    )


def test_upgraded_groups_are_untouched(make_context, config, deployer):
    groups = {
        group_id: IdentityManagerDeployment(
            proxy_deployment=deployment(10 + group_id), impl_v2_deployment=deployment(20 + group_id)
        )
        for group_id in (0, 1)
    }
    run(make_context(config, report_with(config, groups)))
    assert deployer.deployments == []
    assert deployer.transactions == []


def test_orphaned_implementation_is_reused(make_context, config, deployer):
    orphan = IdentityManagerDeployment(impl_v1_deployment=deployment(7))
    upgraded = IdentityManagerDeployment(proxy_deployment=deployment(3), impl_v2_deployment=deployment(4))
    context = make_context(config, report_with(config, {0: orphan, 1: upgraded}))

    run(context)

    assert deployer.deployed_names == ["WorldIDIdentityManager", "WorldIDIdentityManagerImplV2"]
    assert deployer.deployments[0]["args"][0] == deployment(7).address


def test_proxy_without_implementation(make_context, config):
    record = IdentityManagerDeployment(proxy_deployment=deployment(1))
    with pytest.raises(ConfigError):
        run(make_context(config, report_with(config, {0: record})))


def test_initial_root_from_hasher(make_context, groups, deployer):
    for group in groups.values():
        del group["initial_root"]
    config = DeploymentConfig.from_dict({"groups": groups})
    hashed = list()

    def root_hasher(tree_depth, leaf):
        hashed.append(tree_depth)
        return "0x2a"

    run(make_context(config, root_hasher=root_hasher))

    assert hashed == [16, 16]
    _, call_data = deployer.deployments[1]["args"]
    assert deployer.decode(call_data)[2][1] == 42


def test_initial_root_required(make_context, groups, deployer):
    del groups[0]["initial_root"]
    config = DeploymentConfig.from_dict({"groups": groups})

    with pytest.raises(ConfigError, match="initial_root"):
        run(make_context(config))
    assert deployer.deployments == []


def test_missing_lookup_table(context, deployer):
    lookup_tables = LookupTables(groups={0: GroupLookupTables(insert=LookupTable(deployment(1)))})
    with pytest.raises(MissingDependency, match="update lookup table for group 0"):
        run(context, lookup_tables=lookup_tables)
    assert deployer.deployments == []


def test_stale_group_is_only_reported(make_context, config, deployer, capsys):
    stale = IdentityManagerDeployment(proxy_deployment=deployment(5), impl_v2_deployment=deployment(6))
    context = make_context(config, report_with(config, {9: stale}))

    managers = run(context)

    assert managers.groups[9] is stale
    assert "WARNING: identity manager for group 9" in capsys.readouterr().out
    assert stale.proxy_deployment.address not in [t["to"] for t in deployer.transactions]
