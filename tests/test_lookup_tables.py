import asyncio

import pytest
from eth_utils import to_checksum_address

from bootstrapper.errors import MissingDependency
from bootstrapper.report import (
    ContractDeployment,
    DeletionVerifiers,
    GroupLookupTables,
    InsertionVerifiers,
    LookupTable,
    LookupTables,
    Report,
)
from bootstrapper.steps.lookup_tables import deploy_lookup_tables


def deployment(n):
    return ContractDeployment(address=to_checksum_address(f"0x{n:040x}"))


INSERTION_VERIFIERS = InsertionVerifiers(verifiers={(16, 1): deployment(1), (16, 10): deployment(10)})
DELETION_VERIFIERS = DeletionVerifiers(verifiers={(16, 10): deployment(110)})


def test_deploys_tables_and_associates_verifiers(context, deployer):
    tables = asyncio.run(deploy_lookup_tables(context, INSERTION_VERIFIERS, DELETION_VERIFIERS))

    assert context.report.lookup_tables is tables
    assert deployer.deployed_names == ["VerifierLookupTable"] * 6
    group_0 = tables.groups[0]
    assert group_0.insert.entries == {1: deployment(1).address, 10: deployment(10).address}
    assert group_0.update.entries == {}
    assert group_0.delete.entries == {10: deployment(110).address}
    assert tables.groups[1].insert.entries == {10: deployment(10).address}

    assert deployer.called_functions == [
        ("updateVerifier", (1, deployment(1).address)),
        ("updateVerifier", (10, deployment(10).address)),
        ("updateVerifier", (10, deployment(110).address)),
        ("updateVerifier", (10, deployment(10).address)),
        ("updateVerifier", (10, deployment(110).address)),
    ]
    assert deployer.transactions[0]["to"] == group_0.insert.deployment.address
    assert deployer.transactions[2]["to"] == group_0.delete.deployment.address


def test_entries_are_reconciled(make_context, config, deployer):
    insert = LookupTable(
        deployment=deployment(500),
        # batch size 1 points elsewhere but is still configured; 5 is no longer configured
        entries={1: deployment(999).address, 5: deployment(5).address},
    )
    delete = LookupTable(deployment=deployment(502), entries={10: deployment(110).address})
    report = Report.default_with_config(config)
    report.lookup_tables = LookupTables(
        groups={
            0: GroupLookupTables(insert=insert, update=LookupTable(deployment(501)), delete=delete),
        }
    )
    context = make_context(config, report)

    asyncio.run(deploy_lookup_tables(context, INSERTION_VERIFIERS, DELETION_VERIFIERS))

    group_0_calls = [t for t in deployer.transactions if t["to"] == insert.deployment.address]
    assert [(t["function"], t["args"]) for t in group_0_calls] == [
        ("disableVerifier", (5,)),
        ("updateVerifier", (10, deployment(10).address)),
    ]
    assert insert.entries == {1: deployment(999).address, 10: deployment(10).address}
    assert not [t for t in deployer.transactions if t["to"] == delete.deployment.address]
    # only group 1 needed new tables
    assert deployer.deployed_names == ["VerifierLookupTable"] * 3


def test_missing_verifier(context, deployer):
    with pytest.raises(MissingDependency, match="insertion verifier for tree depth 16 and batch size 1"):
        asyncio.run(
            deploy_lookup_tables(
                context,
                InsertionVerifiers(verifiers={(16, 10): deployment(10)}),
                DELETION_VERIFIERS,
            )
        )
    # the tables themselves were recorded before the failure
    assert sorted(context.report.lookup_tables.groups) == [0, 1]
    assert deployer.transactions == []


def test_stale_group_is_only_reported(make_context, config, deployer, capsys):
    report = Report.default_with_config(config)
    stale = GroupLookupTables(insert=LookupTable(deployment(600)))
    report.lookup_tables = LookupTables(groups={7: stale})
    context = make_context(config, report)

    tables = asyncio.run(deploy_lookup_tables(context, INSERTION_VERIFIERS, DELETION_VERIFIERS))

    assert tables.groups[7] is stale
    assert "WARNING: lookup tables for group 7" in capsys.readouterr().out
