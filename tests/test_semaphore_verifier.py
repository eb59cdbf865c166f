import asyncio

from eth_utils import to_checksum_address

from bootstrapper.report import ContractDeployment, Report, SemaphoreVerifierDeployment
from bootstrapper.steps.semaphore_verifier import deploy_semaphore_verifier


def test_deploys_pairing_then_linked_verifier(context, deployer):
    deployment = asyncio.run(deploy_semaphore_verifier(context))

    assert deployment.complete
    assert context.report.semaphore_verifier is deployment
    assert deployer.deployed_names == ["Pairing", "SemaphoreVerifier"]
    (library,) = deployer.deployments[1]["contract"].libraries
    assert library.name == "Pairing"
    assert library.path == "lib/semaphore/packages/contracts/contracts/base/Pairing.sol"
    assert library.address == deployment.pairing_deployment.address
    assert deployment.verifier_deployment.address == deployer.deployments[1]["address"]


def test_resumes_after_pairing(make_context, config, deployer):
    pairing = ContractDeployment(address=to_checksum_address("0x" + "00" * 19 + "99"))
    report = Report.default_with_config(config)
    report.semaphore_verifier = SemaphoreVerifierDeployment(pairing_deployment=pairing)
    context = make_context(config, report)

    deployment = asyncio.run(deploy_semaphore_verifier(context))

    assert deployer.deployed_names == ["SemaphoreVerifier"]
    assert deployer.deployments[0]["contract"].libraries[0].address == pairing.address
    assert deployment.pairing_deployment == pairing


def test_complete_deployment_is_left_alone(make_context, config, deployer):
    report = Report.default_with_config(config)
    report.semaphore_verifier = SemaphoreVerifierDeployment(
        pairing_deployment=ContractDeployment(address=to_checksum_address("0x" + "00" * 19 + "01")),
        verifier_deployment=ContractDeployment(address=to_checksum_address("0x" + "00" * 19 + "02")),
    )
    asyncio.run(deploy_semaphore_verifier(make_context(config, report)))
    assert deployer.deployments == []
