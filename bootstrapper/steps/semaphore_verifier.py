from bootstrapper.constants import PAIRING, PAIRING_SOURCE, SEMAPHORE_VERIFIER
from bootstrapper.context import DeploymentContext
from bootstrapper.report import SemaphoreVerifierDeployment
from bootstrapper.transactor import ContractSpec, LinkedLibrary

PAIRING_LIBRARY = ContractSpec(name=PAIRING, verify=False)


async def deploy_semaphore_verifier(context: DeploymentContext) -> SemaphoreVerifierDeployment:
    """Deploys the Pairing library, then the semaphore verifier linked against it."""
    deployment = context.report.semaphore_verifier
    if deployment is None:
        deployment = SemaphoreVerifierDeployment()
        context.report.semaphore_verifier = deployment

    if deployment.pairing_deployment is None:
        deployment.pairing_deployment = await context.deploy(PAIRING_LIBRARY)
    else:
        print(f"(i) Found {PAIRING} library at {deployment.pairing_deployment.address}")

    if deployment.verifier_deployment is None:
        pairing = LinkedLibrary(
            path=PAIRING_SOURCE,
            name=PAIRING,
            address=deployment.pairing_deployment.address,
        )
        contract = ContractSpec(name=SEMAPHORE_VERIFIER, libraries=(pairing,), verify=False)
        deployment.verifier_deployment = await context.deploy(contract)
    else:
        print(f"(i) Found {SEMAPHORE_VERIFIER} at {deployment.verifier_deployment.address}")

    return deployment
