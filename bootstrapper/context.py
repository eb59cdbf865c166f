from pathlib import Path
from typing import Any, Optional

from eth_typing import ChecksumAddress

from bootstrapper.config import DeploymentConfig
from bootstrapper.constants import CACHE_DIRNAME, REPORT_FILENAME
from bootstrapper.dependency_map import DependencyMap
from bootstrapper.errors import ArtifactDeployFailed, DeploymentError, RunAborted, TransactionFailed
from bootstrapper.mtb import VerifierGenerator
from bootstrapper.nonce import NonceSequencer
from bootstrapper.report import ContractDeployment, Report
from bootstrapper.transactor import ContractSpec, Deployer, Receipt
from bootstrapper.utils import RootHasher


class DeploymentContext:
    """
    Everything a deployment step needs: the immutable config, the mutable report,
    the shared dependency map and nonce sequencer, and the external collaborators.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        report: Report,
        deployment_dir: Path,
        deployer: Deployer,
        generator: VerifierGenerator,
        nonces: NonceSequencer,
        root_hasher: Optional[RootHasher] = None,
    ):
        self.config = config
        self.report = report
        self.deployment_dir = deployment_dir
        self.deployer = deployer
        self.generator = generator
        self.nonces = nonces
        self.root_hasher = root_hasher
        self.dep_map = DependencyMap()
        self.aborted = False

    @classmethod
    async def create(
        cls,
        config: DeploymentConfig,
        deployment_dir: Path,
        deployer: Deployer,
        generator: VerifierGenerator,
        root_hasher: Optional[RootHasher] = None,
    ) -> "DeploymentContext":
        """Loads (or starts) the report and seeds the nonce sequencer from the chain."""
        report = Report.load_or_default(deployment_dir / REPORT_FILENAME, config)
        report.config = config

        chain_id = await deployer.get_chain_id()
        nonce = await deployer.get_transaction_count()
        print(
            f"Account: {deployer.address}",
            f"Chain ID: {chain_id}",
            f"Starting nonce: {nonce}",
            f"Deployment: {deployment_dir}",
            sep="\n",
        )
        return cls(
            config=config,
            report=report,
            deployment_dir=deployment_dir,
            deployer=deployer,
            generator=generator,
            nonces=NonceSequencer(nonce),
            root_hasher=root_hasher,
        )

    @property
    def report_filepath(self) -> Path:
        return self.deployment_dir / REPORT_FILENAME

    @property
    def cache_dir(self) -> Path:
        return self.deployment_dir / CACHE_DIRNAME

    def cache_path(self, name: str) -> Path:
        return self.cache_dir / name

    def abort(self) -> None:
        """Stops the run from handing out any further nonces."""
        self.aborted = True

    def next_nonce(self) -> int:
        if self.aborted:
            raise RunAborted("Run aborted after an earlier failure; nothing further is sent.")
        return self.nonces.next()

    async def deploy(self, contract: ContractSpec, *constructor_args: Any) -> ContractDeployment:
        try:
            # resolve or compile the artifact before a nonce is spent on it
            await self.deployer.prepare(contract)
            nonce = self.next_nonce()
            print(f"\nDeploying {contract} (nonce {nonce}).")
            deployment = await self.deployer.deploy(contract, constructor_args, nonce)
        except DeploymentError:
            raise
        except Exception as e:
            raise ArtifactDeployFailed(f"Deployment of {contract} failed: {e}") from e
        print(f"(i) Deployed {contract.name} at {deployment.address}.")
        return deployment

    async def transact(
        self, address: ChecksumAddress, contract: ContractSpec, function_name: str, *args: Any
    ) -> Receipt:
        data = self.deployer.encode(contract, function_name, *args)
        nonce = self.next_nonce()
        base_message = f"\nTransacting {contract.name}[{address[:10]}].{function_name}"
        if args:
            pretty_args = "\n\t".join(str(arg) for arg in args)
            print(f"{base_message} (nonce {nonce}) with arguments:\n\t{pretty_args}")
        else:
            print(f"{base_message} (nonce {nonce}) with no arguments")

        receipt = await self.deployer.submit(address, data, nonce)
        if not receipt.succeeded:
            raise TransactionFailed(
                f"{contract.name}.{function_name} at {address} failed "
                f"(tx {receipt.tx_hash}, status {receipt.status}).",
                tx_hash=receipt.tx_hash,
                status=receipt.status,
            )
        return receipt

    def checkpoint(self) -> Path:
        """Persists the whole report; the written file is always a complete snapshot."""
        return self.report.save(self.report_filepath)
