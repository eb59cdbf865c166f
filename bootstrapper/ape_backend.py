import asyncio
import os
from typing import Any, Dict, List, Sequence

from ape import compilers, networks, project
from ape.api import AccountAPI
from ape.contracts.base import ContractContainer
from ape.exceptions import ApeException, TransactionError
from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address, to_hex
from ethpm_types import MethodABI
from hexbytes import HexBytes
from web3.auto import w3

from bootstrapper.constants import LOCAL_NETWORKS
from bootstrapper.errors import ArtifactDeployFailed, ChainError, TransactionFailed
from bootstrapper.report import ContractDeployment
from bootstrapper.transactor import ContractSpec, Deployer, Receipt, SigningGuard


def is_local_network() -> bool:
    return networks.provider.network.name in LOCAL_NETWORKS


def check_etherscan_plugin() -> None:
    """
    Checks that the ape-etherscan plugin is installed and that
    the appropriate API key environment variable is set.
    """
    if is_local_network():
        # unnecessary for local deployment
        return
    try:
        from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
    except ImportError:
        raise ImportError("Please install the ape-etherscan plugin to verify contracts.")
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    api_key = os.environ.get(explorer_envvar)
    if not api_key:
        raise ValueError(f"{explorer_envvar} is not set.")


def check_infura_plugin() -> None:
    """Checks that the ape-infura plugin is installed."""
    if is_local_network():
        return  # unnecessary for local deployment
    if networks.provider.name != "infura":
        return  # unnecessary when using a provider different than infura
    try:
        import ape_infura  # noqa: F401
        from ape_infura.provider import _ENVIRONMENT_VARIABLE_NAMES
    except ImportError:
        raise ImportError("Please install the ape-infura plugin to use this script.")
    for envvar in _ENVIRONMENT_VARIABLE_NAMES:
        if os.environ.get(envvar):
            break
    else:
        raise ValueError(
            f"No Infura API key found in "
            f"environment variables: {', '.join(_ENVIRONMENT_VARIABLE_NAMES)}"
        )


def check_plugins(verify: bool = False) -> None:
    print("Checking plugins...")
    if verify:
        check_etherscan_plugin()
    check_infura_plugin()


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            return getattr(dependency_api, contract)
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)
    return contract_container


def _select_method_abi(method_abis: List[MethodABI], args: Sequence[Any]) -> MethodABI:
    """Picks the overload of a method whose inputs accept the given arguments."""
    if len(method_abis) == 0:
        raise ValueError("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        if all(w3.is_encodable(abi_input.type, arg) for arg, abi_input in zip(args, abi.inputs)):
            return abi
    raise ValueError(
        f"Could not find ABI for '{method_abis[0].name}' with {len(args)} arg(s) and given type(s)"
    )


def _hex(value: Any) -> str:
    if isinstance(value, str):
        return value
    return to_hex(HexBytes(value))


class ApeDeployer(Deployer):
    """
    Represents an ape account plus contract resolution for the deployment steps.
    Blocking provider calls run in worker threads so that independent steps
    can wait on the chain concurrently.
    """

    def __init__(self, account: AccountAPI, verify: bool = False, autosign: bool = False):
        self._account = account
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self._account.set_autosign(autosign)
        self._guard = SigningGuard(autosign)
        self.verify = verify
        self._containers: Dict[ContractSpec, ContractContainer] = dict()

    @property
    def address(self) -> ChecksumAddress:
        return to_checksum_address(self._account.address)

    async def get_chain_id(self) -> int:
        try:
            return await asyncio.to_thread(lambda: networks.provider.chain_id)
        except ApeException as e:
            raise ChainError(f"Could not fetch chain id: {e}") from e

    async def get_transaction_count(self) -> int:
        try:
            return await asyncio.to_thread(lambda: self._account.nonce)
        except ApeException as e:
            raise ChainError(f"Could not fetch nonce for {self.address}: {e}") from e

    def get_contract_container(self, contract: ContractSpec) -> ContractContainer:
        container = self._containers.get(contract)
        if container is not None:
            return container

        for library in contract.libraries:
            library_container = get_contract_container(library.name)
            compilers.solidity.add_library(library_container.at(library.address))

        if contract.path is not None:
            source = contract.path.read_text()
            container = compilers.compile_source("solidity", source, contractName=contract.name)
        else:
            container = get_contract_container(contract.name)
        self._containers[contract] = container
        return container

    def encode(self, contract: ContractSpec, function_name: str, *args: Any) -> bytes:
        container = self.get_contract_container(contract)
        method_abis = [
            abi for abi in container.contract_type.methods if abi.name == function_name
        ]
        if not method_abis:
            raise ValueError(f"{contract.name} has no method '{function_name}'.")
        abi = _select_method_abi(method_abis, args)
        ecosystem = networks.provider.network.ecosystem
        return bytes(ecosystem.get_method_selector(abi) + ecosystem.encode_calldata(abi, *args))

    async def prepare(self, contract: ContractSpec) -> None:
        try:
            await asyncio.to_thread(self.get_contract_container, contract)
        except ApeException as e:
            raise ArtifactDeployFailed(f"Could not resolve {contract}: {e}") from e

    async def deploy(
        self, contract: ContractSpec, constructor_args: Sequence[Any], nonce: int
    ) -> ContractDeployment:
        publish = self.verify and contract.verify and not is_local_network()
        container = self.get_contract_container(contract)

        def _deploy():
            with self._guard.signing():
                return self._account.deploy(
                    container, *constructor_args, nonce=nonce, publish=publish
                )

        try:
            instance = await asyncio.to_thread(_deploy)
        except ApeException as e:
            raise ArtifactDeployFailed(f"Deployment of {contract} failed: {e}") from e
        return ContractDeployment(
            address=to_checksum_address(instance.address),
            tx_hash=_hex(instance.receipt.txn_hash),
        )

    async def submit(self, to: ChecksumAddress, data: bytes, nonce: int) -> Receipt:
        def _submit():
            transaction = networks.provider.network.ecosystem.create_transaction(
                receiver=to, data=data, nonce=nonce, sender=self._account.address
            )
            with self._guard.signing():
                return self._account.call(transaction)

        try:
            receipt = await asyncio.to_thread(_submit)
        except TransactionError as e:
            raise TransactionFailed(f"Transaction to {to} failed: {e}") from e
        except ApeException as e:
            raise ChainError(f"Could not submit transaction to {to}: {e}") from e
        return Receipt(tx_hash=_hex(receipt.txn_hash), status=int(receipt.status))
