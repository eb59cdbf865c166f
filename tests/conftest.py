import asyncio
from pathlib import Path

import pytest
import yaml
from eth_utils import to_checksum_address

from bootstrapper.config import DeploymentConfig
from bootstrapper.context import DeploymentContext
from bootstrapper.errors import ArtifactGenerationFailed
from bootstrapper.mtb import VerifierGenerator
from bootstrapper.nonce import NonceSequencer
from bootstrapper.report import ContractDeployment, Report
from bootstrapper.transactor import Deployer, Receipt

DEPLOYER_ADDRESS = to_checksum_address("0x" + "de" * 20)
CHAIN_ID = 1337

ROOT_0 = "0x" + "01" * 32
ROOT_1 = "0x" + "02" * 32

GROUPS = {
    0: {
        "tree_depth": 16,
        "insertion_batch_sizes": [1, 10],
        "deletion_batch_sizes": [10],
        "initial_root": ROOT_0,
    },
    1: {
        "tree_depth": 16,
        "insertion_batch_sizes": [10],
        "deletion_batch_sizes": [10],
        "initial_root": ROOT_1,
    },
}


def address(n: int) -> str:
    return to_checksum_address(f"0x{n:040x}")


class FakeDeployer(Deployer):
    """Records deployments and calls instead of talking to a chain."""

    def __init__(self, start_nonce=0, fail_deploy=(), revert_calls=()):
        self.start_nonce = start_nonce
        self.fail_deploy = set(fail_deploy)
        self.revert_calls = set(revert_calls)
        self.deployments = list()
        self.transactions = list()
        # (event, name, nonce) in the order actions start or fail
        self.events = list()
        self.prepared = list()
        self._encoded = dict()
        self._counter = 0

    @property
    def address(self):
        return DEPLOYER_ADDRESS

    @property
    def nonces(self):
        used = [d["nonce"] for d in self.deployments] + [t["nonce"] for t in self.transactions]
        return sorted(used)

    @property
    def deployed_names(self):
        return [d["contract"].name for d in self.deployments]

    @property
    def called_functions(self):
        return [(t["function"], t["args"]) for t in self.transactions]

    async def get_chain_id(self):
        return CHAIN_ID

    async def get_transaction_count(self):
        return self.start_nonce

    def encode(self, contract, function_name, *args):
        data = f"{contract.name}.{function_name}#{len(self._encoded)}".encode()
        self._encoded[data] = (contract.name, function_name, args)
        return data

    def decode(self, data):
        return self._encoded[data]

    async def prepare(self, contract):
        self.prepared.append(contract.name)

    async def deploy(self, contract, constructor_args, nonce):
        self.events.append(("deploy", contract.name, nonce))
        await asyncio.sleep(0)
        if contract.name in self.fail_deploy:
            self.events.append(("failed", contract.name, nonce))
            raise RuntimeError(f"{contract.name} reverted")
        self._counter += 1
        deployment = ContractDeployment(
            address=address(0xC0DE0000 + self._counter), tx_hash=f"0x{self._counter:064x}"
        )
        self.deployments.append(
            {
                "contract": contract,
                "args": tuple(constructor_args),
                "nonce": nonce,
                "address": deployment.address,
            }
        )
        return deployment

    async def submit(self, to, data, nonce):
        contract_name, function_name, args = self._encoded[data]
        self.events.append(("submit", function_name, nonce))
        await asyncio.sleep(0)
        self.transactions.append(
            {
                "to": to,
                "contract": contract_name,
                "function": function_name,
                "args": args,
                "nonce": nonce,
            }
        )
        status = 0 if function_name in self.revert_calls else 1
        return Receipt(tx_hash=f"0x{len(self.transactions):064x}", status=status)


class FakeGenerator(VerifierGenerator):
    def __init__(self, directory: Path, fail=False):
        self.directory = directory
        self.fail = fail
        self.calls = list()

    async def generate(self, tree_depth, batch_size, mode):
        await asyncio.sleep(0)
        self.calls.append((tree_depth, batch_size, mode))
        if self.fail:
            raise ArtifactGenerationFailed("mtb setup failed")
        return self.directory / f"{mode.value}_{tree_depth}_{batch_size}.sol"


@pytest.fixture
def groups():
    return {group_id: dict(group) for group_id, group in GROUPS.items()}


@pytest.fixture
def config(groups):
    return DeploymentConfig.from_dict({"groups": groups})


@pytest.fixture
def deployer():
    return FakeDeployer()


@pytest.fixture
def generator(tmp_path):
    return FakeGenerator(tmp_path)


@pytest.fixture
def make_context(tmp_path, deployer, generator):
    def _make_context(config, report=None, root_hasher=None):
        return DeploymentContext(
            config=config,
            report=report or Report.default_with_config(config),
            deployment_dir=tmp_path / "deployment",
            deployer=deployer,
            generator=generator,
            nonces=NonceSequencer(deployer.start_nonce),
            root_hasher=root_hasher,
        )

    return _make_context


@pytest.fixture
def context(make_context, config):
    return make_context(config)


@pytest.fixture
def make_deployer():
    return FakeDeployer


@pytest.fixture
def config_file(tmp_path, groups):
    filepath = tmp_path / "config.yml"
    filepath.write_text(yaml.safe_dump({"groups": groups}))
    return filepath
