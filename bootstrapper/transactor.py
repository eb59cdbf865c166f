import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, NamedTuple, Optional, Sequence, Tuple

from eth_typing import ChecksumAddress

from bootstrapper.report import ContractDeployment

RECEIPT_STATUS_SUCCESS = 1


class LinkedLibrary(NamedTuple):
    """An already deployed library to link into a contract at deploy time."""

    path: str
    name: str
    address: ChecksumAddress

    def __str__(self) -> str:
        return f"{self.path}:{self.name}:{self.address}"


class ContractSpec(NamedTuple):
    """Identifies a contract to deploy: a project contract name or a generated source file."""

    name: str
    path: Optional[Path] = None
    libraries: Tuple[LinkedLibrary, ...] = ()
    verify: bool = True

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.path}:{self.name}"
        return self.name


class Receipt(NamedTuple):
    tx_hash: str
    status: int

    @property
    def succeeded(self) -> bool:
        return self.status == RECEIPT_STATUS_SUCCESS


class Transactor(ABC):
    """
    Represents a signing account on a connected chain.
    Every call that broadcasts takes an explicit nonce.
    """

    @property
    @abstractmethod
    def address(self) -> ChecksumAddress:
        raise NotImplementedError

    @abstractmethod
    async def get_chain_id(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_transaction_count(self) -> int:
        """Returns the number of transactions sent from the account (its next nonce)."""
        raise NotImplementedError

    @abstractmethod
    def encode(self, contract: ContractSpec, function_name: str, *args: Any) -> bytes:
        """Returns the calldata for a call to ``function_name`` of ``contract``."""
        raise NotImplementedError

    @abstractmethod
    async def submit(self, to: ChecksumAddress, data: bytes, nonce: int) -> Receipt:
        """Broadcasts a call and waits for its receipt."""
        raise NotImplementedError


class Deployer(Transactor):
    """A transactor that can also deploy contracts."""

    async def prepare(self, contract: ContractSpec) -> None:
        """Resolves (and if needed compiles) a contract ahead of its deployment."""
        return None

    @abstractmethod
    async def deploy(
        self, contract: ContractSpec, constructor_args: Sequence[Any], nonce: int
    ) -> ContractDeployment:
        """Deploys a contract and waits for it to be mined."""
        raise NotImplementedError


class SigningGuard:
    """
    Serializes signing for accounts that prompt for every signature.

    Concurrent stages sign from worker threads; without autosign each signature
    reads from the terminal, so only one may be in progress at a time.
    """

    def __init__(self, autosign: bool):
        self.autosign = autosign
        self._lock = threading.Lock()

    @contextmanager
    def signing(self) -> Iterator[None]:
        if self.autosign:
            yield
            return
        with self._lock:
            yield
