from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, NamedTuple, Optional, Tuple

from eth_typing import ChecksumAddress

from bootstrapper.config import DeploymentConfig
from bootstrapper.constants import LookupTableKind
from bootstrapper.errors import ConfigError
from bootstrapper.types import BatchSize, GroupId, TreeDepth
from bootstrapper.utils import _dump_yaml, _load_yaml, to_address, write_atomically

LEGACY_INSERTION_VERIFIERS_KEY = "verifiers"


class ContractDeployment(NamedTuple):
    """A single deployed contract."""

    address: ChecksumAddress
    tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"address": self.address}
        if self.tx_hash is not None:
            data["tx_hash"] = self.tx_hash
        return data

    @classmethod
    def from_dict(cls, data: Any, field_name: str) -> "ContractDeployment":
        if not isinstance(data, dict) or "address" not in data:
            raise ConfigError(f"Malformed deployment record at '{field_name}'.")
        return cls(
            address=to_address(data["address"], f"{field_name}.address"),
            tx_hash=data.get("tx_hash"),
        )


def _optional_deployment(data: Dict, key: str, path: str) -> Optional[ContractDeployment]:
    value = data.get(key)
    if value is None:
        return None
    return ContractDeployment.from_dict(value, f"{path}.{key}")


def _put_optional(data: Dict, key: str, deployment: Optional[ContractDeployment]) -> None:
    if deployment is not None:
        data[key] = deployment.to_dict()


def _mapping(data: Any, path: str) -> Dict:
    if data is None:
        return dict()
    if not isinstance(data, dict):
        raise ConfigError(f"Malformed report section '{path}': expected a mapping.")
    return data


def _int_key(key: Any, path: str) -> int:
    try:
        return int(key)
    except (TypeError, ValueError):
        raise ConfigError(f"Malformed key '{key}' at '{path}': expected an integer.")


#
# Verifiers
#

VerifierKey = Tuple[TreeDepth, BatchSize]


@dataclass
class Verifiers:
    verifiers: Dict[VerifierKey, ContractDeployment] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        entries = list()
        for tree_depth, batch_size in sorted(self.verifiers):
            deployment = self.verifiers[(tree_depth, batch_size)]
            entries.append(
                {
                    "tree_depth": tree_depth,
                    "batch_size": batch_size,
                    "deployment": deployment.to_dict(),
                }
            )
        return {"verifiers": entries}

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "Verifiers":
        data = _mapping(data, path)
        verifiers = dict()
        for index, entry in enumerate(data.get("verifiers") or list()):
            entry_path = f"{path}.verifiers[{index}]"
            try:
                key = (int(entry["tree_depth"]), int(entry["batch_size"]))
                deployment = ContractDeployment.from_dict(entry["deployment"], entry_path)
            except (KeyError, TypeError, ValueError):
                raise ConfigError(f"Malformed verifier record at '{entry_path}'.")
            verifiers[key] = deployment
        return cls(verifiers=verifiers)


class InsertionVerifiers(Verifiers):
    """Verifiers for insertion proofs, keyed by (tree depth, batch size)."""


class DeletionVerifiers(Verifiers):
    """Verifiers for deletion proofs, keyed by (tree depth, batch size)."""


#
# Lookup tables
#


@dataclass
class LookupTable:
    deployment: ContractDeployment
    entries: Dict[BatchSize, ChecksumAddress] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {"deployment": self.deployment.to_dict()}
        if self.entries:
            data["entries"] = {size: self.entries[size] for size in sorted(self.entries)}
        return data

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "LookupTable":
        data = _mapping(data, path)
        deployment = ContractDeployment.from_dict(data.get("deployment"), f"{path}.deployment")
        entries = dict()
        for batch_size, address in _mapping(data.get("entries"), f"{path}.entries").items():
            key = _int_key(batch_size, f"{path}.entries")
            entries[key] = to_address(address, f"{path}.entries.{batch_size}")
        return cls(deployment=deployment, entries=entries)


@dataclass
class GroupLookupTables:
    insert: Optional[LookupTable] = None
    update: Optional[LookupTable] = None
    delete: Optional[LookupTable] = None

    def get(self, kind: LookupTableKind) -> Optional[LookupTable]:
        return getattr(self, kind.value)

    def set(self, kind: LookupTableKind, table: LookupTable) -> None:
        setattr(self, kind.value, table)

    def to_dict(self) -> Dict[str, Any]:
        data = dict()
        for kind in LookupTableKind:
            table = self.get(kind)
            if table is not None:
                data[kind.value] = table.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "GroupLookupTables":
        data = _mapping(data, path)
        tables = cls()
        for kind in LookupTableKind:
            if data.get(kind.value) is not None:
                tables.set(kind, LookupTable.from_dict(data[kind.value], f"{path}.{kind.value}"))
        return tables


@dataclass
class LookupTables:
    groups: Dict[GroupId, GroupLookupTables] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"groups": {gid: self.groups[gid].to_dict() for gid in sorted(self.groups)}}

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "LookupTables":
        groups = dict()
        for group_id, group in _mapping(_mapping(data, path).get("groups"), path).items():
            key = _int_key(group_id, f"{path}.groups")
            groups[key] = GroupLookupTables.from_dict(group, f"{path}.groups.{group_id}")
        return cls(groups=groups)


#
# Semaphore verifier
#


@dataclass
class SemaphoreVerifierDeployment:
    pairing_deployment: Optional[ContractDeployment] = None
    verifier_deployment: Optional[ContractDeployment] = None

    @property
    def complete(self) -> bool:
        return self.pairing_deployment is not None and self.verifier_deployment is not None

    def to_dict(self) -> Dict[str, Any]:
        data = dict()
        _put_optional(data, "pairing_deployment", self.pairing_deployment)
        _put_optional(data, "verifier_deployment", self.verifier_deployment)
        return data

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "SemaphoreVerifierDeployment":
        data = _mapping(data, path)
        return cls(
            pairing_deployment=_optional_deployment(data, "pairing_deployment", path),
            verifier_deployment=_optional_deployment(data, "verifier_deployment", path),
        )


#
# Identity managers
#


class IdentityManagerState(Enum):
    ABSENT = "absent"
    V1_DEPLOYED = "v1"
    V2_UPGRADED = "v2"


@dataclass
class IdentityManagerDeployment:
    proxy_deployment: Optional[ContractDeployment] = None
    impl_v1_deployment: Optional[ContractDeployment] = None
    impl_v2_deployment: Optional[ContractDeployment] = None

    @property
    def state(self) -> IdentityManagerState:
        if self.proxy_deployment is None:
            # at most an orphaned implementation; the proxy still has to be deployed
            return IdentityManagerState.ABSENT
        if self.impl_v2_deployment is not None:
            return IdentityManagerState.V2_UPGRADED
        if self.impl_v1_deployment is not None:
            return IdentityManagerState.V1_DEPLOYED
        raise ConfigError(
            f"Invalid identity manager record: proxy {self.proxy_deployment.address} "
            "has no recorded implementation."
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict()
        _put_optional(data, "impl_v1_deployment", self.impl_v1_deployment)
        _put_optional(data, "impl_v2_deployment", self.impl_v2_deployment)
        _put_optional(data, "proxy_deployment", self.proxy_deployment)
        return data

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "IdentityManagerDeployment":
        data = _mapping(data, path)
        return cls(
            proxy_deployment=_optional_deployment(data, "proxy_deployment", path),
            impl_v1_deployment=_optional_deployment(data, "impl_v1_deployment", path),
            impl_v2_deployment=_optional_deployment(data, "impl_v2_deployment", path),
        )


@dataclass
class IdentityManagers:
    groups: Dict[GroupId, IdentityManagerDeployment] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"groups": {gid: self.groups[gid].to_dict() for gid in sorted(self.groups)}}

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "IdentityManagers":
        groups = dict()
        for group_id, group in _mapping(_mapping(data, path).get("groups"), path).items():
            key = _int_key(group_id, f"{path}.groups")
            groups[key] = IdentityManagerDeployment.from_dict(group, f"{path}.groups.{group_id}")
        return cls(groups=groups)


#
# Router
#


@dataclass
class RouterDeployment:
    impl_v1_deployment: Optional[ContractDeployment] = None
    proxy_deployment: Optional[ContractDeployment] = None
    entries: Dict[GroupId, ChecksumAddress] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = dict()
        _put_optional(data, "impl_v1_deployment", self.impl_v1_deployment)
        _put_optional(data, "proxy_deployment", self.proxy_deployment)
        data["entries"] = {gid: self.entries[gid] for gid in sorted(self.entries)}
        return data

    @classmethod
    def from_dict(cls, data: Any, path: str) -> "RouterDeployment":
        data = _mapping(data, path)
        entries = dict()
        for group_id, address in _mapping(data.get("entries"), f"{path}.entries").items():
            key = _int_key(group_id, f"{path}.entries")
            entries[key] = to_address(address, f"{path}.entries.{group_id}")
        return cls(
            impl_v1_deployment=_optional_deployment(data, "impl_v1_deployment", path),
            proxy_deployment=_optional_deployment(data, "proxy_deployment", path),
            entries=entries,
        )


#
# Report
#


@dataclass
class Report:
    """
    The persisted record of what has actually been deployed.
    Mirrors the config's shape plus deployed addresses; every section is optional.
    """

    config: DeploymentConfig
    insertion_verifiers: Optional[InsertionVerifiers] = None
    deletion_verifiers: Optional[DeletionVerifiers] = None
    lookup_tables: Optional[LookupTables] = None
    semaphore_verifier: Optional[SemaphoreVerifierDeployment] = None
    identity_managers: Optional[IdentityManagers] = None
    world_id_router: Optional[RouterDeployment] = None

    @classmethod
    def default_with_config(cls, config: DeploymentConfig) -> "Report":
        return cls(config=config)

    def invalidate_group(self, group_id: GroupId) -> None:
        """Forgets a group's lookup tables and identity manager so they get redeployed."""
        if self.lookup_tables is not None:
            self.lookup_tables.groups.pop(group_id, None)
        if self.identity_managers is not None:
            self.identity_managers.groups.pop(group_id, None)

    def to_dict(self) -> Dict[str, Any]:
        data = {"config": self.config.to_dict()}
        sections = (
            ("insertion_verifiers", self.insertion_verifiers),
            ("deletion_verifiers", self.deletion_verifiers),
            ("lookup_tables", self.lookup_tables),
            ("semaphore_verifier", self.semaphore_verifier),
            ("identity_managers", self.identity_managers),
            ("world_id_router", self.world_id_router),
        )
        for name, section in sections:
            if section is not None:
                data[name] = section.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Report":
        data = _mapping(data, "report")
        if "config" not in data:
            raise ConfigError("Malformed report: missing 'config' section.")

        insertion_verifiers = data.get("insertion_verifiers")
        if insertion_verifiers is None:
            insertion_verifiers = data.get(LEGACY_INSERTION_VERIFIERS_KEY)

        def section(value, section_cls, path):
            return None if value is None else section_cls.from_dict(value, path)

        return cls(
            config=DeploymentConfig.from_dict(data["config"]),
            insertion_verifiers=section(
                insertion_verifiers, InsertionVerifiers, "insertion_verifiers"
            ),
            deletion_verifiers=section(
                data.get("deletion_verifiers"), DeletionVerifiers, "deletion_verifiers"
            ),
            lookup_tables=section(data.get("lookup_tables"), LookupTables, "lookup_tables"),
            semaphore_verifier=section(
                data.get("semaphore_verifier"), SemaphoreVerifierDeployment, "semaphore_verifier"
            ),
            identity_managers=section(
                data.get("identity_managers"), IdentityManagers, "identity_managers"
            ),
            world_id_router=section(data.get("world_id_router"), RouterDeployment, "world_id_router"),
        )

    @classmethod
    def load(cls, filepath: Path) -> "Report":
        try:
            data = _load_yaml(filepath)
        except Exception as e:
            raise ConfigError(f"Could not read report at {filepath}: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load_or_default(cls, filepath: Path, config: DeploymentConfig) -> "Report":
        if filepath.exists():
            print(f"(i) Resuming from existing report at {filepath}.")
            return cls.load(filepath)
        print(f"(i) No report found at {filepath}; starting a new deployment.")
        return cls.default_with_config(config)

    def save(self, filepath: Path) -> Path:
        return write_atomically(filepath, _dump_yaml(self.to_dict()))


def normalize_report(filepath: Path) -> None:
    """Rewrites a potentially non-standard report file in canonical form."""
    try:
        report = Report.load(filepath)
    except Exception:
        print(f"Error when reading report at {filepath}.")
        raise
    report.save(filepath)
    print(f"Successfully normalized report at {filepath}.")
