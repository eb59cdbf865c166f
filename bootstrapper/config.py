from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from bootstrapper.constants import ROUTER_BOOTSTRAP_GROUP, ZERO_BYTES32, ProverMode
from bootstrapper.errors import ConfigError
from bootstrapper.types import BatchSize, GroupId, TreeDepth
from bootstrapper.utils import _load_yaml, to_bytes32_hex

LEGACY_INSERTION_BATCH_SIZES_KEY = "batch_sizes"


class GroupConfig(NamedTuple):
    tree_depth: TreeDepth
    insertion_batch_sizes: Tuple[BatchSize, ...] = ()
    deletion_batch_sizes: Tuple[BatchSize, ...] = ()
    initial_root: Optional[str] = None

    def batch_sizes(self, mode: ProverMode) -> Tuple[BatchSize, ...]:
        if mode is ProverMode.INSERTION:
            return self.insertion_batch_sizes
        return self.deletion_batch_sizes

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "tree_depth": self.tree_depth,
            "insertion_batch_sizes": list(self.insertion_batch_sizes),
            "deletion_batch_sizes": list(self.deletion_batch_sizes),
        }
        if self.initial_root is not None:
            data["initial_root"] = self.initial_root
        return data


class DeploymentConfig(NamedTuple):
    """The declarative desired state. Loaded once per run and never mutated."""

    groups: "OrderedDict[GroupId, GroupConfig]"
    initial_leaf_value: str = ZERO_BYTES32

    @property
    def group_ids(self) -> List[GroupId]:
        return sorted(self.groups)

    def unique_tree_depths_and_batch_sizes(
        self, mode: ProverMode
    ) -> List[Tuple[TreeDepth, BatchSize]]:
        """Returns the sorted (tree depth, batch size) pairs needed by any group for a mode."""
        result = set()
        for group in self.groups.values():
            for batch_size in group.batch_sizes(mode):
                result.add((group.tree_depth, batch_size))
        return sorted(result)

    @property
    def has_bootstrap_group(self) -> bool:
        return ROUTER_BOOTSTRAP_GROUP in self.groups

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": {group_id: self.groups[group_id].to_dict() for group_id in self.group_ids},
            "misc": {"initial_leaf_value": self.initial_leaf_value},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "DeploymentConfig":
        if not isinstance(data, dict):
            raise ConfigError("Malformed deployment config: expected a mapping.")

        raw_groups = data.get("groups")
        if not raw_groups:
            raise ConfigError("Deployment config missing 'groups' field.")
        if not isinstance(raw_groups, dict):
            raise ConfigError("Deployment config 'groups' must be a mapping of group id to group.")

        groups = OrderedDict()
        for raw_group_id in sorted(raw_groups, key=str):
            group_id = _parse_group_id(raw_group_id)
            if group_id in groups:
                raise ConfigError(f"Group {group_id} is declared more than once.")
            groups[group_id] = _parse_group(group_id, raw_groups[raw_group_id])
        groups = OrderedDict(sorted(groups.items()))

        misc = data.get("misc") or dict()
        if not isinstance(misc, dict):
            raise ConfigError("Deployment config 'misc' must be a mapping.")
        initial_leaf_value = to_bytes32_hex(
            misc.get("initial_leaf_value", ZERO_BYTES32), "misc.initial_leaf_value"
        )

        return cls(groups=groups, initial_leaf_value=initial_leaf_value)

    @classmethod
    def from_yaml(cls, filepath: Path) -> "DeploymentConfig":
        try:
            data = _load_yaml(filepath)
        except FileNotFoundError:
            raise ConfigError(f"No deployment config found at {filepath}.")
        except Exception as e:
            raise ConfigError(f"Could not parse deployment config at {filepath}: {e}") from e
        return cls.from_dict(data)


def _parse_group_id(value: Any) -> GroupId:
    try:
        group_id = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Group id {value!r} is not an integer.")
    if group_id < 0:
        raise ConfigError(f"Group id {group_id} must not be negative.")
    return group_id


def _parse_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{field} must be a positive integer, got {value!r}.")
    return value


def _parse_batch_sizes(values: Any, field: str) -> Tuple[BatchSize, ...]:
    if values is None:
        return tuple()
    if not isinstance(values, list):
        raise ConfigError(f"{field} must be a list of batch sizes.")
    batch_sizes = [_parse_positive_int(value, field) for value in values]
    if len(set(batch_sizes)) != len(batch_sizes):
        raise ConfigError(f"{field} contains duplicate batch sizes: {batch_sizes}.")
    return tuple(sorted(batch_sizes))


def _parse_group(group_id: GroupId, data: Any) -> GroupConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"Malformed config for group {group_id}.")

    tree_depth = _parse_positive_int(data.get("tree_depth"), f"groups.{group_id}.tree_depth")

    insertion_batch_sizes = data.get("insertion_batch_sizes")
    if insertion_batch_sizes is None:
        insertion_batch_sizes = data.get(LEGACY_INSERTION_BATCH_SIZES_KEY)

    initial_root = data.get("initial_root")
    if initial_root is not None:
        initial_root = to_bytes32_hex(initial_root, f"groups.{group_id}.initial_root")

    return GroupConfig(
        tree_depth=tree_depth,
        insertion_batch_sizes=_parse_batch_sizes(
            insertion_batch_sizes, f"groups.{group_id}.insertion_batch_sizes"
        ),
        deletion_batch_sizes=_parse_batch_sizes(
            data.get("deletion_batch_sizes"), f"groups.{group_id}.deletion_batch_sizes"
        ),
        initial_root=initial_root,
    )
