import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from eth_utils import is_hex, remove_0x_prefix, to_checksum_address

from bootstrapper.constants import ZERO_BYTES32
from bootstrapper.errors import ConfigError

# (tree depth, leaf) -> root of the empty tree
RootHasher = Callable[[int, str], str]


def _load_yaml(filepath: Path) -> dict:
    """Loads a YAML file."""
    with open(filepath, "r") as file:
        return yaml.safe_load(file)


def _dump_yaml(data: Any) -> str:
    return yaml.safe_dump(data, sort_keys=True, default_flow_style=False)


def write_atomically(filepath: Path, contents: str) -> Path:
    """
    Writes contents to a temporary sibling file and moves it over filepath,
    so readers only ever see the old or the new contents.
    """
    filepath.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w") as file:
            file.write(contents)
            file.flush()
            os.fsync(file.fileno())
        os.replace(temp_name, filepath)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
    return filepath


def to_bytes32_hex(value: Any, field: str) -> str:
    """Validates and normalizes a 32-byte hex value to a lowercase 0x-prefixed string."""
    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0 or value >= 2**256:
            raise ConfigError(f"{field} is out of range for a 32-byte value.")
        return "0x" + value.to_bytes(32, "big").hex()
    if not isinstance(value, str) or not is_hex(value):
        raise ConfigError(f"{field} must be a hex string, got {value!r}.")
    digits = remove_0x_prefix(value)
    if len(digits) > 64:
        raise ConfigError(f"{field} is longer than 32 bytes.")
    return "0x" + digits.lower().rjust(64, "0")


def to_address(value: Any, field: str) -> str:
    try:
        return to_checksum_address(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{field} is not a valid address: {value!r}.")


def initial_root(
    tree_depth: int,
    initial_leaf_value: str = ZERO_BYTES32,
    override: Optional[str] = None,
    root_hasher: Optional[RootHasher] = None,
) -> int:
    """
    Returns the initial root for a group's tree as an integer.
    An explicit override always wins; otherwise the root of an empty tree is
    computed with the injected Poseidon hasher.
    """
    if override is not None:
        return int(override, 16)
    if root_hasher is None:
        raise ConfigError(
            f"No initial_root set for tree depth {tree_depth} and no root hasher available; "
            "set initial_root explicitly in the group config."
        )
    return int(to_bytes32_hex(root_hasher(tree_depth, initial_leaf_value), "initial_root"), 16)
