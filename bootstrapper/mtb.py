import asyncio
import os
import platform
import stat
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import requests

from bootstrapper.constants import (
    KEYS_DIRNAME,
    MTB_BIN,
    MTB_RELEASES_URL,
    MTB_VERSION,
    VERIFIER_CONTRACTS_DIRNAME,
    ProverMode,
)
from bootstrapper.errors import ArtifactGenerationFailed
from bootstrapper.types import BatchSize, TreeDepth

DOWNLOAD_TIMEOUT = 300  # seconds

_OPERATING_SYSTEMS = {"Linux": "linux", "Darwin": "darwin", "Windows": "windows"}
_ARCHITECTURES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


class VerifierGenerator(ABC):
    """Produces the Solidity source of a verifier for one (tree depth, batch size, mode)."""

    @abstractmethod
    async def generate(self, tree_depth: TreeDepth, batch_size: BatchSize, mode: ProverMode) -> Path:
        raise NotImplementedError


def keys_filename(tree_depth: TreeDepth, batch_size: BatchSize, mode: ProverMode) -> str:
    return f"keys_{mode.value}_{tree_depth}_{batch_size}"


def verifier_contract_filename(tree_depth: TreeDepth, batch_size: BatchSize, mode: ProverMode) -> str:
    return f"{mode.value}_{tree_depth}_{batch_size}.sol"


def mtb_download_url(system: Optional[str] = None, machine: Optional[str] = None) -> str:
    """Returns the release URL of the mtb binary for this (or the given) platform."""
    system = system or platform.system()
    machine = (machine or platform.machine()).lower()

    os_name = _OPERATING_SYSTEMS.get(system)
    if os_name is None:
        raise ArtifactGenerationFailed(f"Unsupported os type: {system}")
    if machine in ("x86", "i386", "i686"):
        raise ArtifactGenerationFailed(
            f"32 bit architectures are not supported, got: {machine}"
        )
    arch = _ARCHITECTURES.get(machine)
    if arch is None:
        raise ArtifactGenerationFailed(f"Unsupported architecture: {machine}")

    return f"{MTB_RELEASES_URL}/{MTB_VERSION}/mtb-{os_name}-{arch}"


def download_mtb_binary(destination: Path, url: Optional[str] = None) -> Path:
    """Downloads the mtb binary to destination (if not already there) and makes it executable."""
    if destination.exists():
        return destination

    url = url or mtb_download_url()
    print(f"(i) Downloading semaphore-mtb from {url}")
    try:
        response = requests.get(url, timeout=DOWNLOAD_TIMEOUT)
    except requests.RequestException as e:
        raise ArtifactGenerationFailed(f"Failed to download mtb binary: {e}") from e
    if not response.ok:
        raise ArtifactGenerationFailed(
            f"Failed to download mtb binary: {response.status_code} - {response.text}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_destination = destination.with_suffix(".download")
    temp_destination.write_bytes(response.content)
    mode = temp_destination.stat().st_mode
    temp_destination.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    os.replace(temp_destination, destination)
    return destination


class MtbGenerator(VerifierGenerator):
    """
    Generates verifier contracts with the semaphore-mtb binary.

    Keys files and verifier sources are cached under the deployment cache and
    reused across runs; the binary itself is downloaded on first use.
    """

    def __init__(self, cache_dir: Path, binary: Optional[Path] = None):
        self.cache_dir = cache_dir
        self.binary = binary or cache_dir / MTB_BIN
        self.keys_dir = cache_dir / KEYS_DIRNAME
        self.verifier_contracts_dir = cache_dir / VERIFIER_CONTRACTS_DIRNAME
        self._binary_lock = asyncio.Lock()

    async def ensure_binary(self) -> Path:
        async with self._binary_lock:
            if not self.binary.exists():
                await asyncio.to_thread(download_mtb_binary, self.binary)
        return self.binary

    async def _run(self, command: str, *args: str, output: Path) -> Path:
        """Runs an mtb subcommand writing to a temporary path, then moves the result into place."""
        temp_output = output.with_name(output.name + ".partial")
        try:
            process = await asyncio.create_subprocess_exec(
                str(self.binary),
                command,
                *args,
                "--output",
                str(temp_output),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ArtifactGenerationFailed(f"Could not run {self.binary}: {e}") from e

        _, stderr = await process.communicate()
        if process.returncode != 0:
            temp_output.unlink(missing_ok=True)
            error = stderr.decode(errors="replace").strip()
            raise ArtifactGenerationFailed(
                f"mtb {command} failed with exit code {process.returncode}: {error}"
            )
        if not temp_output.exists():
            raise ArtifactGenerationFailed(f"mtb {command} did not produce {temp_output}")

        os.replace(temp_output, output)
        return output

    async def generate_keys(
        self, tree_depth: TreeDepth, batch_size: BatchSize, mode: ProverMode
    ) -> Path:
        keys_file = self.keys_dir / keys_filename(tree_depth, batch_size, mode)
        if keys_file.exists():
            return keys_file

        self.keys_dir.mkdir(parents=True, exist_ok=True)
        print(f"(i) Generating {mode.value} keys for tree depth {tree_depth}, batch size {batch_size}")
        return await self._run(
            "setup",
            "--tree-depth",
            str(tree_depth),
            "--batch-size",
            str(batch_size),
            "--mode",
            mode.value,
            output=keys_file,
        )

    async def export_verifier(
        self, keys_file: Path, tree_depth: TreeDepth, batch_size: BatchSize, mode: ProverMode
    ) -> Path:
        filename = verifier_contract_filename(tree_depth, batch_size, mode)
        verifier_contract = self.verifier_contracts_dir / filename
        if verifier_contract.exists():
            return verifier_contract

        self.verifier_contracts_dir.mkdir(parents=True, exist_ok=True)
        return await self._run("export-solidity", "--keys-file", str(keys_file), output=verifier_contract)

    async def generate(self, tree_depth: TreeDepth, batch_size: BatchSize, mode: ProverMode) -> Path:
        await self.ensure_binary()
        keys_file = await self.generate_keys(tree_depth, batch_size, mode)
        return await self.export_verifier(keys_file, tree_depth, batch_size, mode)
