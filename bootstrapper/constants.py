from enum import Enum
from pathlib import Path
from typing import Optional

import bootstrapper

#
# Filesystem
#

BOOTSTRAPPER_DIR = Path(bootstrapper.__file__).parent
DEPLOYMENTS_DIR = BOOTSTRAPPER_DIR / "deployments"

REPORT_FILENAME = "report.yml"
CACHE_DIRNAME = ".cache"
KEYS_DIRNAME = "keys"
VERIFIER_CONTRACTS_DIRNAME = "verifier_contracts"

#
# Prover modes and lookup tables
#


class ProverMode(Enum):
    INSERTION = "insertion"
    DELETION = "deletion"


class LookupTableKind(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def prover_mode(self) -> Optional[ProverMode]:
        """The verifier mode whose contracts are registered in this table, if any."""
        return _LOOKUP_TABLE_MODES[self]


_LOOKUP_TABLE_MODES = {
    LookupTableKind.INSERT: ProverMode.INSERTION,
    LookupTableKind.UPDATE: None,
    LookupTableKind.DELETE: ProverMode.DELETION,
}

#
# Contracts
#

VERIFIER = "Verifier"
VERIFIER_LOOKUP_TABLE = "VerifierLookupTable"
PAIRING = "Pairing"
PAIRING_SOURCE = "lib/semaphore/packages/contracts/contracts/base/Pairing.sol"
SEMAPHORE_VERIFIER = "SemaphoreVerifier"
IDENTITY_MANAGER = "WorldIDIdentityManager"
IDENTITY_MANAGER_IMPL_V1 = "WorldIDIdentityManagerImplV1"
IDENTITY_MANAGER_IMPL_V2 = "WorldIDIdentityManagerImplV2"
ROUTER = "WorldIDRouter"
ROUTER_IMPL_V1 = "WorldIDRouterImplV1"

# The router is initialized with this group's identity manager
ROUTER_BOOTSTRAP_GROUP = 0

#
# semaphore-mtb
#

MTB_BIN = "mtb"
MTB_RELEASES_URL = "https://github.com/worldcoin/semaphore-mtb/releases/download"
MTB_VERSION = "1.2.1"

#
# Networks
#

LOCAL_NETWORKS = ["local"]

ZERO_BYTES32 = "0x" + "00" * 32
