from typing import Optional


class DeploymentError(Exception):
    """Base class for all errors that abort a deployment run."""


class ConfigError(DeploymentError, ValueError):
    """Raised when the declarative config (or a report) is malformed or incomplete."""


class MissingDependency(DeploymentError):
    """Raised when a predecessor output is absent from both the report and the current run."""


class ArtifactGenerationFailed(DeploymentError):
    """Raised when the verifier-artifact generator fails."""


class ArtifactDeployFailed(DeploymentError):
    """Raised when a contract deployment fails."""


class ChainError(DeploymentError):
    """Raised on RPC/provider failures (chain id, nonce, broadcasting)."""


class TransactionFailed(DeploymentError):
    """Raised when a transaction receipt reports failure."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
        self.status = status


class RunAborted(DeploymentError):
    """Raised by any action attempted after another stage of the same run has failed."""
