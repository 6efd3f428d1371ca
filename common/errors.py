from typing import Sequence


class DeploymentError(Exception):
    """Base class for every failure raised while building a deployment graph."""


class InvalidPolicy(DeploymentError):
    """Credential generation policy cannot produce a password."""


class InsufficientAddressSpace(DeploymentError):
    """Address space cannot hold the requested zone/visibility subnets."""


class InvalidAddressSpace(DeploymentError):
    """Address space is not a valid IPv4 CIDR block."""


class InvalidAccessRule(DeploymentError):
    """Inbound rule has an out of range port or unknown protocol."""


class ForeignNetworkReference(InvalidAccessRule):
    """Network-scoped selector points at a network other than the policy's."""


class UnsafeDatabaseExposure(DeploymentError):
    """Database port is not restricted to the database's own network."""


class InvalidEngine(DeploymentError):
    """Database engine or version cannot be resolved."""


class InvalidDatabaseName(DeploymentError):
    pass


class InvalidBackupRetention(DeploymentError):
    pass


class InvalidKeyReference(DeploymentError):
    pass


class InvalidInstanceType(DeploymentError):
    pass


class InvalidSubnetPlacement(DeploymentError):
    pass


class UnresolvedAvailabilityZones(DeploymentError):
    """More zones requested than CDK can place without a concrete environment."""


class DanglingReference(DeploymentError):
    """A reference does not resolve within the same graph."""


class CyclicGraph(DeploymentError):
    pass


class GraphValidationError(DeploymentError):
    """Aggregate of every invariant violated while building a graph."""

    def __init__(self, errors: Sequence[DeploymentError]) -> None:
        self.errors = list(errors)
        lines = [f"{len(self.errors)} deployment graph invariant(s) violated:"]
        lines.extend(
            f"  - {type(error).__name__}: {error}" for error in self.errors
        )
        super().__init__("\n".join(lines))

    def kinds(self) -> list[type]:
        return [type(error) for error in self.errors]
