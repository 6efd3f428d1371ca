from enum import Enum

from attrs import define, field
from attrs.validators import instance_of, min_len


class ResourceKind(str, Enum):
    SECRET = "secret"
    NETWORK = "network"
    ACCESS_POLICY = "access_policy"
    DATABASE = "database"
    COMPUTE = "compute"


# CloudFormation resource type each record is submitted as
RESOURCE_TYPES = {
    ResourceKind.SECRET: "AWS::SecretsManager::Secret",
    ResourceKind.NETWORK: "AWS::EC2::VPC",
    ResourceKind.ACCESS_POLICY: "AWS::EC2::SecurityGroup",
    ResourceKind.DATABASE: "AWS::RDS::DBInstance",
    ResourceKind.COMPUTE: "AWS::EC2::Instance",
}


@define(slots=True, frozen=True)
class ResourceRef:
    """Typed handle to a record in the same deployment graph."""

    kind: ResourceKind = field(converter=ResourceKind)
    logical_id: str = field(validator=[instance_of(str), min_len(1)])

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.logical_id}"
