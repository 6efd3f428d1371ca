import re

from attrs import define, field
from attrs.validators import instance_of, min_len

import common.constants as constants
from common.errors import (
    DanglingReference,
    InvalidInstanceType,
    InvalidKeyReference,
    InvalidSubnetPlacement,
)
from infra_graph.access_policy import AccessPolicy
from infra_graph.network import NetworkTopology, SubnetVisibility
from infra_graph.references import ResourceKind, ResourceRef

_INSTANCE_SIZE_CLASS = re.compile(r"^[a-z][a-z0-9-]*\.[a-z0-9]+$")


def validate_key_reference(identity_key_ref: str) -> None:
    if not isinstance(identity_key_ref, str) or not identity_key_ref.strip():
        raise InvalidKeyReference("identity key reference must name an existing key pair")


def validate_instance_type(instance_size_class: str) -> None:
    if not isinstance(instance_size_class, str) or not _INSTANCE_SIZE_CLASS.match(
        instance_size_class
    ):
        raise InvalidInstanceType(f"{instance_size_class!r} is not an EC2 instance type such as t3.micro")


@define(slots=True, frozen=True)
class MachineImageRef:
    """Image resolved from an SSM parameter when the stack is deployed."""

    parameter_name: str = field(
        default=constants.UBUNTU_FOCAL_AMI_PARAMETER, validator=[instance_of(str), min_len(1)]
    )
    os_type: str = "linux"


@define(slots=True, frozen=True, kw_only=True)
class ComputeResource:
    logical_id: str = field(validator=[instance_of(str), min_len(1)])
    bound_network: ResourceRef
    subnet_visibility: SubnetVisibility = field(converter=SubnetVisibility)
    bound_policy: ResourceRef
    machine_image: MachineImageRef
    instance_size_class: str
    identity_key_ref: str

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(ResourceKind.COMPUTE, self.logical_id)

    def dependencies(self) -> tuple[ResourceRef, ...]:
        return (self.bound_network, self.bound_policy)


def provision_compute(
    network: NetworkTopology,
    subnet_visibility: SubnetVisibility,
    policy: AccessPolicy,
    machine_image: MachineImageRef,
    instance_size_class: str,
    identity_key_ref: str,
    *,
    logical_id: str = "WebInstance",
) -> ComputeResource:
    """Place the full-stack host in ``network`` behind ``policy``.

    The key pair is managed outside this graph; only its name is recorded
    and EC2 resolves it at deploy time.
    """
    validate_key_reference(identity_key_ref)
    if policy.bound_network != network.ref:
        raise DanglingReference(
            f"policy {policy.name} is bound to {policy.bound_network}, "
            f"not to the instance network {network.ref}"
        )
    subnet_visibility = SubnetVisibility(subnet_visibility)
    if not network.subnets_for(subnet_visibility):
        raise InvalidSubnetPlacement(
            f"network {network.name} has no {subnet_visibility.value} subnets for the instance"
        )
    validate_instance_type(instance_size_class)

    return ComputeResource(
        logical_id=logical_id,
        bound_network=network.ref,
        subnet_visibility=subnet_visibility,
        bound_policy=policy.ref,
        machine_image=machine_image,
        instance_size_class=instance_size_class,
        identity_key_ref=identity_key_ref.strip(),
    )
