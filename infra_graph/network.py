import ipaddress
import math
from enum import Enum

from attrs import define, field
from attrs.validators import instance_of, min_len

import common.constants as constants
from common.errors import InsufficientAddressSpace, InvalidAddressSpace
from infra_graph.references import ResourceKind, ResourceRef


class SubnetVisibility(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


# Allocation order of visibility groups, one group after the other
VISIBILITY_ORDER = (SubnetVisibility.PUBLIC, SubnetVisibility.PRIVATE)


@define(slots=True, frozen=True)
class Subnet:
    zone_index: int
    visibility: SubnetVisibility
    cidr: str

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(self.cidr)


@define(slots=True, frozen=True, kw_only=True)
class NetworkTopology:
    logical_id: str = field(validator=[instance_of(str), min_len(1)])
    name: str
    address_space: str
    zone_count: int
    subnets: tuple[Subnet, ...] = field(converter=tuple)

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(ResourceKind.NETWORK, self.logical_id)

    @property
    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network(self.address_space)

    @property
    def cidr_mask(self) -> int:
        """Prefix length shared by every subnet."""
        return self.subnets[0].network.prefixlen

    def dependencies(self) -> tuple[ResourceRef, ...]:
        return ()

    def subnets_for(self, visibility: SubnetVisibility) -> tuple[Subnet, ...]:
        return tuple(s for s in self.subnets if s.visibility is visibility)

    def contains(self, cidr: str) -> bool:
        try:
            candidate = ipaddress.IPv4Network(cidr, strict=False)
        except ValueError:
            return False
        return candidate.subnet_of(self.network)


def _parse_address_space(address_space: str) -> ipaddress.IPv4Network:
    try:
        return ipaddress.IPv4Network(address_space, strict=True)
    except (ValueError, TypeError) as e:
        raise InvalidAddressSpace(
            f"{address_space!r} is not a valid IPv4 CIDR block: {e}"
        ) from e


def build_network(
    address_space: str = constants.VPC_CIDR,
    zone_count: int = constants.MAX_AZS,
    *,
    logical_id: str = "Vpc",
    name: str = constants.VPC_NAME,
) -> NetworkTopology:
    """Partition ``address_space`` into one public and one private subnet per zone.

    Subnets are equal sized and allocated in order from the start of the
    address space: every public subnet (zone 0..n-1), then every private
    subnet. This is the same layout the CDK VPC allocator produces for one
    subnet configuration per visibility.
    """
    if isinstance(zone_count, bool) or not isinstance(zone_count, int) or zone_count < 1:
        raise InsufficientAddressSpace(
            f"zone count must be >= 1 to place any subnet, got {zone_count!r}"
        )
    space = _parse_address_space(address_space)

    subnet_count = zone_count * len(VISIBILITY_ORDER)
    extra_bits = math.ceil(math.log2(subnet_count))
    new_prefix = space.prefixlen + extra_bits
    if new_prefix > constants.MIN_SUBNET_PREFIX:
        raise InsufficientAddressSpace(
            f"{address_space} cannot hold {subnet_count} subnets: each would be "
            f"/{new_prefix}, smaller than /{constants.MIN_SUBNET_PREFIX}"
        )

    blocks = space.subnets(new_prefix=new_prefix)
    subnets = []
    for visibility in VISIBILITY_ORDER:
        for zone_index in range(zone_count):
            subnets.append(Subnet(zone_index, visibility, str(next(blocks))))

    return NetworkTopology(
        logical_id=logical_id,
        name=name,
        address_space=str(space),
        zone_count=zone_count,
        subnets=subnets,
    )
