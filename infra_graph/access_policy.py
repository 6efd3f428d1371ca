import ipaddress
import os
from enum import Enum
from typing import Optional

from attrs import define, field
from attrs.validators import instance_of, min_len, optional
from aws_lambda_powertools import Logger

import common.constants as constants
from common.errors import ForeignNetworkReference, InvalidAccessRule
from infra_graph.network import NetworkTopology
from infra_graph.references import ResourceKind, ResourceRef

logger = Logger(
    service=constants.SERVICE_NAME, level=os.getenv("LOG_LEVEL", "INFO").upper()
)


class Protocol(str, Enum):
    TCP = "tcp"
    UDP = "udp"


class SelectorKind(str, Enum):
    ADDRESS = "address"
    ADDRESS_RANGE = "address_range"
    ANY = "any"
    OWN_NETWORK = "own_network"


def _validate_port(instance, attribute, value) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 65535:
        raise InvalidAccessRule(f"port must be an integer in [0, 65535], got {value!r}")


def _validate_protocol(instance, attribute, value) -> None:
    if not isinstance(value, Protocol):
        raise InvalidAccessRule(f"protocol must be tcp or udp, got {value!r}")


def _normalize_cidr(cidr: str) -> str:
    try:
        return str(ipaddress.IPv4Network(cidr, strict=True))
    except (ValueError, TypeError) as e:
        raise InvalidAccessRule(f"{cidr!r} is not a valid IPv4 source: {e}") from e


@define(slots=True, frozen=True)
class SourceSelector:
    """Where inbound traffic may come from, mirroring ``ec2.Peer``."""

    kind: SelectorKind
    cidr: str
    network: Optional[ResourceRef] = field(
        default=None, validator=optional(instance_of(ResourceRef))
    )

    @classmethod
    def any_ipv4(cls) -> "SourceSelector":
        return cls(SelectorKind.ANY, constants.ANY_IPV4_CIDR)

    @classmethod
    def address(cls, ip: str) -> "SourceSelector":
        return cls(SelectorKind.ADDRESS, _normalize_cidr(f"{ip}/32"))

    @classmethod
    def address_range(cls, cidr: str) -> "SourceSelector":
        cidr = _normalize_cidr(cidr)
        if cidr == constants.ANY_IPV4_CIDR:
            return cls.any_ipv4()
        return cls(SelectorKind.ADDRESS_RANGE, cidr)

    @classmethod
    def own_network(cls, network: NetworkTopology) -> "SourceSelector":
        return cls(SelectorKind.OWN_NETWORK, network.address_space, network.ref)

    def __str__(self) -> str:
        if self.kind is SelectorKind.OWN_NETWORK:
            return f"{self.network} ({self.cidr})"
        return self.cidr


@define(slots=True, frozen=True)
class AccessRule:
    source: SourceSelector = field(validator=instance_of(SourceSelector))
    protocol: Protocol = field(validator=_validate_protocol)
    port: int = field(validator=_validate_port)
    description: str = field(default="", validator=instance_of(str))

    @classmethod
    def tcp(cls, source: SourceSelector, port: int, description: str = "") -> "AccessRule":
        return cls(source, Protocol.TCP, port, description)

    @classmethod
    def udp(cls, source: SourceSelector, port: int, description: str = "") -> "AccessRule":
        return cls(source, Protocol.UDP, port, description)


def is_network_scoped(source: SourceSelector, network: NetworkTopology) -> bool:
    """True when ``source`` only admits addresses inside ``network``."""
    if source.kind is SelectorKind.ANY:
        return False
    if source.kind is SelectorKind.OWN_NETWORK:
        return source.network == network.ref and source.cidr == network.address_space
    return network.contains(source.cidr)


@define(slots=True, kw_only=True)
class AccessPolicy:
    """Named inbound rule set bound to one network (an EC2 security group).

    Rules are evaluated independently as a union of allows. Insertion order
    is kept so rendered templates stay stable between builds.
    """

    logical_id: str = field(validator=[instance_of(str), min_len(1)])
    name: str = field(validator=[instance_of(str), min_len(1)])
    bound_network: ResourceRef = field(validator=instance_of(ResourceRef))
    network_cidr: str
    description: str = ""
    _rules: list[AccessRule] = field(factory=list)

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(ResourceKind.ACCESS_POLICY, self.logical_id)

    @property
    def rules(self) -> tuple[AccessRule, ...]:
        return tuple(self._rules)

    def dependencies(self) -> tuple[ResourceRef, ...]:
        return (self.bound_network,)

    def add_rule(self, rule: AccessRule) -> None:
        if not isinstance(rule, AccessRule):
            raise InvalidAccessRule(f"expected an AccessRule, got {type(rule).__name__}")
        _validate_protocol(rule, None, rule.protocol)
        _validate_port(rule, None, rule.port)
        if rule.source.kind is SelectorKind.OWN_NETWORK:
            if rule.source.network != self.bound_network or rule.source.cidr != self.network_cidr:
                raise ForeignNetworkReference(
                    f"rule '{rule.description}' references network {rule.source} but "
                    f"policy {self.name} is bound to {self.bound_network} ({self.network_cidr})"
                )
        if rule in self._rules:
            logger.debug(
                "Skipping duplicate inbound rule",
                extra={"policy": self.name, "port": rule.port, "source": str(rule.source)},
            )
            return
        self._rules.append(rule)
        logger.debug(
            "Added inbound rule",
            extra={
                "policy": self.name,
                "protocol": rule.protocol.value,
                "port": rule.port,
                "source": str(rule.source),
            },
        )

    def rules_for_port(self, port: int) -> tuple[AccessRule, ...]:
        return tuple(rule for rule in self._rules if rule.port == port)

    def network_scoped_rule(
        self, port: int, network: NetworkTopology
    ) -> Optional[AccessRule]:
        """First rule admitting ``port`` only from inside ``network``, if any."""
        for rule in self.rules_for_port(port):
            if is_network_scoped(rule.source, network):
                return rule
        return None


def create_policy(
    name: str,
    network: NetworkTopology,
    *,
    logical_id: str = "SecurityGroup",
    description: str = "",
) -> AccessPolicy:
    return AccessPolicy(
        logical_id=logical_id,
        name=name,
        bound_network=network.ref,
        network_cidr=network.address_space,
        description=description,
    )


def build_application_policy(
    name: str,
    network: NetworkTopology,
    database_port: int,
    *,
    admin_source_cidr: str = constants.ANY_IPV4_CIDR,
    logical_id: str = "SecurityGroup",
) -> AccessPolicy:
    """Shared policy for the database and the web host.

    The database port only admits traffic from inside the network; HTTP,
    HTTPS and SSH are open to ``0.0.0.0/0`` (SSH to ``admin_source_cidr``).
    """
    policy = create_policy(
        name,
        network,
        logical_id=logical_id,
        description="Shared inbound rules for the database and full-stack host",
    )
    policy.add_rule(
        AccessRule.tcp(
            SourceSelector.own_network(network),
            database_port,
            f"Allow port {database_port} for database connection from only within "
            f"the VPC ({network.address_space})",
        )
    )
    policy.add_rule(
        AccessRule.tcp(
            SourceSelector.any_ipv4(),
            constants.HTTP_PORT,
            f"Allow port {constants.HTTP_PORT} for EC2 HTTP connection",
        )
    )
    policy.add_rule(
        AccessRule.tcp(
            SourceSelector.any_ipv4(),
            constants.HTTPS_PORT,
            f"Allow port {constants.HTTPS_PORT} for EC2 HTTPS",
        )
    )
    policy.add_rule(
        AccessRule.tcp(
            SourceSelector.address_range(admin_source_cidr),
            constants.SSH_PORT,
            f"Allow port {constants.SSH_PORT} for EC2 SSH connection",
        )
    )
    return policy
