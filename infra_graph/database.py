import re
from enum import Enum
from typing import Optional

from attrs import define, field
from attrs.validators import instance_of, min_len

import common.constants as constants
from common.errors import (
    DanglingReference,
    InvalidBackupRetention,
    InvalidDatabaseName,
    InvalidSubnetPlacement,
    UnsafeDatabaseExposure,
)
from infra_graph.access_policy import AccessPolicy
from infra_graph.credentials import CredentialRecord, SecretHandle
from infra_graph.network import NetworkTopology, SubnetVisibility
from infra_graph.references import ResourceKind, ResourceRef


class DatabaseEngine(str, Enum):
    POSTGRES = "postgres"
    MYSQL = "mysql"
    MARIADB = "mariadb"


class TeardownPolicy(str, Enum):
    DESTROY = "destroy"
    RETAIN = "retain"
    SNAPSHOT = "snapshot"


DEFAULT_PORTS = {
    DatabaseEngine.POSTGRES: constants.POSTGRES_PORT,
    DatabaseEngine.MYSQL: constants.MYSQL_PORT,
    DatabaseEngine.MARIADB: constants.MYSQL_PORT,
}

MAX_NAME_LENGTHS = {
    DatabaseEngine.POSTGRES: 63,
    DatabaseEngine.MYSQL: 64,
    DatabaseEngine.MARIADB: 64,
}

_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")


@define(slots=True, frozen=True)
class EngineSpec:
    kind: DatabaseEngine = field(default=DatabaseEngine.POSTGRES, converter=DatabaseEngine)
    version: str = field(default=constants.DB_ENGINE_VERSION, validator=[instance_of(str), min_len(1)])
    instance_size_class: str = field(default=constants.INSTANCE_SIZE_CLASS)

    @property
    def default_port(self) -> int:
        return DEFAULT_PORTS[self.kind]

    @property
    def major_version(self) -> str:
        """Major version as RDS groups it (``17`` for postgres, ``8.0`` for mysql)."""
        parts = self.version.split(".")
        if self.kind is DatabaseEngine.POSTGRES and int(parts[0]) >= 10:
            return parts[0]
        return ".".join(parts[:2])


def validate_database_name(engine: DatabaseEngine, name: str) -> None:
    max_length = MAX_NAME_LENGTHS[engine]
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise InvalidDatabaseName(
            f"{name!r} is not a valid {engine.value} database name: it must start "
            "with a letter and contain only letters, digits and underscores"
        )
    if len(name) > max_length:
        raise InvalidDatabaseName(
            f"{name!r} exceeds the {max_length} character limit for {engine.value}"
        )


def validate_backup_retention(days: int) -> None:
    if isinstance(days, bool) or not isinstance(days, int) or not (
        0 <= days <= constants.DB_MAX_BACKUP_RETENTION_DAYS
    ):
        raise InvalidBackupRetention(
            f"backup retention must be between 0 and "
            f"{constants.DB_MAX_BACKUP_RETENTION_DAYS} days, got {days!r}"
        )


@define(slots=True, frozen=True, kw_only=True)
class DatabaseResource:
    logical_id: str = field(validator=[instance_of(str), min_len(1)])
    bound_network: ResourceRef
    bound_policy: ResourceRef
    credential: SecretHandle = field(validator=instance_of(SecretHandle))
    engine: EngineSpec
    port: int
    database_name: str
    subnet_visibility: SubnetVisibility = field(converter=SubnetVisibility)
    backup_retention_days: int = constants.DB_BACKUP_RETENTION_DAYS
    delete_artifacts_on_teardown: bool = True
    removal_policy: TeardownPolicy = field(default=TeardownPolicy.DESTROY, converter=TeardownPolicy)

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(ResourceKind.DATABASE, self.logical_id)

    def dependencies(self) -> tuple[ResourceRef, ...]:
        return (self.bound_network, self.bound_policy, self.credential.ref)


def check_database_exposure(
    policy: AccessPolicy, network: NetworkTopology, port: int
) -> None:
    """Refuse a database whose port is not restricted to its own network.

    At least one rule on ``port`` must admit only addresses inside
    ``network``; rules open to ``0.0.0.0/0`` do not count.
    """
    if policy.network_scoped_rule(port, network) is not None:
        return
    open_rules = [str(rule.source) for rule in policy.rules_for_port(port)]
    if open_rules:
        detail = f"its only rules on that port admit {', '.join(open_rules)}"
    else:
        detail = "it has no rule on that port"
    raise UnsafeDatabaseExposure(
        f"policy {policy.name} does not restrict database port {port} to "
        f"network {network.address_space}: {detail}"
    )


def provision_database(
    network: NetworkTopology,
    policy: AccessPolicy,
    credential: CredentialRecord,
    engine: EngineSpec,
    database_name: str,
    *,
    subnet_visibility: SubnetVisibility,
    port: Optional[int] = None,
    backup_retention_days: int = constants.DB_BACKUP_RETENTION_DAYS,
    delete_artifacts_on_teardown: bool = True,
    removal_policy: TeardownPolicy = TeardownPolicy.DESTROY,
    logical_id: str = "Database",
) -> DatabaseResource:
    if policy.bound_network != network.ref:
        raise DanglingReference(
            f"policy {policy.name} is bound to {policy.bound_network}, "
            f"not to the database network {network.ref}"
        )
    port = engine.default_port if port is None else port
    validate_database_name(engine.kind, database_name)
    validate_backup_retention(backup_retention_days)
    subnet_visibility = SubnetVisibility(subnet_visibility)
    if not network.subnets_for(subnet_visibility):
        raise InvalidSubnetPlacement(
            f"network {network.name} has no {subnet_visibility.value} subnets for the database"
        )
    check_database_exposure(policy, network, port)

    return DatabaseResource(
        logical_id=logical_id,
        bound_network=network.ref,
        bound_policy=policy.ref,
        credential=credential.handle,
        engine=engine,
        port=port,
        database_name=database_name,
        subnet_visibility=subnet_visibility,
        backup_retention_days=backup_retention_days,
        delete_artifacts_on_teardown=delete_artifacts_on_teardown,
        removal_policy=removal_policy,
    )
