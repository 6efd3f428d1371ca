"""Composition root: wires configuration into one validated deployment graph."""
import os
from typing import Callable, Optional, TypeVar

from aws_lambda_powertools import Logger

import common.constants as constants
from common.config import DeploymentConfig
from common.errors import DeploymentError, GraphValidationError, InvalidEngine
from common.naming_context import NamingContext
from infra_graph.access_policy import AccessPolicy, build_application_policy
from infra_graph.compute import (
    ComputeResource,
    MachineImageRef,
    provision_compute,
    validate_instance_type,
    validate_key_reference,
)
from infra_graph.credentials import CredentialGenerator, CredentialRecord, GenerationPolicy
from infra_graph.database import (
    DatabaseResource,
    EngineSpec,
    TeardownPolicy,
    provision_database,
    validate_backup_retention,
    validate_database_name,
)
from infra_graph.deployment_graph import DeploymentGraph, validate_graph
from infra_graph.network import NetworkTopology, SubnetVisibility, build_network

logger = Logger(
    service=constants.SERVICE_NAME, level=os.getenv("LOG_LEVEL", "INFO").upper()
)

T = TypeVar("T")


class DeploymentDescriptor:
    """Builds the archive deployment graph in two phases.

    Phase one checks the settings that stand alone (engine, database name,
    backup retention, key pair, instance type), then constructs every
    component in dependency order, recording component failures and carrying
    on with whatever does not depend on a failed component. Phase two
    validates the assembled graph as a whole. Any failure from either phase is reported in one ``GraphValidationError``.
    """

    def __init__(
        self,
        config: Optional[DeploymentConfig] = None,
        naming: Optional[NamingContext] = None,
    ) -> None:
        self.config = config or DeploymentConfig()
        self.naming = naming or NamingContext()
        self.errors: list[DeploymentError] = []

    def build(self) -> DeploymentGraph:
        self.errors = []

        # Settings that need no other component are checked before the network
        credential = self._attempt(self._build_credential)
        engine = self._attempt(self._engine)
        database_settings_valid = engine is not None and self._passes(
            (validate_database_name, engine.kind, self.config.db_name),
            (validate_backup_retention, self.config.backup_retention_days),
        )
        compute_settings_valid = self._passes(
            (validate_key_reference, self.config.key_pair_name),
            (validate_instance_type, self.config.instance_size_class),
        )

        network = self._attempt(self._build_network)
        port = self._database_port(engine)
        policy = database = compute = None
        if network is not None and port is not None:
            policy = self._attempt(self._build_policy, network, port)
        if network is not None and policy is not None:
            if credential is not None and database_settings_valid:
                database = self._attempt(
                    self._build_database, network, policy, credential, engine, port
                )
            if compute_settings_valid:
                compute = self._attempt(self._build_compute, network, policy)

        resources = [
            r for r in (credential, network, policy, database, compute) if r is not None
        ]
        self.errors.extend(validate_graph(resources))
        if self.errors:
            error = GraphValidationError(self.errors)
            logger.error(
                "Deployment graph validation failed",
                extra={"deployment": self.config.name, "errors": [str(e) for e in self.errors]},
            )
            raise error

        graph = DeploymentGraph(self.config.name, resources)
        logger.info(
            "Built deployment graph",
            extra={
                "deployment": graph.name,
                "resources": [str(r.ref) for r in graph.resources],
                "edges": len(graph.edges()),
            },
        )
        return graph

    def _attempt(self, build: Callable[..., T], *args) -> Optional[T]:
        try:
            return build(*args)
        except DeploymentError as e:
            self.errors.append(e)
            return None

    def _passes(self, *checks: tuple) -> bool:
        """Run every check, recording failures; True when none failed."""
        before = len(self.errors)
        for check, *args in checks:
            self._attempt(check, *args)
        return len(self.errors) == before

    # Resource creation

    def _build_credential(self) -> CredentialRecord:
        policy = GenerationPolicy(
            length=self.config.password_length,
            exclude_punctuation=self.config.exclude_punctuation,
        )
        generator = CredentialGenerator(self.naming.build_resource_id("Secret"))
        return generator.generate(
            policy, username=self.config.db_username, secret_name=self.config.secret_name
        )

    def _build_network(self) -> NetworkTopology:
        return build_network(
            self.config.address_space,
            self.config.zone_count,
            logical_id=self.naming.build_resource_id("Vpc"),
            name=self.config.vpc_name,
        )

    def _engine(self) -> EngineSpec:
        try:
            engine = EngineSpec(
                kind=self.config.db_engine,
                version=self.config.db_engine_version,
                instance_size_class=self.config.db_instance_size_class,
            )
            major_version = engine.major_version
        except ValueError as e:
            raise InvalidEngine(
                f"cannot resolve {self.config.db_engine} {self.config.db_engine_version!r}: {e}"
            ) from e
        logger.debug(
            "Resolved database engine",
            extra={"engine": engine.kind.value, "major_version": major_version},
        )
        return engine

    def _database_port(self, engine: Optional[EngineSpec]) -> Optional[int]:
        if self.config.db_port is not None:
            return self.config.db_port
        return engine.default_port if engine is not None else None

    def _build_policy(self, network: NetworkTopology, port: int) -> AccessPolicy:
        return build_application_policy(
            self.config.security_group_name,
            network,
            port,
            admin_source_cidr=self.config.admin_source_cidr,
            logical_id=self.naming.build_resource_id("Sg"),
        )

    def _build_database(
        self,
        network: NetworkTopology,
        policy: AccessPolicy,
        credential: CredentialRecord,
        engine: EngineSpec,
        port: int,
    ) -> DatabaseResource:
        return provision_database(
            network,
            policy,
            credential,
            engine,
            self.config.db_name,
            subnet_visibility=SubnetVisibility(self.config.db_subnet_visibility),
            port=port,
            backup_retention_days=self.config.backup_retention_days,
            delete_artifacts_on_teardown=self.config.delete_automated_backups,
            removal_policy=TeardownPolicy(self.config.removal_policy),
            logical_id=self.naming.build_resource_id("Database"),
        )

    def _build_compute(
        self, network: NetworkTopology, policy: AccessPolicy
    ) -> ComputeResource:
        return provision_compute(
            network,
            SubnetVisibility(self.config.compute_subnet_visibility),
            policy,
            MachineImageRef(self.config.machine_image_parameter),
            self.config.instance_size_class,
            self.config.key_pair_name,
            logical_id=self.naming.build_resource_id("Instance", action="web"),
        )


def build_deployment_graph(
    config: Optional[DeploymentConfig] = None, naming: Optional[NamingContext] = None
) -> DeploymentGraph:
    return DeploymentDescriptor(config, naming).build()
