import os
from typing import Optional

from aws_cdk import (
    CfnOutput,
    Duration,
    RemovalPolicy,
    Stack,
    Token,
    aws_ec2 as ec2,
    aws_rds as rds,
    aws_secretsmanager as secretsmanager,
)
from aws_lambda_powertools import Logger
from constructs import Construct

import common.constants as constants
from common.config import DeploymentConfig
from common.errors import UnresolvedAvailabilityZones
from common.naming_context import NamingContext
from infra_graph.access_policy import AccessPolicy, AccessRule, Protocol, SelectorKind
from infra_graph.compute import ComputeResource
from infra_graph.credentials import CredentialRecord
from infra_graph.database import DatabaseEngine, DatabaseResource, EngineSpec, TeardownPolicy
from infra_graph.deployment_graph import DeploymentGraph
from infra_graph.descriptor import DeploymentDescriptor
from infra_graph.network import VISIBILITY_ORDER, NetworkTopology, SubnetVisibility

logger = Logger(
    service=constants.SERVICE_NAME, level=os.getenv("LOG_LEVEL", "INFO").upper()
)

SUBNET_TYPES = {
    SubnetVisibility.PUBLIC: ec2.SubnetType.PUBLIC,
    SubnetVisibility.PRIVATE: ec2.SubnetType.PRIVATE_WITH_EGRESS,
}

REMOVAL_POLICIES = {
    TeardownPolicy.DESTROY: RemovalPolicy.DESTROY,
    TeardownPolicy.RETAIN: RemovalPolicy.RETAIN,
    TeardownPolicy.SNAPSHOT: RemovalPolicy.SNAPSHOT,
}


def database_engine(spec: EngineSpec) -> rds.IInstanceEngine:
    if spec.kind is DatabaseEngine.POSTGRES:
        return rds.DatabaseInstanceEngine.postgres(
            version=rds.PostgresEngineVersion.of(spec.version, spec.major_version)
        )
    if spec.kind is DatabaseEngine.MYSQL:
        return rds.DatabaseInstanceEngine.mysql(
            version=rds.MysqlEngineVersion.of(spec.version, spec.major_version)
        )
    return rds.DatabaseInstanceEngine.maria_db(
        version=rds.MariaDbEngineVersion.of(spec.version, spec.major_version)
    )


class ArchiveAppStack(Stack):
    """Renders a validated deployment graph as CDK constructs.

    The graph is built (and validated) before any construct is created, so
    an invalid configuration never produces a partial template.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        graph: Optional[DeploymentGraph] = None,
        config: Optional[DeploymentConfig] = None,
        naming: Optional[NamingContext] = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)
        self.graph = graph if graph is not None else DeploymentDescriptor(config, naming).build()

        network = self.graph.network
        self._check_zone_count(network)
        policy = self.graph.policy
        credential = self.graph.credential
        database = self.graph.database
        compute = self.graph.compute

        self.vpc = self._build_vpc(network)
        self.security_group = self._build_security_group(policy, self.vpc)
        self.master_user_secret = self._build_master_user_secret(credential, database)
        self.db_instance = self._build_database(
            database, self.vpc, self.security_group, self.master_user_secret
        )
        self.web_instance = self._build_web_instance(compute, self.vpc, self.security_group)

        CfnOutput(self, "VpcId", value=self.vpc.vpc_id)
        CfnOutput(self, "DatabaseEndpoint", value=self.db_instance.db_instance_endpoint_address)
        CfnOutput(self, "DatabaseSecretName", value=credential.secret_name)
        CfnOutput(self, "WebInstancePublicDnsName", value=self.web_instance.instance_public_dns_name)

        logger.info(
            "Rendered deployment graph",
            extra={"stack": construct_id, "resources": [str(r.ref) for r in self.graph]},
        )

    def _check_zone_count(self, network: NetworkTopology) -> None:
        """Env-agnostic stacks only see two AZs; refuse to render fewer zones than the graph."""
        env_agnostic = Token.is_unresolved(self.account) or Token.is_unresolved(self.region)
        if env_agnostic and network.zone_count > constants.ENV_AGNOSTIC_MAX_AZS:
            raise UnresolvedAvailabilityZones(
                f"{network.zone_count} zones need a stack with a concrete account and region; "
                f"an environment-agnostic stack is limited to {constants.ENV_AGNOSTIC_MAX_AZS}"
            )

    # Resource creation

    def _build_vpc(self, network: NetworkTopology) -> ec2.Vpc:
        return ec2.Vpc(
            self,
            network.logical_id,
            vpc_name=network.name,
            max_azs=network.zone_count,
            ip_addresses=ec2.IpAddresses.cidr(network.address_space),
            subnet_configuration=[
                ec2.SubnetConfiguration(
                    name=visibility.value.capitalize(),
                    subnet_type=SUBNET_TYPES[visibility],
                    cidr_mask=network.cidr_mask,
                )
                for visibility in VISIBILITY_ORDER
            ],
        )

    @staticmethod
    def _peer(rule: AccessRule, vpc: ec2.IVpc) -> ec2.IPeer:
        if rule.source.kind is SelectorKind.ANY:
            return ec2.Peer.any_ipv4()
        if rule.source.kind is SelectorKind.OWN_NETWORK:
            return ec2.Peer.ipv4(vpc.vpc_cidr_block)
        return ec2.Peer.ipv4(rule.source.cidr)

    @staticmethod
    def _port(rule: AccessRule) -> ec2.Port:
        if rule.protocol is Protocol.UDP:
            return ec2.Port.udp(rule.port)
        return ec2.Port.tcp(rule.port)

    def _build_security_group(self, policy: AccessPolicy, vpc: ec2.IVpc) -> ec2.SecurityGroup:
        security_group = ec2.SecurityGroup(
            self,
            policy.logical_id,
            vpc=vpc,
            security_group_name=policy.name,
            description=policy.description or None,
        )
        for rule in policy.rules:
            security_group.add_ingress_rule(
                peer=self._peer(rule, vpc),
                connection=self._port(rule),
                description=rule.description,
            )
        return security_group

    def _build_master_user_secret(
        self, credential: CredentialRecord, database: DatabaseResource
    ) -> secretsmanager.Secret:
        """Create the master user secret; Secrets Manager generates the password."""
        policy = credential.policy
        secret = secretsmanager.Secret(
            self,
            credential.logical_id,
            secret_name=credential.secret_name,
            description=credential.description,
            generate_secret_string=secretsmanager.SecretStringGenerator(
                secret_string_template=credential.secret_string_template(),
                generate_string_key=credential.password.key,
                password_length=policy.length,
                exclude_punctuation=policy.exclude_punctuation,
                exclude_characters=policy.exclude_characters or None,
            ),
        )
        # The credential lives as long as the database it unlocks
        if database.removal_policy is TeardownPolicy.DESTROY:
            secret.apply_removal_policy(RemovalPolicy.DESTROY)
        else:
            secret.apply_removal_policy(RemovalPolicy.RETAIN)
        return secret

    def _build_database(
        self,
        database: DatabaseResource,
        vpc: ec2.IVpc,
        security_group: ec2.ISecurityGroup,
        secret: secretsmanager.ISecret,
    ) -> rds.DatabaseInstance:
        return rds.DatabaseInstance(
            self,
            database.logical_id,
            vpc=vpc,
            vpc_subnets=ec2.SubnetSelection(subnet_type=SUBNET_TYPES[database.subnet_visibility]),
            instance_type=ec2.InstanceType(database.engine.instance_size_class),
            engine=database_engine(database.engine),
            port=database.port,
            security_groups=[security_group],
            database_name=database.database_name,
            credentials=rds.Credentials.from_secret(secret),
            backup_retention=Duration.days(database.backup_retention_days),
            delete_automated_backups=database.delete_artifacts_on_teardown,
            removal_policy=REMOVAL_POLICIES[database.removal_policy],
        )

    def _build_web_instance(
        self,
        compute: ComputeResource,
        vpc: ec2.IVpc,
        security_group: ec2.ISecurityGroup,
    ) -> ec2.Instance:
        """Full-stack host; the shared security group is attached at creation."""
        key_pair = ec2.KeyPair.from_key_pair_name(
            self, f"{compute.logical_id}KeyPair", compute.identity_key_ref
        )
        machine_image = ec2.MachineImage.from_ssm_parameter(
            compute.machine_image.parameter_name, os=ec2.OperatingSystemType.LINUX
        )
        return ec2.Instance(
            self,
            compute.logical_id,
            vpc=vpc,
            key_pair=key_pair,
            machine_image=machine_image,
            instance_type=ec2.InstanceType(compute.instance_size_class),
            vpc_subnets=ec2.SubnetSelection(subnet_type=SUBNET_TYPES[compute.subnet_visibility]),
            security_group=security_group,
        )
