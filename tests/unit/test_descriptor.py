import pytest

from common.config import DeploymentConfig
from common.errors import (
    GraphValidationError,
    InsufficientAddressSpace,
    InvalidBackupRetention,
    InvalidDatabaseName,
    InvalidEngine,
    InvalidInstanceType,
    InvalidKeyReference,
    InvalidPolicy,
)
from common.naming_context import NamingContext
from infra_graph.access_policy import SelectorKind
from infra_graph.descriptor import DeploymentDescriptor, build_deployment_graph
from infra_graph.network import SubnetVisibility
from infra_graph.references import ResourceKind


def test_default_build_has_no_errors():
    descriptor = DeploymentDescriptor()
    graph = descriptor.build()

    assert descriptor.errors == []
    assert {r.ref.kind for r in graph} == set(ResourceKind)


def test_default_graph_policy_has_the_four_rules():
    graph = build_deployment_graph()

    assert [(rule.port, rule.source.kind) for rule in graph.policy.rules] == [
        (5432, SelectorKind.OWN_NETWORK),
        (80, SelectorKind.ANY),
        (443, SelectorKind.ANY),
        (22, SelectorKind.ANY),
    ]


def test_default_graph_wiring():
    graph = build_deployment_graph()

    assert graph.database.port == 5432
    assert graph.database.bound_policy == graph.compute.bound_policy == graph.policy.ref
    assert graph.database.credential.ref == graph.credential.ref
    assert graph.database.subnet_visibility is SubnetVisibility.PRIVATE
    assert graph.compute.subnet_visibility is SubnetVisibility.PUBLIC
    assert graph.compute.identity_key_ref == "EC2KeyPair"
    assert len(graph.network.subnets) == 4


def test_logical_ids_follow_naming_convention():
    graph = build_deployment_graph(naming=NamingContext(env="prod"))

    assert graph.network.logical_id == "ArchiveFullstackVpc"
    assert graph.policy.logical_id == "ArchiveFullstackSg"
    assert graph.credential.logical_id == "ArchiveFullstackSecret"
    assert graph.database.logical_id == "ArchiveFullstackDatabase"
    assert graph.compute.logical_id == "ArchiveFullstackWebInstance"


def test_mysql_engine_uses_its_default_port():
    graph = build_deployment_graph(
        DeploymentConfig(db_engine="mysql", db_engine_version="8.0.39", db_username="admin")
    )

    assert graph.database.port == 3306
    assert graph.policy.network_scoped_rule(3306, graph.network) is not None


def test_database_placement_is_configurable():
    graph = build_deployment_graph(DeploymentConfig(db_subnet_visibility="public"))
    assert graph.database.subnet_visibility is SubnetVisibility.PUBLIC


def test_every_failure_is_reported_at_once():
    config = DeploymentConfig(
        zone_count=0,
        password_length=0,
        db_name="bad-name",
        key_pair_name="",
        instance_size_class="huge",
    )
    with pytest.raises(GraphValidationError) as error:
        build_deployment_graph(config)

    # settings that do not need the network are still checked without one
    assert error.value.kinds() == [
        InvalidPolicy,
        InvalidDatabaseName,
        InvalidKeyReference,
        InvalidInstanceType,
        InsufficientAddressSpace,
    ]


def test_bad_retention_is_reported_without_a_network():
    config = DeploymentConfig(address_space="10.0.0.0/30", backup_retention_days=90)
    with pytest.raises(GraphValidationError) as error:
        build_deployment_graph(config)

    assert error.value.kinds() == [InvalidBackupRetention, InsufficientAddressSpace]


def test_unresolvable_engine_version_is_aggregated():
    config = DeploymentConfig(db_engine_version="latest", key_pair_name="")
    with pytest.raises(GraphValidationError) as error:
        build_deployment_graph(config)

    assert error.value.kinds() == [InvalidEngine, InvalidKeyReference]


@pytest.mark.parametrize(
    "setting,value",
    [
        ("db_engine", "oracle"),
        ("db_subnet_visibility", "isolated"),
        ("removal_policy", "keep"),
        ("compute_subnet_visibility", "isolated"),
    ],
)
def test_unsupported_choices_never_reach_the_builder(setting, value):
    with pytest.raises(ValueError, match=value):
        DeploymentDescriptor(DeploymentConfig.from_mapping({setting: value})).build()


def test_failures_in_independent_components_are_all_collected():
    config = DeploymentConfig(db_name="archive-db", key_pair_name=" ")
    descriptor = DeploymentDescriptor(config)

    with pytest.raises(GraphValidationError) as error:
        descriptor.build()

    assert error.value.kinds() == [InvalidDatabaseName, InvalidKeyReference]
    assert descriptor.errors == error.value.errors


def test_build_can_be_repeated():
    descriptor = DeploymentDescriptor()
    assert descriptor.build() == descriptor.build()
