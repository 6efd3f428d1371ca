import pytest

from graph_test_helpers import credential, make_compute, make_database, network, policy
from common.errors import (
    DanglingReference,
    InvalidBackupRetention,
    InvalidDatabaseName,
    UnsafeDatabaseExposure,
)
from infra_graph.access_policy import AccessRule, SourceSelector, create_policy
from infra_graph.credentials import SecretHandle
from infra_graph.database import (
    DatabaseEngine,
    EngineSpec,
    TeardownPolicy,
    provision_database,
    validate_database_name,
)
from infra_graph.network import SubnetVisibility, build_network


def test_provision_binds_network_policy_and_credential(network, policy, credential):
    database = make_database(network, policy, credential)

    assert database.port == 5432
    assert database.bound_network == network.ref
    assert database.bound_policy == policy.ref
    assert database.credential == credential.handle
    assert set(database.dependencies()) == {network.ref, policy.ref, credential.ref}


def test_database_and_compute_share_one_policy(network, policy, credential):
    database = make_database(network, policy, credential)
    compute = make_compute(network, policy)

    assert database.bound_policy == compute.bound_policy == policy.ref


def test_credential_is_held_by_reference(network, policy, credential):
    database = make_database(network, policy, credential)

    assert isinstance(database.credential, SecretHandle)
    assert not hasattr(database, "password")


def test_database_port_open_to_any_is_unsafe(network, credential):
    exposed = create_policy("database-sg", network)
    exposed.add_rule(AccessRule.tcp(SourceSelector.any_ipv4(), 5432, "Allow Postgres"))

    with pytest.raises(UnsafeDatabaseExposure):
        make_database(network, exposed, credential)


def test_database_port_without_any_rule_is_unsafe(network, credential):
    bare = create_policy("database-sg", network)
    bare.add_rule(AccessRule.tcp(SourceSelector.any_ipv4(), 80))

    with pytest.raises(UnsafeDatabaseExposure):
        make_database(network, bare, credential)


def test_network_scoped_rule_on_other_port_is_unsafe(network, policy, credential):
    with pytest.raises(UnsafeDatabaseExposure):
        make_database(network, policy, credential, port=5433)


def test_range_inside_network_counts_as_scoped(network, credential):
    scoped = create_policy("database-sg", network)
    scoped.add_rule(AccessRule.tcp(SourceSelector.address_range("10.0.0.0/18"), 5432))
    scoped.add_rule(AccessRule.tcp(SourceSelector.any_ipv4(), 5432))

    assert make_database(network, scoped, credential).port == 5432


def test_policy_bound_to_other_network_is_rejected(network, credential):
    other = build_network("172.16.0.0/16", 2, logical_id="OtherVpc")
    foreign_policy = create_policy("database-sg", other)
    foreign_policy.add_rule(AccessRule.tcp(SourceSelector.own_network(other), 5432))

    with pytest.raises(DanglingReference):
        make_database(network, foreign_policy, credential)


@pytest.mark.parametrize(
    "name", ["1archive", "archive-db", "archive db", "", "a" * 64]
)
def test_invalid_postgres_database_names(name: str):
    with pytest.raises(InvalidDatabaseName):
        validate_database_name(DatabaseEngine.POSTGRES, name)


def test_mysql_allows_one_more_character():
    validate_database_name(DatabaseEngine.MYSQL, "a" * 64)
    with pytest.raises(InvalidDatabaseName):
        validate_database_name(DatabaseEngine.MYSQL, "a" * 65)


def test_invalid_name_is_rejected_on_provision(network, policy, credential):
    with pytest.raises(InvalidDatabaseName):
        provision_database(
            network,
            policy,
            credential,
            EngineSpec(),
            "archive-db",
            subnet_visibility=SubnetVisibility.PRIVATE,
        )


@pytest.mark.parametrize("days", [-1, 36])
def test_backup_retention_window(network, policy, credential, days: int):
    with pytest.raises(InvalidBackupRetention):
        make_database(network, policy, credential, backup_retention_days=days)


def test_teardown_settings_are_recorded(network, policy, credential):
    database = make_database(
        network,
        policy,
        credential,
        backup_retention_days=7,
        delete_artifacts_on_teardown=False,
        removal_policy=TeardownPolicy.SNAPSHOT,
        subnet_visibility=SubnetVisibility.PUBLIC,
    )

    assert database.backup_retention_days == 7
    assert database.delete_artifacts_on_teardown is False
    assert database.removal_policy is TeardownPolicy.SNAPSHOT
    assert database.subnet_visibility is SubnetVisibility.PUBLIC


ENGINE_CASES = [
    (EngineSpec(DatabaseEngine.POSTGRES, "17"), 5432, "17"),
    (EngineSpec(DatabaseEngine.POSTGRES, "16.4"), 5432, "16"),
    (EngineSpec(DatabaseEngine.POSTGRES, "9.6.24"), 5432, "9.6"),
    (EngineSpec(DatabaseEngine.MYSQL, "8.0.39"), 3306, "8.0"),
    (EngineSpec(DatabaseEngine.MARIADB, "10.11.9"), 3306, "10.11"),
]


@pytest.mark.parametrize("engine,port,major", ENGINE_CASES)
def test_engine_defaults(engine: EngineSpec, port: int, major: str):
    assert engine.default_port == port
    assert engine.major_version == major


def test_engine_kind_is_converted_from_string():
    assert EngineSpec("mysql", "8.0.39").kind is DatabaseEngine.MYSQL
