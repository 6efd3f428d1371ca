import pytest

from common.config import DeploymentConfig
from common.naming_context import NamingContext


def test_defaults_describe_the_archive_deployment():
    config = DeploymentConfig()

    assert config.address_space == "10.0.0.0/16"
    assert config.zone_count == 2
    assert config.db_engine == "postgres"
    assert config.db_engine_version == "17"
    assert config.db_port is None
    assert config.db_name == "archive_db"
    assert config.backup_retention_days == 0
    assert config.removal_policy == "destroy"
    assert config.key_pair_name == "EC2KeyPair"


@pytest.mark.parametrize("overrides", [None, {}])
def test_empty_overrides_keep_defaults(overrides):
    assert DeploymentConfig.from_mapping(overrides) == DeploymentConfig()


def test_overrides_are_applied():
    config = DeploymentConfig.from_mapping({"zone_count": 3, "db_name": "ledger"})

    assert config.zone_count == 3
    assert config.db_name == "ledger"
    assert config.address_space == "10.0.0.0/16"


def test_unknown_settings_are_rejected():
    with pytest.raises(ValueError, match="db_nmae"):
        DeploymentConfig.from_mapping({"db_nmae": "ledger"})


def test_non_mapping_context_is_rejected():
    with pytest.raises(ValueError):
        DeploymentConfig.from_mapping(["zone_count", 3])


def test_wrong_types_are_rejected():
    with pytest.raises(TypeError):
        DeploymentConfig.from_mapping({"zone_count": "3"})


def test_negative_retention_is_rejected():
    with pytest.raises(ValueError):
        DeploymentConfig(backup_retention_days=-1)


NAMING_CASES = [
    ("Vpc", None, "ArchiveFullstackVpc", "archive-fullstack-vpc-dev"),
    ("Instance", "web", "ArchiveFullstackWebInstance", "archive-fullstack-web-instance-dev"),
]


@pytest.mark.parametrize("resource_type,action,resource_id,resource_name", NAMING_CASES)
def test_naming_context(resource_type, action, resource_id, resource_name):
    naming = NamingContext()
    assert naming.build_resource_id(resource_type, action=action) == resource_id
    assert naming.build_resource_name(resource_type, action=action) == resource_name


def test_naming_context_environment():
    assert NamingContext(env="prod").build_resource_name("Vpc") == "archive-fullstack-vpc-prod"


ENUM_SETTINGS = [
    ("db_engine", "oracle"),
    ("db_subnet_visibility", "isolated"),
    ("removal_policy", "keep"),
    ("compute_subnet_visibility", "isolated"),
]


@pytest.mark.parametrize("setting,value", ENUM_SETTINGS)
def test_unsupported_choices_are_rejected(setting, value):
    with pytest.raises(ValueError, match=value):
        DeploymentConfig.from_mapping({setting: value})


@pytest.mark.parametrize("setting", ["zone_count", "password_length", "backup_retention_days", "db_port"])
def test_booleans_are_not_counts(setting):
    with pytest.raises(TypeError, match=setting):
        DeploymentConfig.from_mapping({setting: True})
