from typing import Any, Mapping, Optional

from attrs import define, evolve, field, fields
from attrs.validators import ge, in_, instance_of, optional

import common.constants as constants


def _strict_int(instance, attribute, value) -> None:
    # bool is an int subclass and must not pass as a count
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"'{attribute.name}' must be int, got {value!r}")


@define(slots=True, frozen=True, kw_only=True)
class DeploymentConfig:
    """Build-time settings for one deployment graph.

    Values default to the archive deployment and can be overridden through
    the ``deployment`` CDK context key, e.g. ``cdk synth -c deployment='{"zone_count": 3}'``
    or the ``context`` block of ``cdk.json``.
    """

    name: str = field(default="ArchiveAppStack", validator=instance_of(str))
    # network
    address_space: str = field(default=constants.VPC_CIDR, validator=instance_of(str))
    zone_count: int = field(default=constants.MAX_AZS, validator=_strict_int)
    vpc_name: str = field(default=constants.VPC_NAME, validator=instance_of(str))
    # access policy
    security_group_name: str = field(default=constants.SECURITY_GROUP_NAME, validator=instance_of(str))
    admin_source_cidr: str = field(default=constants.ANY_IPV4_CIDR, validator=instance_of(str))
    # credentials
    secret_name: str = field(default=constants.DB_MASTER_USER_SECRET_NAME, validator=instance_of(str))
    db_username: str = field(default=constants.DB_MASTER_USERNAME, validator=instance_of(str))
    password_length: int = field(default=constants.DB_PASSWORD_LENGTH, validator=_strict_int)
    exclude_punctuation: bool = field(default=True, validator=instance_of(bool))
    # database
    db_engine: str = field(
        default=constants.DB_ENGINE, validator=[instance_of(str), in_(constants.DB_ENGINES)]
    )
    db_engine_version: str = field(default=constants.DB_ENGINE_VERSION, validator=instance_of(str))
    db_port: Optional[int] = field(default=None, validator=optional(_strict_int))  # engine default when unset
    db_name: str = field(default=constants.DB_NAME, validator=instance_of(str))
    db_instance_size_class: str = field(default=constants.INSTANCE_SIZE_CLASS, validator=instance_of(str))
    db_subnet_visibility: str = field(
        default=constants.DB_SUBNET_VISIBILITY,
        validator=[instance_of(str), in_(constants.SUBNET_VISIBILITIES)],
    )
    backup_retention_days: int = field(
        default=constants.DB_BACKUP_RETENTION_DAYS, validator=[_strict_int, ge(0)]
    )
    delete_automated_backups: bool = field(default=True, validator=instance_of(bool))
    removal_policy: str = field(
        default=constants.DB_REMOVAL_POLICY,
        validator=[instance_of(str), in_(constants.DB_REMOVAL_POLICIES)],
    )
    # compute
    instance_size_class: str = field(default=constants.INSTANCE_SIZE_CLASS, validator=instance_of(str))
    compute_subnet_visibility: str = field(
        default=constants.COMPUTE_SUBNET_VISIBILITY,
        validator=[instance_of(str), in_(constants.SUBNET_VISIBILITIES)],
    )
    key_pair_name: str = field(default=constants.KEY_PAIR_NAME, validator=instance_of(str))
    machine_image_parameter: str = field(
        default=constants.UBUNTU_FOCAL_AMI_PARAMETER, validator=instance_of(str)
    )

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    @classmethod
    def from_mapping(cls, overrides: Optional[Mapping[str, Any]] = None) -> "DeploymentConfig":
        return cls().with_overrides(overrides)

    def with_overrides(self, overrides: Optional[Mapping[str, Any]]) -> "DeploymentConfig":
        if not overrides:
            return self
        if not isinstance(overrides, Mapping):
            raise ValueError(
                f"'{constants.CONFIG_CONTEXT_KEY}' context must be a mapping, "
                f"got {type(overrides).__name__}"
            )
        unknown = sorted(set(overrides) - self.field_names())
        if unknown:
            raise ValueError(f"Unknown deployment settings: {', '.join(unknown)}")
        return evolve(self, **overrides)
