"""Database master credential records.

A credential record describes a username and how its password is to be
generated. The password itself is produced by the secret store when the
secret is created, so no plaintext ever exists in the graph; other records
consume the credential through its ``SecretHandle``.
"""
import json
import os
from typing import Optional

from attrs import define, field
from attrs.validators import instance_of, min_len
from aws_lambda_powertools import Logger

import common.constants as constants
from common.errors import InvalidPolicy
from infra_graph.references import ResourceKind, ResourceRef

logger = Logger(
    service=constants.SERVICE_NAME, level=os.getenv("LOG_LEVEL", "INFO").upper()
)


def _validate_length(instance, attribute, value) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise InvalidPolicy(f"password length must be an integer >= 1, got {value!r}")


@define(slots=True, frozen=True)
class GenerationPolicy:
    length: int = field(default=constants.DB_PASSWORD_LENGTH, validator=_validate_length)
    exclude_punctuation: bool = field(default=True, validator=instance_of(bool))
    exclude_characters: str = field(default="", validator=instance_of(str))


@define(slots=True, frozen=True)
class GeneratedPassword:
    """Placeholder for a password the secret store generates under ``policy``."""

    key: str
    policy: GenerationPolicy

    def __repr__(self) -> str:
        return f"GeneratedPassword(key={self.key!r}, length={self.policy.length})"


@define(slots=True, frozen=True)
class SecretHandle:
    ref: ResourceRef
    secret_name: str
    username_key: str = constants.SECRET_USERNAME_KEY
    password_key: str = constants.SECRET_PASSWORD_KEY


@define(slots=True, frozen=True, kw_only=True)
class CredentialRecord:
    logical_id: str = field(validator=[instance_of(str), min_len(1)])
    secret_name: str = field(validator=[instance_of(str), min_len(1)])
    username: str = field(validator=[instance_of(str), min_len(1)])
    password: GeneratedPassword = field(validator=instance_of(GeneratedPassword))
    description: str = "Database master user credentials"

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(ResourceKind.SECRET, self.logical_id)

    @property
    def policy(self) -> GenerationPolicy:
        return self.password.policy

    @property
    def handle(self) -> SecretHandle:
        return SecretHandle(
            ref=self.ref,
            secret_name=self.secret_name,
            password_key=self.password.key,
        )

    def dependencies(self) -> tuple[ResourceRef, ...]:
        return ()

    def secret_string_template(self) -> str:
        """JSON document the secret store fills in with the generated password."""
        return json.dumps({constants.SECRET_USERNAME_KEY: self.username})


class CredentialGenerator:
    def __init__(self, logical_id: str = "DbMasterUserSecret") -> None:
        self.logical_id = logical_id

    def generate(
        self,
        policy: GenerationPolicy,
        *,
        username: Optional[str] = None,
        secret_name: Optional[str] = None,
    ) -> CredentialRecord:
        if not isinstance(policy, GenerationPolicy):
            raise InvalidPolicy(f"expected a GenerationPolicy, got {type(policy).__name__}")
        record = CredentialRecord(
            logical_id=self.logical_id,
            secret_name=secret_name or constants.DB_MASTER_USER_SECRET_NAME,
            username=username or constants.DB_MASTER_USERNAME,
            password=GeneratedPassword(key=constants.SECRET_PASSWORD_KEY, policy=policy),
        )
        logger.debug(
            "Declared generated credential",
            extra={
                "secret_name": record.secret_name,
                "password_length": policy.length,
                "exclude_punctuation": policy.exclude_punctuation,
            },
        )
        return record
