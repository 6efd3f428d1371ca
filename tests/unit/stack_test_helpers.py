from dataclasses import dataclass
from typing import Any, Mapping, Optional
from aws_cdk.assertions import Template
from archive_app.archive_app_stack import ArchiveAppStack
from common.config import DeploymentConfig
from aws_cdk import App, Environment
import pytest


# ------------------- Test Case Data Classes -------------------
@dataclass(frozen=True)
class IngressTestCase:
    id: str
    port: int
    cidr: Any
    description: str


@dataclass(frozen=True)
class UpdateDeletePolicyTestCase:
    id: str
    update_policy: str
    delete_policy: str


# ------------------- Helper Functions -------------------


def find_resources_by_type(
    template: Template, resource_type: str, props: Optional[dict] = None
) -> Mapping[str, Any]:

    return template.find_resources(resource_type, props=props)


def get_single_resource_id(
    resources: Mapping[str, Any], resource_type: str = "resource"
) -> str:
    assert len(resources) == 1, f"expected exactly one {resource_type}, found {len(resources)}"
    return next(iter(resources))


def build_template(
    stack_id: str = "TestArchiveAppStack",
    config: Optional[DeploymentConfig] = None,
    env: Optional[Environment] = None,
):
    app = App()
    stack = ArchiveAppStack(app, stack_id, config=config, env=env)
    return Template.from_stack(stack)


# ------------------- Pytest Fixtures -------------------


@pytest.fixture(scope="module")
def template() -> Template:
    return build_template()


@pytest.fixture(scope="module")
def json_template(template: Template) -> Mapping[str, Any]:
    return template.to_json()
