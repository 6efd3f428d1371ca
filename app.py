#!/usr/bin/env python3
"""AWS CDK entrypoint for provisioning the archive full-stack deployment.

This module builds the deployment graph (network, shared security group,
database credentials, PostgreSQL instance and full-stack EC2 host) from the
``deployment`` CDK context and renders it into a single stack sourced from
the CDK CLI defaults. Update or override the environment variables to target
a different account or region.
"""
import os

import aws_cdk as cdk
from aws_cdk import Environment

import common.constants as constants
from archive_app.archive_app_stack import ArchiveAppStack
from common.config import DeploymentConfig
from common.naming_context import NamingContext

app = cdk.App()

env = Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION", constants.DEFAULT_REGION),
)

config = DeploymentConfig.from_mapping(
    app.node.try_get_context(constants.CONFIG_CONTEXT_KEY)
)
naming = NamingContext(env=os.getenv("DEPLOY_ENV", constants.DEFAULT_ENV))

ArchiveAppStack(
    app,
    config.name,
    config=config,
    naming=naming,
    env=env,
)

app.synth()
