"""CloudFormation-shaped submission manifest for a deployment graph.

The manifest is what a reviewer or an external engine sees before CDK
renders real constructs: one entry per resource, with references written
as ``Ref`` intrinsics so the dependency edges can be re-derived from the
document alone. It never contains secret material.
"""
from functools import singledispatch
from typing import Any, Iterator, Mapping

from infra_graph.access_policy import AccessPolicy, AccessRule, SelectorKind
from infra_graph.compute import ComputeResource
from infra_graph.credentials import CredentialRecord
from infra_graph.database import DatabaseResource, TeardownPolicy
from infra_graph.deployment_graph import DeploymentGraph, Edge
from infra_graph.network import NetworkTopology
from infra_graph.references import RESOURCE_TYPES, ResourceKind, ResourceRef

_KIND_BY_TYPE = {value: key for key, value in RESOURCE_TYPES.items()}


def _ref(ref: ResourceRef) -> dict:
    return {"Ref": ref.logical_id}


@singledispatch
def resource_properties(resource) -> dict:
    raise TypeError(f"No manifest rendering for {type(resource).__name__}")


@resource_properties.register
def _(resource: CredentialRecord) -> dict:
    policy = resource.policy
    return {
        "Name": resource.secret_name,
        "Description": resource.description,
        "GenerateSecretString": {
            "SecretStringTemplate": resource.secret_string_template(),
            "GenerateStringKey": resource.password.key,
            "PasswordLength": policy.length,
            "ExcludePunctuation": policy.exclude_punctuation,
            "ExcludeCharacters": policy.exclude_characters,
        },
    }


@resource_properties.register
def _(resource: NetworkTopology) -> dict:
    return {
        "CidrBlock": resource.address_space,
        "Tags": [{"Key": "Name", "Value": resource.name}],
        "Subnets": [
            {
                "AvailabilityZoneIndex": subnet.zone_index,
                "Visibility": subnet.visibility.value,
                "CidrBlock": subnet.cidr,
            }
            for subnet in resource.subnets
        ],
    }


def _ingress(rule: AccessRule) -> dict:
    entry = {
        "IpProtocol": rule.protocol.value,
        "FromPort": rule.port,
        "ToPort": rule.port,
        "Description": rule.description,
    }
    if rule.source.kind is SelectorKind.OWN_NETWORK:
        entry["CidrIp"] = {"Fn::GetAtt": [rule.source.network.logical_id, "CidrBlock"]}
    else:
        entry["CidrIp"] = rule.source.cidr
    return entry


@resource_properties.register
def _(resource: AccessPolicy) -> dict:
    return {
        "GroupName": resource.name,
        "GroupDescription": resource.description,
        "VpcId": _ref(resource.bound_network),
        "SecurityGroupIngress": [_ingress(rule) for rule in resource.rules],
    }


@resource_properties.register
def _(resource: DatabaseResource) -> dict:
    return {
        "Engine": resource.engine.kind.value,
        "EngineVersion": resource.engine.version,
        "DBInstanceClass": f"db.{resource.engine.instance_size_class}",
        "Port": str(resource.port),
        "DBName": resource.database_name,
        "VpcId": _ref(resource.bound_network),
        "SubnetVisibility": resource.subnet_visibility.value,
        "VPCSecurityGroups": [_ref(resource.bound_policy)],
        "MasterUserSecret": {
            "SecretArn": _ref(resource.credential.ref),
            "UsernameKey": resource.credential.username_key,
            "PasswordKey": resource.credential.password_key,
        },
        "BackupRetentionPeriod": resource.backup_retention_days,
        "DeleteAutomatedBackups": resource.delete_artifacts_on_teardown,
    }


@resource_properties.register
def _(resource: ComputeResource) -> dict:
    return {
        "InstanceType": resource.instance_size_class,
        "ImageId": f"{{{{resolve:ssm:{resource.machine_image.parameter_name}}}}}",
        "KeyName": resource.identity_key_ref,
        "VpcId": _ref(resource.bound_network),
        "SubnetVisibility": resource.subnet_visibility.value,
        "SecurityGroupIds": [_ref(resource.bound_policy)],
    }


DELETION_POLICIES = {
    TeardownPolicy.DESTROY: "Delete",
    TeardownPolicy.RETAIN: "Retain",
    TeardownPolicy.SNAPSHOT: "Snapshot",
}


def _deletion_policy(resource) -> str:
    if isinstance(resource, DatabaseResource):
        return DELETION_POLICIES[resource.removal_policy]
    return "Delete"


def to_manifest(graph: DeploymentGraph) -> dict:
    resources = {}
    for resource in graph.topological_order():
        entry = {
            "Type": RESOURCE_TYPES[resource.ref.kind],
            "Properties": resource_properties(resource),
            "DeletionPolicy": _deletion_policy(resource),
        }
        depends_on = sorted({dep.logical_id for dep in resource.dependencies()})
        if depends_on:
            entry["DependsOn"] = depends_on
        resources[resource.logical_id] = entry
    return {"Description": f"Deployment graph {graph.name}", "Resources": resources}


def _intrinsic_targets(value: Any) -> Iterator[str]:
    if isinstance(value, Mapping):
        if "Ref" in value:
            yield value["Ref"]
        elif "Fn::GetAtt" in value:
            yield value["Fn::GetAtt"][0]
        else:
            for nested in value.values():
                yield from _intrinsic_targets(nested)
    elif isinstance(value, list):
        for nested in value:
            yield from _intrinsic_targets(nested)


def edges_from_manifest(manifest: Mapping[str, Any]) -> frozenset[Edge]:
    """Re-derive (dependent, dependency) edges from the Ref/GetAtt intrinsics."""
    resources = manifest["Resources"]
    kinds = kinds_in_manifest(manifest)
    edges = set()
    for logical_id, entry in resources.items():
        source = ResourceRef(kinds[logical_id], logical_id)
        for target in _intrinsic_targets(entry.get("Properties", {})):
            edges.add((source, ResourceRef(kinds[target], target)))
    return frozenset(edges)


def kinds_in_manifest(manifest: Mapping[str, Any]) -> dict[str, ResourceKind]:
    return {
        logical_id: _KIND_BY_TYPE[entry["Type"]]
        for logical_id, entry in manifest["Resources"].items()
    }
