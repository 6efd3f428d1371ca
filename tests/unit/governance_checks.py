from stack_test_helpers import find_resources_by_type, get_single_resource_id
from governance_test_helpers import AWSService, resource_governance_doc_url

ANY_IPV4_CIDR = "0.0.0.0/0"


def assert_database_port_not_public(template):
    governance_doc = resource_governance_doc_url(AWSService.RDS.value)
    databases = find_resources_by_type(template, "AWS::RDS::DBInstance")
    db_props = databases[get_single_resource_id(databases, "database")]["Properties"]
    db_port = int(db_props["Port"])

    groups = find_resources_by_type(template, "AWS::EC2::SecurityGroup")
    for group in groups.values():
        for ingress in group["Properties"].get("SecurityGroupIngress", []):
            if ingress["FromPort"] <= db_port <= ingress["ToPort"]:
                assert ingress["CidrIp"] != ANY_IPV4_CIDR, (
                    f"Database port {db_port} must only be reachable from inside the VPC "
                    f"according to archive security standards. see {governance_doc}"
                )


def assert_secret_has_no_plaintext_password(template):
    governance_doc = resource_governance_doc_url(AWSService.Secrets_Manager.value)
    secrets = find_resources_by_type(template, "AWS::SecretsManager::Secret")
    props = secrets[get_single_resource_id(secrets, "secret")]["Properties"]
    assert "SecretString" not in props, (
        "Database credentials must be generated by Secrets Manager, never embedded "
        f"in the template. see {governance_doc}"
    )
    assert "GenerateSecretString" in props
