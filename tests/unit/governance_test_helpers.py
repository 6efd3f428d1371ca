from enum import Enum


def resource_governance_doc_url(resource: str) -> str:
    governance_doc_url = f"https://archive-internal-docs/{resource}-governance"
    return governance_doc_url


class AWSService(str, Enum):
    EC2 = "ec2"
    RDS = "rds"
    Security_Group = "security-group"
    Secrets_Manager = "secrets-manager"
    VPC = "vpc"
