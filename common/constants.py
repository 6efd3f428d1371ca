DEFAULT_ENV = "dev"

# Naming convention components
SERVICE_NAME = "archive"  # The application name
COMPONENT = "fullstack"  # The functional component/subsystem

# Network
VPC_NAME = "archive-vpc"
VPC_CIDR = "10.0.0.0/16"
MAX_AZS = 2
MIN_SUBNET_PREFIX = 28  # smallest subnet AWS will allocate
ENV_AGNOSTIC_MAX_AZS = 2  # CDK cap when the stack has no concrete account/region
SUBNET_VISIBILITIES = ("public", "private")
ANY_IPV4_CIDR = "0.0.0.0/0"
DEFAULT_REGION = "us-east-1"

# Ports
HTTP_PORT = 80
HTTPS_PORT = 443
SSH_PORT = 22
POSTGRES_PORT = 5432
MYSQL_PORT = 3306

# Database
DB_ENGINE = "postgres"
DB_ENGINE_VERSION = "17"
DB_NAME = "archive_db"
DB_BACKUP_RETENTION_DAYS = 0
DB_MAX_BACKUP_RETENTION_DAYS = 35
DB_SUBNET_VISIBILITY = "private"
DB_REMOVAL_POLICY = "destroy"
DB_ENGINES = ("postgres", "mysql", "mariadb")
DB_REMOVAL_POLICIES = ("destroy", "retain", "snapshot")

# Credentials
DB_MASTER_USER_SECRET_NAME = "db-master-user-secret"
DB_MASTER_USERNAME = "postgres"
DB_PASSWORD_LENGTH = 16
SECRET_PASSWORD_KEY = "password"
SECRET_USERNAME_KEY = "username"

# Access policy
SECURITY_GROUP_NAME = "database-sg"

# Compute
INSTANCE_SIZE_CLASS = "t3.micro"
KEY_PAIR_NAME = "EC2KeyPair"
COMPUTE_SUBNET_VISIBILITY = "public"
UBUNTU_FOCAL_AMI_PARAMETER = (
    "/aws/service/canonical/ubuntu/server/focal/stable/current/amd64/hvm/ebs-gp2/ami-id"
)

# CDK context key holding deployment overrides
CONFIG_CONTEXT_KEY = "deployment"
