from typing import Optional

from attrs import define, field

import common.constants as constants


@define(slots=True, frozen=True)
class NamingContext:
    env: str = field(
        default=constants.DEFAULT_ENV,
        metadata={"description": "Deployment environment (dev, staging, prod)"},
    )
    service: str = field(default=constants.SERVICE_NAME, init=False)
    component: str = field(default=constants.COMPONENT)

    # ---------- naming ----------
    def build_resource_name(
        self, resource_type: str, action: Optional[str] = None
    ) -> str:
        """Build resource name with optional action.

        Examples:
            - Without action: archive-fullstack-vpc-dev
            - With action: archive-fullstack-web-instance-dev
        """
        if action:
            return f"{self.service}-{self.component}-{action}-{resource_type}-{self.env}".lower()
        return f"{self.service}-{self.component}-{resource_type}-{self.env}".lower()

    def build_resource_id(self, resource_type: str, action: Optional[str] = None) -> str:
        """Build resource ID with optional action.

        Examples:
            - Without action: ArchiveFullstackVpc
            - With action: ArchiveFullstackWebInstance
        """
        if action:
            return (
                f"{self.service.capitalize()}"
                f"{self.component.capitalize()}"
                f"{action.capitalize()}"
                f"{resource_type.capitalize()}"
            )
        return (
            f"{self.service.capitalize()}"
            f"{self.component.capitalize()}"
            f"{resource_type.capitalize()}"
        )
