from enum import Enum

from pydantic import BaseModel


class Role(str, Enum):
    super_admin = "super_admin"
    admin = "admin"
    faculty = "faculty"
    student = "student"


class Principal(BaseModel):
    """The authenticated caller, as asserted by the bearer token."""

    id: str
    tenant_id: str | None = None
    role: Role

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.super_admin

    def can_manage(self, tenant_id: str) -> bool:
        if self.is_super_admin:
            return True
        return self.role == Role.admin and self.tenant_id == tenant_id
