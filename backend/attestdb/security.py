# backend/attestdb/security.py

"""
Request identity for attestdb.

Authentication happens upstream (identity provider + gateway). By the time a
request reaches this service the gateway has set:

- X-Tenant-Id      tenant the employee authenticated against
- X-Employee-Id    stable employee identifier
- X-Employee-Role  optional; `admin` / `compliance` may review all evidence

This module turns those headers into an `EmployeeIdentity` and offers the
FastAPI dependencies routers use for tenant and role checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Set

from fastapi import Depends, Header, HTTPException, status

REVIEWER_ROLES: Set[str] = {"admin", "compliance"}


@dataclass(frozen=True)
class EmployeeIdentity:
    tenant_id: str
    employee_id: str
    role: str = "employee"

    @property
    def is_reviewer(self) -> bool:
        return self.role in REVIEWER_ROLES


def _unauthorized(message: str = "Not authenticated") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "unauthorized", "message": message},
    )


def get_current_employee(
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
    x_employee_id: Optional[str] = Header(None, alias="X-Employee-Id"),
    x_employee_role: Optional[str] = Header(None, alias="X-Employee-Role"),
) -> EmployeeIdentity:
    tenant_id = (x_tenant_id or "").strip()
    employee_id = (x_employee_id or "").strip()
    if not tenant_id or not employee_id:
        raise _unauthorized()
    role = (x_employee_role or "employee").strip().lower() or "employee"
    return EmployeeIdentity(tenant_id=tenant_id, employee_id=employee_id, role=role)


def require_tenant(identity: EmployeeIdentity, tenant: str) -> EmployeeIdentity:
    """The path tenant must be the tenant the employee authenticated against."""
    if identity.tenant_id != tenant:
        raise _unauthorized()
    return identity


def require_roles(*roles: str) -> Callable[..., EmployeeIdentity]:
    allowed = {role.lower() for role in roles}

    def dependency(identity: EmployeeIdentity = Depends(get_current_employee)) -> EmployeeIdentity:
        if identity.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"error": "forbidden", "message": "Insufficient role for this operation"},
            )
        return identity

    return dependency
