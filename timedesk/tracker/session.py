from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class SessionContext:
    """Bearer token and current employee, set by login and cleared by logout."""

    token: str | None = None
    employee: dict[str, Any] | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def employee_id(self) -> int | None:
        if not self.employee:
            return None
        return int(self.employee["id"])

    def set(self, token: str, employee: dict[str, Any]) -> None:
        self.token = token
        self.employee = dict(employee)

    def clear(self) -> None:
        self.token = None
        self.employee = None

    def auth_headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}
