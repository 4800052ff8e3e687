from dataclasses import dataclass

from konfi_events.domain.exceptions import PermissionDeniedError

USER_TYPE_ADMIN = "admin"
USER_TYPE_KONFI = "konfi"


@dataclass(frozen=True)
class AuthContext:
    """Caller identity as established by the upstream gateway."""

    user_id: str
    user_type: str
    organization_id: str
    role: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.user_type == USER_TYPE_ADMIN

    @property
    def is_konfi(self) -> bool:
        return self.user_type == USER_TYPE_KONFI


def require_admin(auth: AuthContext) -> None:
    if not auth.is_admin:
        raise PermissionDeniedError("Only admins may perform this operation")


def require_konfi(auth: AuthContext) -> None:
    if not auth.is_konfi:
        raise PermissionDeniedError("Only konfis can book events")
