from dataclasses import dataclass, field

from jose import JWTError, jwt
from starlette.requests import Request

from app.core.config import get_settings

ANONYMOUS_SUB = "anonymous"


@dataclass
class AuthUser:
    sub: str
    type: str = "USER"
    admin_of_groups: list[str] = field(default_factory=list)
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.sub == ANONYMOUS_SUB


def _anonymous() -> AuthUser:
    return AuthUser(sub=ANONYMOUS_SUB)


async def get_current_user(request: Request) -> AuthUser:
    auth_header = request.headers.get("authorization", "")
    token = auth_header.replace("Bearer ", "") if auth_header.startswith("Bearer ") else ""

    if not token:
        return _anonymous()

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return _anonymous()

    subject = str(payload.get("sub") or ANONYMOUS_SUB)
    groups = payload.get("admin_of_groups", [])
    if not isinstance(groups, list):
        groups = []
    user_type = str(payload.get("type") or "USER").upper()
    if user_type not in {"USER", "ADMIN", "SUPER_ADMIN"}:
        user_type = "USER"

    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = subject
    return AuthUser(
        sub=subject,
        type=user_type,
        admin_of_groups=[str(group) for group in groups],
        email=payload.get("email"),
        first_name=payload.get("first_name"),
        last_name=payload.get("last_name"),
        phone=payload.get("phone"),
    )
