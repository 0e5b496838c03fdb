from __future__ import annotations

from dataclasses import dataclass

from app.workflow.statuses import TenantRole, UserType


@dataclass(frozen=True, slots=True)
class ActorUser:
    id: int
    type: UserType
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass(frozen=True, slots=True)
class AuthIdentity:
    """Raw claims of the identity provider account behind the local user."""

    id: str
    type: UserType
    admin_of_groups: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class TenantProfile:
    id: int
    role: TenantRole


@dataclass(frozen=True, slots=True)
class Actor:
    """Identity evaluated against workflow entities for one request.

    ``user`` is the local user row, ``auth`` the identity provider account and
    ``tenant_profile`` the organization the caller acts for, if any.
    """

    user: ActorUser
    auth: AuthIdentity
    tenant_profile: TenantProfile | None = None
    correlation_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.user.type in {UserType.ADMIN, UserType.SUPER_ADMIN}

    @property
    def is_super_admin(self) -> bool:
        return self.auth.type == UserType.SUPER_ADMIN or self.user.type == UserType.SUPER_ADMIN

    @property
    def administers_groups(self) -> bool:
        return bool(self.auth.admin_of_groups)


@dataclass(slots=True)
class TransitionContext:
    """Per-call flags threaded from pre-validation to post-commit reactions.

    ``actor`` is ``None`` for system-originated calls (workers, internal
    callbacks), which bypass human permission checks.
    """

    actor: Actor | None
    status_changed: bool = False
    auto_approve: bool = False
    comment: str | None = None

    @property
    def is_system(self) -> bool:
        return self.actor is None

    @property
    def user_id(self) -> int | None:
        return self.actor.user.id if self.actor is not None else None
