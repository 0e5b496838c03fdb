from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import and_, select
from sqlalchemy.orm import Session

from app.core.auth import AuthUser
from app.users.models import TenantUser, User
from app.workflow.actors import Actor, ActorUser, AuthIdentity, TenantProfile
from app.workflow.errors import WorkflowAuthorizationError
from app.workflow.notifications import Recipient
from app.workflow.statuses import TenantRole, UserType


logger = logging.getLogger("app.users")


def _user_type(raw: str | None) -> UserType:
    try:
        return UserType(str(raw or UserType.USER.value).upper())
    except ValueError:
        return UserType.USER


@dataclass(slots=True)
class UserService:
    def get(self, session: Session, user_id: int | None) -> User | None:
        if user_id is None:
            return None
        return session.scalar(select(User).where(and_(User.id == user_id, User.deleted_at.is_(None))))

    def find_or_create(self, session: Session, auth_user: AuthUser) -> User:
        """Local user for an identity provider subject; super admins are stored as ADMIN."""
        local_type = UserType.ADMIN if _user_type(auth_user.type) != UserType.USER else UserType.USER
        user = session.scalar(select(User).where(User.auth_user_id == auth_user.sub))
        if user is None:
            user = User(
                auth_user_id=auth_user.sub,
                type=local_type.value,
                email=auth_user.email,
                first_name=auth_user.first_name,
                last_name=auth_user.last_name,
                phone=auth_user.phone,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info("user.created", extra={"entity_type": "user", "entity_id": user.id})
            return user

        changed = False
        for attr in ("email", "first_name", "last_name", "phone"):
            value = getattr(auth_user, attr)
            if value and getattr(user, attr) != value:
                setattr(user, attr, value)
                changed = True
        if user.type != local_type.value:
            user.type = local_type.value
            changed = True
        if changed:
            session.commit()
        return user

    def tenant_profile(self, session: Session, user: User, tenant_id: int | None) -> TenantProfile | None:
        if tenant_id is None:
            return None
        membership = session.scalar(
            select(TenantUser).where(
                and_(
                    TenantUser.tenant_id == tenant_id,
                    TenantUser.user_id == user.id,
                    TenantUser.deleted_at.is_(None),
                )
            )
        )
        if membership is None:
            return None
        return TenantProfile(id=membership.tenant_id, role=TenantRole(membership.role))

    def build_actor(
        self,
        session: Session,
        auth_user: AuthUser,
        *,
        profile_id: int | None = None,
        correlation_id: str | None = None,
    ) -> Actor:
        if auth_user.is_anonymous:
            raise WorkflowAuthorizationError("Authentication required")

        user = self.find_or_create(session, auth_user)
        profile = self.tenant_profile(session, user, profile_id)
        if profile_id is not None and profile is None:
            raise WorkflowAuthorizationError("Profile is not available for this user", details={"profile": profile_id})

        return Actor(
            user=to_actor_user(user),
            auth=AuthIdentity(
                id=auth_user.sub,
                type=_user_type(auth_user.type),
                admin_of_groups=tuple(auth_user.admin_of_groups),
            ),
            tenant_profile=profile,
            correlation_id=correlation_id,
        )

    def list_admins(self, session: Session) -> list[User]:
        return list(
            session.scalars(
                select(User)
                .where(and_(User.type == UserType.ADMIN.value, User.deleted_at.is_(None)))
                .order_by(User.id.asc())
            ).all()
        )

    def recipient(self, session: Session, user_id: int | None) -> Recipient | None:
        user = self.get(session, user_id)
        if user is None:
            return None
        return Recipient(email=user.email, is_admin=user.type == UserType.ADMIN.value)


def to_actor_user(user: User) -> ActorUser:
    return ActorUser(
        id=user.id,
        type=_user_type(user.type),
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
    )


user_service = UserService()
