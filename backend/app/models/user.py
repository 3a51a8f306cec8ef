"""
Snapcheck Backend — User & Team Models
========================================

What:  ORM models for the `users`, `teams` and `team_users` tables.
How:   A user authenticates with a bearer `access_token`. Teams have no
       credentials of their own; membership rows carry the member's level.
Who:   Queried by the auth dependency and by the permission checks in
       AccountService.

Membership levels:
    owner:  may read and write the team's account
    member: may read the team's account
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntId, UTCDateTime, utcnow


class User(Base):
    """A person using Snapcheck. Every user owns exactly one personal account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    access_token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Bearer token identifying the user on API calls",
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"


class Team(Base):
    """A group of users sharing a team account."""

    __tablename__ = "teams"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class TeamUser(Base):
    """Membership of a user in a team."""

    __tablename__ = "team_users"

    OWNER = "owner"
    MEMBER = "member"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(ForeignKey("teams.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    user_level: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=MEMBER,
        comment="Membership level: owner, member",
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_users_team_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<TeamUser(team_id={self.team_id}, user_id={self.user_id}, "
            f"level='{self.user_level}')>"
        )
