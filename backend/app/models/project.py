"""
Snapcheck Backend — Project Model
===================================

What:  ORM model for the `projects` table.
How:   A project belongs to an account and receives screenshot uploads
       authenticated by its `token`.

Privacy:
    private = True   → counts against the account's screenshot quota
    private = False  → public, never counted
    private = NULL   → inherits the linked GitHub repository's privacy
                       (public when no repository is linked)
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntId, UTCDateTime, utcnow


class Project(Base):
    """A visual-testing project."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Upload token used by CI to send screenshots",
    )
    private: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    github_repository_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("github_repositories.id"), nullable=True
    )
    reference_branch: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("account_id", "name", name="uq_projects_account_name"),
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, account_id={self.account_id}, name='{self.name}')>"
