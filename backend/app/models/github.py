"""
Snapcheck Backend — GitHub Mirror Models
==========================================

What:  Local copies of the GitHub accounts and repositories linked to
       Snapcheck accounts and projects.
Who:   GithubAccount feeds account avatars; GithubRepository.private decides
       whether a project with unset privacy counts against the screenshot quota.
"""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, BigIntId


class GithubAccount(Base):
    """A GitHub user or organization."""

    __tablename__ = "github_accounts"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    login: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="user",
        comment="GitHub account type: user, organization",
    )
    github_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True, unique=True)

    def __repr__(self) -> str:
        return f"<GithubAccount(id={self.id}, login='{self.login}')>"


class GithubRepository(Base):
    """A GitHub repository a project is linked to."""

    __tablename__ = "github_repositories"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_login: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    private: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<GithubRepository(id={self.id}, name='{self.name}', private={self.private})>"
