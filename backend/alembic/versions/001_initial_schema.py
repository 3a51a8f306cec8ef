"""Initial schema

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates users, teams, GitHub mirrors, accounts, plans, purchases,
       projects, screenshots and builds.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True)


def _timestamps(updated: bool = True):
    columns = [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]
    if updated:
        columns.append(
            sa.Column(
                "updated_at",
                sa.DateTime(timezone=True),
                server_default=sa.text("now()"),
                nullable=False,
            )
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column(
            "access_token",
            sa.String(64),
            nullable=False,
            unique=True,
            comment="Bearer token identifying the user on API calls",
        ),
        *_timestamps(),
    )

    op.create_table(
        "teams",
        _id(),
        *_timestamps(),
    )

    op.create_table(
        "team_users",
        _id(),
        sa.Column("team_id", sa.BigInteger(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "user_level",
            sa.String(20),
            nullable=False,
            server_default="member",
            comment="Membership level: owner, member",
        ),
        *_timestamps(updated=False),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_users_team_user"),
    )

    op.create_table(
        "github_accounts",
        _id(),
        sa.Column("login", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column(
            "type",
            sa.String(20),
            nullable=False,
            server_default="user",
            comment="GitHub account type: user, organization",
        ),
        sa.Column("github_id", sa.BigInteger(), nullable=True, unique=True),
    )

    op.create_table(
        "github_repositories",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_login", sa.String(255), nullable=True),
        sa.Column("private", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "plans",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "screenshots_limit_per_month",
            sa.Integer(),
            nullable=False,
            comment="Private screenshots allowed per period, -1 for unlimited",
        ),
        sa.Column("usage_based", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "fine_grained_access_control_included",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("github_plan_id", sa.Integer(), nullable=True),
        sa.Column("stripe_product_id", sa.String(255), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "accounts",
        _id(),
        sa.Column("user_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, unique=True),
        sa.Column("team_id", sa.BigInteger(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=True, unique=True),
        sa.Column("forced_plan_id", sa.BigInteger(), sa.ForeignKey("plans.id"), nullable=True),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("slug", sa.String(255), nullable=False, unique=True),
        sa.Column("github_account_id", sa.BigInteger(), sa.ForeignKey("github_accounts.id"), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(user_id IS NULL AND team_id IS NOT NULL) OR "
            "(user_id IS NOT NULL AND team_id IS NULL)",
            name="ck_accounts_owner",
        ),
    )

    op.create_table(
        "purchases",
        _id(),
        sa.Column("account_id", sa.BigInteger(), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("plan_id", sa.BigInteger(), sa.ForeignKey("plans.id"), nullable=False),
        sa.Column("purchaser_id", sa.BigInteger(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "source",
            sa.String(20),
            nullable=False,
            server_default="github",
            comment="Where the purchase was made: github, stripe",
        ),
        sa.Column("start_date", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("trial_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payment_method_filled", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_purchases_account_id", "purchases", ["account_id"])

    op.create_table(
        "projects",
        _id(),
        sa.Column("account_id", sa.BigInteger(), sa.ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "token",
            sa.String(64),
            nullable=False,
            unique=True,
            comment="Upload token used by CI to send screenshots",
        ),
        sa.Column("private", sa.Boolean(), nullable=True),
        sa.Column("github_repository_id", sa.BigInteger(), sa.ForeignKey("github_repositories.id"), nullable=True),
        sa.Column("reference_branch", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("account_id", "name", name="uq_projects_account_name"),
    )
    op.create_index("ix_projects_account_id", "projects", ["account_id"])

    op.create_table(
        "screenshot_buckets",
        _id(),
        sa.Column("project_id", sa.BigInteger(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default="default"),
        sa.Column("branch", sa.String(255), nullable=False),
        sa.Column("commit", sa.String(40), nullable=False),
        sa.Column("complete", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(updated=False),
    )
    op.create_index("ix_screenshot_buckets_project_id", "screenshot_buckets", ["project_id"])

    op.create_table(
        "screenshots",
        _id(),
        sa.Column(
            "screenshot_bucket_id",
            sa.BigInteger(),
            sa.ForeignKey("screenshot_buckets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(1024), nullable=False),
        sa.Column("s3_id", sa.String(255), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index("ix_screenshots_screenshot_bucket_id", "screenshots", ["screenshot_bucket_id"])
    op.create_index("idx_screenshots_created_at", "screenshots", ["created_at"])

    op.create_table(
        "builds",
        _id(),
        sa.Column("project_id", sa.BigInteger(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False, server_default="default"),
        sa.Column(
            "job_status",
            sa.String(20),
            nullable=False,
            server_default="pending",
            comment="Processing state: pending, progress, complete, error, aborted",
        ),
        sa.Column("type", sa.String(20), nullable=True, comment="Build type: reference, check, orphan"),
        sa.Column("base_screenshot_bucket_id", sa.BigInteger(), sa.ForeignKey("screenshot_buckets.id"), nullable=True),
        sa.Column("compare_screenshot_bucket_id", sa.BigInteger(), sa.ForeignKey("screenshot_buckets.id"), nullable=False),
        sa.Column("batch_count", sa.Integer(), nullable=True),
        sa.Column("total_batch", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "number", name="uq_builds_project_number"),
    )
    op.create_index("idx_builds_job_status_created_at", "builds", ["job_status", "created_at"])

    op.create_table(
        "screenshot_diffs",
        _id(),
        sa.Column("build_id", sa.BigInteger(), sa.ForeignKey("builds.id", ondelete="CASCADE"), nullable=False),
        sa.Column("base_screenshot_id", sa.BigInteger(), sa.ForeignKey("screenshots.id"), nullable=True),
        sa.Column("compare_screenshot_id", sa.BigInteger(), sa.ForeignKey("screenshots.id"), nullable=True),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            comment="Pairing result: added, removed, changed, unchanged",
        ),
        *_timestamps(updated=False),
    )
    op.create_index("ix_screenshot_diffs_build_id", "screenshot_diffs", ["build_id"])


def downgrade() -> None:
    op.drop_table("screenshot_diffs")
    op.drop_table("builds")
    op.drop_table("screenshots")
    op.drop_table("screenshot_buckets")
    op.drop_table("projects")
    op.drop_table("purchases")
    op.drop_table("accounts")
    op.drop_table("plans")
    op.drop_table("github_repositories")
    op.drop_table("github_accounts")
    op.drop_table("team_users")
    op.drop_table("teams")
    op.drop_table("users")
