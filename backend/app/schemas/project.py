"""
Snapcheck Backend — Project Schemas
=====================================

What:  Project list items and the paginated connection wrapper returned by
       GET /api/accounts/{slug}/projects.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.common import PageInfo


class ProjectItem(BaseModel):
    id: str
    name: str
    public: bool = Field(description="False when screenshots count against the quota")
    reference_branch: Optional[str] = None
    current_month_used_screenshots: int = Field(
        description="Screenshots uploaded since the account's period start"
    )


class ProjectConnection(BaseModel):
    page_info: PageInfo
    edges: List[ProjectItem]
