from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


class OrganizationMember(SQLModel, table=True):
    __tablename__ = "organization_members"

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: str = Field(index=True)
    user_id: str = Field(index=True)
    role: str = Field(default="attendee")  # admin|organizer|speaker|attendee
