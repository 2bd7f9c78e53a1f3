from __future__ import annotations

from typing import Iterable, Optional
from sqlmodel import Session, select

from live_insights.models.organization_member import OrganizationMember


class OrganizationMembersRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, member: OrganizationMember) -> OrganizationMember:
        self.session.add(member)
        self.session.commit()
        self.session.refresh(member)
        return member

    def get_role(self, organization_id: str, user_id: str) -> Optional[str]:
        statement = select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
        row = self.session.exec(statement).first()
        return row.role if row else None

    def has_any_role(self, organization_id: str, user_id: str, roles: Iterable[str]) -> bool:
        role = self.get_role(organization_id, user_id)
        return role is not None and role in set(roles)
