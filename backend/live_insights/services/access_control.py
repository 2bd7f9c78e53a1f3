from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from sqlmodel import Session

from live_insights.errors import ForbiddenError, NotFoundError, UnauthorizedError
from live_insights.models.live_session import LiveSession
from live_insights.repositories.organizations import OrganizationMembersRepository
from live_insights.repositories.sessions import SessionsRepository

ORG_MANAGER_ROLES = ("admin", "organizer")


@dataclass(frozen=True)
class Caller:
    user_id: str
    email: Optional[str] = None


class AccessChecker(Protocol):
    def has_access(self, caller: Caller, live_session: LiveSession) -> bool:
        ...


class SessionAccessChecker:
    """Speaker of the session, or admin/organizer of its organization."""

    def __init__(self, session: Session) -> None:
        self.members = OrganizationMembersRepository(session)

    def has_access(self, caller: Caller, live_session: LiveSession) -> bool:
        if live_session.speaker_user_id and live_session.speaker_user_id == caller.user_id:
            return True
        if (
            caller.email
            and live_session.speaker_email
            and live_session.speaker_email.strip().lower() == caller.email.strip().lower()
        ):
            return True
        if live_session.organization_id:
            return self.members.has_any_role(live_session.organization_id, caller.user_id, ORG_MANAGER_ROLES)
        return False


def authorize_session(
    session: Session,
    caller: Optional[Caller],
    session_id: str,
    checker: Optional[AccessChecker] = None,
) -> LiveSession:
    if caller is None or not caller.user_id:
        raise UnauthorizedError()
    live_session = SessionsRepository(session).get(session_id)
    if live_session is None:
        raise NotFoundError()
    checker = checker or SessionAccessChecker(session)
    if not checker.has_access(caller, live_session):
        raise ForbiddenError("Access denied to this session")
    return live_session
