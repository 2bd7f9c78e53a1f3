from __future__ import annotations

from typing import Optional
from sqlmodel import Session

from live_insights.models.live_session import LiveSession


class SessionsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, live_session: LiveSession) -> LiveSession:
        self.session.add(live_session)
        self.session.commit()
        self.session.refresh(live_session)
        return live_session

    def get(self, session_id: str) -> Optional[LiveSession]:
        return self.session.get(LiveSession, session_id)

    def update_status(self, live_session: LiveSession, status: str) -> LiveSession:
        live_session.status = status
        self.session.add(live_session)
        self.session.commit()
        self.session.refresh(live_session)
        return live_session
