"""Dependency injection for FastAPI endpoints"""

from typing import Optional

from fastapi import BackgroundTasks, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from tradecredit.domain.models import Actor, Role
from tradecredit.infrastructure.clients.notifications import NotificationClient
from tradecredit.infrastructure.database.session import get_db
from tradecredit.services.application_service import ApplicationService


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_actor(
    x_actor_role: Optional[str] = Header(None, description="Role claim from the identity provider"),
    x_importer_id: Optional[str] = Header(None, description="Importer identity, required for importers"),
) -> Actor:
    """Build the caller identity from the role claim headers"""
    try:
        role = Role(x_actor_role)
    except ValueError:
        raise HTTPException(status_code=401, detail="Missing or invalid role claim")

    if role == Role.IMPORTER and not x_importer_id:
        raise HTTPException(status_code=401, detail="Importer identity claim is required")

    return Actor(role=role, importer_id=x_importer_id)


def get_notification_client() -> NotificationClient:
    """Provide notification webhook client instance"""
    return NotificationClient()


def get_application_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
) -> ApplicationService:
    """Service whose events are delivered after the response, never gating the transition"""

    def dispatch(event) -> None:
        background_tasks.add_task(notifier.send_event, event)

    return ApplicationService(db, dispatch=dispatch)
