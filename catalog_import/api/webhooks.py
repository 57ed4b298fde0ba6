"""Audit webhook subscription endpoints."""
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from catalog_import.api.deps import require_admin
from catalog_import.database import get_db
from catalog_import.exceptions import ResourceNotFoundError
from catalog_import.models.webhook import Webhook
from catalog_import.schemas.webhook import (
    WebhookCreate,
    WebhookResponse,
    WebhookTestResponse,
    WebhookUpdate,
)
from catalog_import.services.audit import test_webhook

router = APIRouter(
    prefix="/api/webhooks",
    tags=["webhooks"],
    dependencies=[Depends(require_admin)],
)


def _get_or_404(db: Session, webhook_id: int) -> Webhook:
    webhook = db.query(Webhook).filter(Webhook.id == webhook_id).first()
    if not webhook:
        raise ResourceNotFoundError("webhook", webhook_id)
    return webhook


@router.get("", response_model=List[WebhookResponse])
def list_webhooks(db: Session = Depends(get_db)):
    """List all audit webhook subscriptions."""
    return db.query(Webhook).order_by(Webhook.created_at.desc(), Webhook.id.desc()).all()


@router.post("", response_model=WebhookResponse, status_code=201)
def create_webhook(webhook: WebhookCreate, db: Session = Depends(get_db)):
    """
    Subscribe an URL to one audit event.

    Events: import.parsed, import.committed, import.commit_failed, import.undone.
    """
    db_webhook = Webhook(
        url=webhook.url, event_type=webhook.event_type, enabled=webhook.enabled
    )
    db.add(db_webhook)
    db.commit()
    db.refresh(db_webhook)

    return db_webhook


@router.get("/{webhook_id}", response_model=WebhookResponse)
def get_webhook(webhook_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, webhook_id)


@router.put("/{webhook_id}", response_model=WebhookResponse)
def update_webhook(
    webhook_id: int, webhook_update: WebhookUpdate, db: Session = Depends(get_db)
):
    """
    Update a webhook.

    Only provided fields will be updated.
    """
    db_webhook = _get_or_404(db, webhook_id)
    for field_name, value in webhook_update.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(db_webhook, field_name, value)

    db.commit()
    db.refresh(db_webhook)

    return db_webhook


@router.delete("/{webhook_id}", status_code=204)
def delete_webhook(webhook_id: int, db: Session = Depends(get_db)):
    webhook = _get_or_404(db, webhook_id)
    db.delete(webhook)
    db.commit()

    return None


@router.post("/{webhook_id}/test", response_model=WebhookTestResponse)
async def test_webhook_endpoint(webhook_id: int, db: Session = Depends(get_db)):
    """
    Send a sample audit event to the webhook URL and report the response.

    Args:
        webhook_id: ID of the webhook to test
    """
    webhook = _get_or_404(db, webhook_id)

    test_payload = {
        "event": webhook.event_type,
        "test": True,
        "data": {
            "id": "00000000-0000-0000-0000-000000000000",
            "source_type": "delimited",
            "created": 1,
            "updated": 0,
            "skipped": 0,
            "failed": 0,
        },
    }

    result = await test_webhook(webhook.url, test_payload)

    return WebhookTestResponse(**result)
