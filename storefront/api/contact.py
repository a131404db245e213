import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.api.deps import get_admin_user, get_store, ok
from storefront.models.records import Contact, ContactStatus, User
from storefront.models.schemas import ContactCreate, Pagination
from storefront.store import Store

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("", status_code=201)
def submit(payload: ContactCreate, store: Store = Depends(get_store)):
    contact = store.contacts.insert(Contact(
        name=payload.name,
        email=payload.email.lower(),
        phone=payload.phone or None,
        message=payload.message,
    ))
    logger.info("contact message %s received", contact.id)
    return ok(
        "Message received, we will get back to you soon",
        contact={"id": contact.id, "name": contact.name, "email": contact.email, "created_at": contact.created_at},
    )

@router.get("")
def list_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ContactStatus] = None,
    admin: User = Depends(get_admin_user),
    store: Store = Depends(get_store),
):
    contacts = store.contacts.list(status, (page - 1) * limit, limit)
    return ok(contacts=contacts, pagination=Pagination.of(page, limit, store.contacts.count(status)))
