from typing import Any, Dict

from fastapi import Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from storefront.core.errors import Forbidden, Unauthorized
from storefront.core.security import decode_token
from storefront.models.records import Caller, Role, User
from storefront.services.orders_service import OrderWorkflow
from storefront.store import Store

oauth2 = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

def get_store(request: Request) -> Store:
    return request.app.state.store

def get_workflow(request: Request) -> OrderWorkflow:
    return request.app.state.workflow

def get_current_user(token: str = Depends(oauth2), store: Store = Depends(get_store)) -> User:
    try:
        payload = decode_token(token)
    except JWTError:
        raise Unauthorized("Invalid or expired token")
    user = store.users.get(payload.get("sub") or "")
    if user is None or not user.is_active:
        raise Unauthorized("User not found or disabled")
    return user

def get_caller(user: User = Depends(get_current_user)) -> Caller:
    return Caller(user_id=user.id, role=user.role)

def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if user.role != Role.ADMIN:
        raise Forbidden()
    return user

def ok(message: str = "OK", **data: Any) -> Dict[str, Any]:
    """Success envelope shared by every route."""
    return {"success": True, "message": message, "data": jsonable_encoder(data)}
