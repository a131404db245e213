import logging

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm

from storefront.api.deps import get_current_user, get_store, ok
from storefront.core.errors import Unauthorized
from storefront.core.security import create_token, hash_password, verify_password
from storefront.models.records import User
from storefront.models.schemas import UserCreate, UserLogin, UserOut
from storefront.store import Store

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_out(user: User) -> UserOut:
    return UserOut(id=user.id, name=user.name, email=user.email, role=user.role.value)


def _authenticate(store: Store, email: str, password: str) -> User:
    user = store.users.get_by_email(email)
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        raise Unauthorized("Invalid email or password")
    return user


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: UserCreate, store: Store = Depends(get_store)):
    user = store.users.insert(User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
    ))
    logger.info("registered user %s", user.id)
    token = create_token(user.id, user.role.value)
    return ok("Registration successful", user=_user_out(user), token=token)


@router.post("/login")
def login(payload: UserLogin, store: Store = Depends(get_store)):
    user = _authenticate(store, payload.email, payload.password)
    token = create_token(user.id, user.role.value)
    return ok("Login successful", user=_user_out(user), token=token)


@router.post("/token")
def token(form_data: OAuth2PasswordRequestForm = Depends(), store: Store = Depends(get_store)):
    # OAuth2 form flow, used by the interactive docs
    user = _authenticate(store, form_data.username, form_data.password)
    return {"access_token": create_token(user.id, user.role.value), "token_type": "bearer"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return ok(user=_user_out(user))


@router.post("/logout")
def logout(user: User = Depends(get_current_user)):
    # tokens are stateless; the client drops its copy
    logger.info("user %s logged out", user.id)
    return ok("Logout successful")
