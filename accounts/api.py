"""FastAPI application exposing user account and transfer endpoints."""
from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from pydantic import BaseModel, Field, field_validator
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .authentication import Authenticator, PasswordHasher
from .config import Settings, load_settings
from .database import Database, resolve_database_path
from .errors import AccountsError, ErrorKind, InvalidCredentialsError
from .lockout import LockoutGuard, LockoutStore
from .models import LoginResult, Transfer, User
from .query import UserQuery
from .transfers import TransferService
from .users import UserService

logger = logging.getLogger("accounts.api")

ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DUPLICATE: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.RATE_LIMITED: status.HTTP_403_FORBIDDEN,
    ErrorKind.COLLABORATOR_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _normalize_email_field(value: str) -> str:
    stripped = value.strip()
    local, _, domain = stripped.partition("@")
    if not local or not domain or "@" in domain or " " in stripped:
        raise ValueError("email must be a valid email address")
    return stripped


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    user_id: int
    name: str
    email: str


class CreateUserRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    password: str = Field(..., min_length=1)
    password_confirm: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be empty")
        return stripped

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _normalize_email_field(value)


class CreateUserResponse(BaseModel):
    name: str
    email: str


class UpdateUserRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be empty")
        return stripped

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return _normalize_email_field(value)


class ChangePasswordRequest(BaseModel):
    password_old: str = Field(..., min_length=1)
    password_new: str = Field(..., min_length=1)
    password_confirm: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str


class UserSummary(BaseModel):
    id: int
    name: str
    email: str


class UserListResponse(BaseModel):
    page_number: int
    page_size: Optional[int]
    count: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool
    data: List[UserSummary]


class IdentifierResponse(BaseModel):
    id: int


class CreateTransferRequest(BaseModel):
    from_user_id: int = Field(..., ge=1)
    to_user_id: int = Field(..., ge=1)
    amount: float = Field(..., gt=0)


class UpdateTransferRequest(BaseModel):
    amount: float = Field(..., gt=0)


class TransferResponse(BaseModel):
    id: int
    from_user_id: int
    to_user_id: int
    amount: float
    timestamp: datetime


def user_to_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, name=user.name, email=user.email)


def transfer_to_response(transfer: Transfer) -> TransferResponse:
    return TransferResponse(
        id=transfer.id,
        from_user_id=transfer.from_user_id,
        to_user_id=transfer.to_user_id,
        amount=transfer.amount,
        timestamp=transfer.timestamp,
    )


def parse_int_param(raw: Optional[str]) -> Optional[int]:
    """Parse a query-string integer, returning ``None`` for missing or junk values."""

    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _trusted_proxy_hosts() -> list[str] | str:
    raw = os.getenv("ACCOUNTS_TRUSTED_PROXIES")
    if not raw:
        return "*"
    hosts = [item.strip() for item in raw.split(",") if item.strip()]
    return hosts or "*"


def _build_auth_dependency(guard: LockoutGuard):
    basic_security = HTTPBasic(auto_error=False)

    async def dependency(
        credentials: HTTPBasicCredentials | None = Depends(basic_security),
    ) -> LoginResult:
        if credentials is None:
            raise InvalidCredentialsError("Missing authentication credentials")
        return await guard.attempt_login(credentials.username, credentials.password)

    return dependency


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    hasher: PasswordHasher | None = None,
    lockout_store: LockoutStore | None = None,
    clock: Optional[Callable[[], datetime]] = None,
    initialize_database: bool = False,
) -> FastAPI:
    """Create the accounts API application."""

    if database is None:
        db_path = resolve_database_path(os.getenv("ACCOUNTS_DB_PATH"))
        database = Database(db_path)
        database.initialize()
    elif initialize_database:
        database.initialize()

    if settings is None:
        settings = load_settings()
    if hasher is None:
        hasher = PasswordHasher()

    authenticator = Authenticator(database, hasher)
    guard = LockoutGuard(
        authenticator,
        store=lockout_store,
        max_attempts=settings.lockout_max_attempts,
        window=settings.lockout_window,
        clock=clock,
        normalize_email=settings.lockout_normalize_email,
    )
    users = UserService(
        database,
        hasher,
        password_min_length=settings.password_min_length,
        password_max_length=settings.password_max_length,
    )
    transfers = TransferService(database)

    app = FastAPI(
        title="Accounts Service",
        description="User account management and balance transfers",
        version="1.0.0",
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts())
    app.state.database = database
    app.state.settings = settings
    app.state.lockout_guard = guard

    current_user = _build_auth_dependency(guard)

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/authentication/login", response_model=LoginResponse)
    async def login(payload: LoginRequest) -> LoginResponse:
        result = await guard.attempt_login(payload.email, payload.password)
        return LoginResponse(user_id=result.user_id, name=result.name, email=result.email)

    protected_router = APIRouter(dependencies=[Depends(current_user)])

    @protected_router.get("/users", response_model=UserListResponse)
    async def list_users(
        page_number: Optional[str] = Query(default=None),
        page_size: Optional[str] = Query(default=None),
        search: Optional[str] = Query(default=None),
        sort: Optional[str] = Query(default=None),
    ) -> UserListResponse:
        query = UserQuery(
            page=parse_int_param(page_number) or 1,
            page_size=parse_int_param(page_size),
            search=search,
            sort=sort,
        )
        result = users.list_users(query)
        return UserListResponse(**result.to_dict())

    @protected_router.post("/users", response_model=CreateUserResponse)
    async def create_user(payload: CreateUserRequest) -> CreateUserResponse:
        user = users.create_user(
            payload.name,
            payload.email,
            payload.password,
            payload.password_confirm,
        )
        return CreateUserResponse(name=user.name, email=user.email)

    @protected_router.get("/users/{user_id}", response_model=UserResponse)
    async def read_user(user_id: int) -> UserResponse:
        return user_to_response(users.get_user(user_id))

    @protected_router.put("/users/{user_id}", response_model=IdentifierResponse)
    async def update_user(user_id: int, payload: UpdateUserRequest) -> IdentifierResponse:
        users.update_user(user_id, payload.name, payload.email)
        return IdentifierResponse(id=user_id)

    @protected_router.delete("/users/{user_id}", response_model=IdentifierResponse)
    async def delete_user(user_id: int) -> IdentifierResponse:
        users.delete_user(user_id)
        return IdentifierResponse(id=user_id)

    @protected_router.post("/users/{user_id}/change-password", response_model=IdentifierResponse)
    async def change_password(user_id: int, payload: ChangePasswordRequest) -> IdentifierResponse:
        users.change_password(
            user_id,
            payload.password_old,
            payload.password_new,
            payload.password_confirm,
        )
        return IdentifierResponse(id=user_id)

    @protected_router.get("/transfers", response_model=List[TransferResponse])
    async def list_transfers() -> List[TransferResponse]:
        return [transfer_to_response(transfer) for transfer in transfers.list_transfers()]

    @protected_router.get("/transfers/{transfer_id}", response_model=TransferResponse)
    async def read_transfer(transfer_id: int) -> TransferResponse:
        return transfer_to_response(transfers.get_transfer(transfer_id))

    @protected_router.post(
        "/transfers",
        response_model=TransferResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def create_transfer(payload: CreateTransferRequest) -> TransferResponse:
        transfer = transfers.create_transfer(payload.from_user_id, payload.to_user_id, payload.amount)
        return transfer_to_response(transfer)

    @protected_router.put("/transfers/{transfer_id}", response_model=TransferResponse)
    async def update_transfer(transfer_id: int, payload: UpdateTransferRequest) -> TransferResponse:
        return transfer_to_response(transfers.update_transfer(transfer_id, payload.amount))

    @protected_router.delete("/transfers/{transfer_id}", response_model=IdentifierResponse)
    async def delete_transfer(transfer_id: int) -> IdentifierResponse:
        transfers.delete_transfer(transfer_id)
        return IdentifierResponse(id=transfer_id)

    app.include_router(protected_router)

    @app.exception_handler(AccountsError)
    async def handle_accounts_error(_: Request, exc: AccountsError):
        status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
        if exc.kind is ErrorKind.COLLABORATOR_UNAVAILABLE:
            logger.warning("Request failed because a backing service is unavailable: %s", exc.message)
        headers: Dict[str, str] = {}
        if exc.kind is ErrorKind.RATE_LIMITED:
            retry_after = getattr(exc, "retry_after", 0)
            if retry_after:
                headers["Retry-After"] = str(retry_after)
        elif exc.kind is ErrorKind.INVALID_CREDENTIALS:
            headers["WWW-Authenticate"] = "Basic"
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.kind.value},
            headers=headers or None,
        )

    return app


__all__ = ["ERROR_STATUS_CODES", "create_app", "parse_int_param"]
