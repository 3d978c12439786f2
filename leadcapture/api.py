"""FastAPI application exposing account, contact and dashboard endpoints."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from starlette.middleware.sessions import SessionMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .accounts import CredentialStore, EmailTakenError
from .config import Settings, load_settings
from .contacts import ContactRecordStore, RecordNotFoundError, UnknownOwnerError
from .database import Database
from .extractors import Extractor, InvalidImageError
from .insights import (
    ALL_OWNERS,
    admin_view,
    dashboard_stats,
    distinct_company_count,
    month_to_date_count,
    owner_name,
    per_owner_count,
    search,
)
from .models import Account, ContactRecord, Role

logger = logging.getLogger("leadcapture.api")

_EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
_REQUIRED_CONTACT_FIELDS = ("name", "email", "phone", "company", "position")


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1)
    role: Role = Role.USER


class LoginRequest(BaseModel):
    email: str
    password: str
    role: Role = Role.USER


class AccountResponse(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    created_at: datetime


class AccountSummaryResponse(AccountResponse):
    submissions: int


class ContactPayload(BaseModel):
    """Contact form fields; unrecognised keys are kept as extra payload."""

    model_config = ConfigDict(extra="allow")

    name: str
    email: str
    phone: str
    company: str
    position: str
    address: str = ""
    website: str = ""
    notes: str = ""

    @field_validator(*_REQUIRED_CONTACT_FIELDS)
    @classmethod
    def _require_value(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("field is required")
        return stripped

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str) -> str:
        if not _EMAIL_PATTERN.fullmatch(value):
            raise ValueError("email is invalid")
        return value

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump()


class ContactResponse(BaseModel):
    id: str
    owner_id: str
    submitted_at: datetime
    fields: Dict[str, Any]
    owner_name: Optional[str] = None


class UserStatsResponse(BaseModel):
    total_submissions: int
    month_to_date: int
    unique_companies: int


class AdminStatsResponse(UserStatsResponse):
    total_users: int
    active_users: int
    average_per_user: int


def account_to_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        name=account.name,
        email=account.email,
        role=account.role,
        created_at=account.created_at,
    )


def contact_to_response(record: ContactRecord, *, owner: Optional[str] = None) -> ContactResponse:
    return ContactResponse(
        id=record.id,
        owner_id=record.owner_id,
        submitted_at=record.submitted_at,
        fields=dict(record.fields),
        owner_name=owner,
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_app(
    *,
    database: Optional[Database] = None,
    settings: Optional[Settings] = None,
    session_secret: Optional[str] = None,
    extractors: Optional[Iterable[Extractor]] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    """Create the lead capture HTTP application."""

    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
    database.initialize()

    if session_secret is None:
        session_secret = settings.session_secret
    if not session_secret:
        raise RuntimeError("LEADCAPTURE_SESSION_SECRET must be configured to serve the API")

    accounts = CredentialStore(database)
    contacts = ContactRecordStore(database, accounts)

    app = FastAPI(title="Lead Capture", docs_url=None, redoc_url=None)
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=list(settings.trusted_proxies))
    app.add_middleware(
        SessionMiddleware,
        secret_key=session_secret,
        session_cookie=settings.session_cookie,
        https_only=settings.secure_cookies,
        same_site="lax",
        max_age=60 * 60 * 24 * 7,
    )
    app.state.database = database
    app.state.accounts = accounts
    app.state.contacts = contacts
    app.state.extractors = {extractor.kind: extractor for extractor in extractors or ()}
    app.state.clock = clock or _utcnow

    def _now() -> datetime:
        return app.state.clock()

    def get_current_account(request: Request) -> Account:
        account_id = request.session.get("account_id")
        account = accounts.get(str(account_id)) if account_id else None
        if account is None:
            request.session.pop("account_id", None)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not signed in")
        return account

    def require_admin(account: Account = Depends(get_current_account)) -> Account:
        if not account.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
        return account

    def get_record(record_id: str, account: Account = Depends(get_current_account)) -> ContactRecord:
        record = contacts.get(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        if record.owner_id != account.id and not account.is_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your contact record")
        return record

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    auth_router = APIRouter(prefix="/auth")

    @auth_router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
    def register(payload: RegisterRequest, request: Request) -> AccountResponse:
        try:
            account = accounts.register(payload.name, payload.email, payload.password, payload.role)
        except EmailTakenError:
            raise
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        request.session.clear()
        request.session["account_id"] = account.id
        return account_to_response(account)

    @auth_router.post("/login", response_model=AccountResponse)
    def login(payload: LoginRequest, request: Request) -> AccountResponse:
        account = accounts.find_by_credentials(payload.email, payload.password, payload.role)
        if account is None:
            logger.info("Rejected login attempt for %s", payload.email)
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email, password or role")
        request.session.clear()
        request.session["account_id"] = account.id
        return account_to_response(account)

    @auth_router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
    def logout(request: Request) -> None:
        request.session.clear()

    @auth_router.get("/me", response_model=AccountResponse)
    def read_current_account(account: Account = Depends(get_current_account)) -> AccountResponse:
        return account_to_response(account)

    contacts_router = APIRouter(prefix="/contacts")

    @contacts_router.post("", response_model=ContactResponse, status_code=status.HTTP_201_CREATED)
    def create_contact(payload: ContactPayload, account: Account = Depends(get_current_account)) -> ContactResponse:
        record = contacts.create(account.id, payload.to_fields())
        return contact_to_response(record)

    @contacts_router.get("", response_model=List[ContactResponse])
    def list_contacts(
        q: str = Query(default=""),
        account: Account = Depends(get_current_account),
    ) -> List[ContactResponse]:
        records = search(contacts.list_by_owner(account.id), q)
        return [contact_to_response(record) for record in records]

    @contacts_router.get("/{record_id}", response_model=ContactResponse)
    def read_contact(record: ContactRecord = Depends(get_record)) -> ContactResponse:
        return contact_to_response(record)

    @contacts_router.put("/{record_id}", response_model=ContactResponse)
    def update_contact(payload: ContactPayload, record: ContactRecord = Depends(get_record)) -> ContactResponse:
        updated = contacts.update(record.id, payload.to_fields())
        return contact_to_response(updated)

    @app.get("/stats", response_model=UserStatsResponse)
    def read_own_stats(account: Account = Depends(get_current_account)) -> UserStatsResponse:
        records = contacts.list_by_owner(account.id)
        return UserStatsResponse(
            total_submissions=len(records),
            month_to_date=month_to_date_count(records, _now()),
            unique_companies=distinct_company_count(records),
        )

    admin_router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])

    @admin_router.get("/contacts", response_model=List[ContactResponse])
    def admin_list_contacts(
        owner: str = Query(default=ALL_OWNERS),
        q: str = Query(default=""),
    ) -> List[ContactResponse]:
        known = accounts.list_accounts()
        records = admin_view(contacts.list_all(), owner, q)
        return [contact_to_response(record, owner=owner_name(known, record.owner_id)) for record in records]

    @admin_router.get("/users", response_model=List[AccountSummaryResponse])
    def admin_list_users() -> List[AccountSummaryResponse]:
        records = contacts.list_all()
        return [
            AccountSummaryResponse(
                **account_to_response(account).model_dump(),
                submissions=per_owner_count(records, account.id),
            )
            for account in accounts.list_accounts(Role.USER)
        ]

    @admin_router.get("/stats", response_model=AdminStatsResponse)
    def admin_stats() -> AdminStatsResponse:
        stats = dashboard_stats(contacts.list_all(), accounts.list_accounts(), _now())
        return AdminStatsResponse(
            total_submissions=stats.total_submissions,
            month_to_date=stats.month_to_date,
            unique_companies=stats.unique_companies,
            total_users=stats.total_users,
            active_users=stats.active_users,
            average_per_user=stats.average_per_user,
        )

    @app.post("/scan/{kind}")
    async def scan(
        kind: str,
        file: UploadFile = File(...),
        account: Account = Depends(get_current_account),
    ) -> Dict[str, str]:
        extractor = app.state.extractors.get(kind)
        if extractor is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No '{kind}' scanner is configured")
        image = await file.read()
        return await extractor.extract(image, file.content_type)

    app.include_router(auth_router)
    app.include_router(contacts_router)
    app.include_router(admin_router)

    @app.exception_handler(EmailTakenError)
    async def handle_email_taken(_: object, exc: EmailTakenError):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @app.exception_handler(RecordNotFoundError)
    async def handle_record_not_found(_: object, exc: RecordNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(UnknownOwnerError)
    async def handle_unknown_owner(_: object, exc: UnknownOwnerError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(InvalidImageError)
    async def handle_invalid_image(_: object, exc: InvalidImageError):
        return JSONResponse(status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, content={"detail": str(exc)})

    return app


__all__ = ["create_app"]
