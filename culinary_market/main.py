import logging
from datetime import timedelta
from typing import Optional

import psycopg2
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import app_context
from .app.auth import (
    CredentialService,
    check_password_strength,
    extract_bearer_token,
    is_valid_email,
)
from .app.entitlements import AccountRole
from .app.feature_gates import FeatureGateError
from .app.routes import agents as agent_routes
from .app.routes import billing as billing_routes
from .app.routes import catalog as catalog_routes
from .app.schemas.accounts import AccountOut, AuthResponse, LoginRequest, RegisterRequest
from .app.services.accounts import (
    DuplicateAccountError,
    create_account,
    get_account_by_id,
    get_account_credentials,
)
from .config import load_app_config

load_dotenv()

CONFIG = load_app_config()

logging.basicConfig(
    level=CONFIG.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("culinary_market")

CREDENTIALS = CredentialService(
    CONFIG.jwt_secret_key,
    token_ttl=timedelta(minutes=CONFIG.jwt_exp_minutes),
)

SELF_REGISTRATION_ROLES = {AccountRole.CLIENT, AccountRole.PROVIDER}


def get_conn():
    return psycopg2.connect(**CONFIG.db_settings)


app_context.configure(get_conn=get_conn)


def resolve_account_from_token(token: str) -> Optional[AccountOut]:
    verification = CREDENTIALS.verify_token(token)
    if not verification.is_valid:
        logger.debug("Rejected access token: %s", verification.failure.value)
        return None
    return get_account_by_id(verification.claims.account_id)


def get_current_user(authorization: Optional[str] = Header(None)) -> AccountOut:
    token = extract_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    verification = CREDENTIALS.verify_token(token)
    if not verification.is_valid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    account = get_account_by_id(verification.claims.account_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return account


def get_optional_current_user(authorization: Optional[str] = Header(None)) -> Optional[AccountOut]:
    token = extract_bearer_token(authorization)
    if not token:
        return None

    try:
        return resolve_account_from_token(token)
    except Exception:
        logger.exception("Unexpected error while resolving optional access token")
        return None


def _validate_credentials_input(email: Optional[str], password: Optional[str]) -> str:
    normalized_email = (email or "").strip().lower()
    if not normalized_email or not password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email and password are required")
    if not is_valid_email(normalized_email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email format")
    return normalized_email


app = FastAPI(title="Culinary Marketplace API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CONFIG.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(catalog_routes.router)
app.include_router(billing_routes.router)
app.include_router(agent_routes.router)


@app.exception_handler(FeatureGateError)
async def handle_feature_gate_error(request: Request, exc: FeatureGateError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=dict(exc.payload))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled error while serving request",
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.post("/api/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest) -> AuthResponse:
    email = _validate_credentials_input(payload.email, payload.password)

    strength = check_password_strength(payload.password)
    if not strength.valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=strength.message)

    try:
        role = AccountRole((payload.role or AccountRole.CLIENT.value).strip().upper())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role") from exc
    if role not in SELF_REGISTRATION_ROLES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid role")

    try:
        account = create_account(
            email=email,
            password_hash=CREDENTIALS.hash_password(payload.password),
            role=role,
            first_name=payload.first_name,
            last_name=payload.last_name,
        )
    except DuplicateAccountError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    logger.info("Account registered", extra={"account_id": account.id, "role": account.role.value})
    token = CREDENTIALS.issue_token(account.id, account.email, account.role.value)
    return AuthResponse(token=token, user=account)


@app.post("/api/auth/login", response_model=AuthResponse)
def login(payload: LoginRequest) -> AuthResponse:
    email = _validate_credentials_input(payload.email, payload.password)

    credentials = get_account_credentials(email)
    if not credentials or not CREDENTIALS.compare_password(payload.password, credentials.get("password_hash")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")

    account = get_account_by_id(credentials["id"])
    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Incorrect email or password")

    token = CREDENTIALS.issue_token(account.id, account.email, account.role.value)
    return AuthResponse(token=token, user=account)


@app.get("/api/auth/me", response_model=AccountOut)
def read_current_user(current_user: AccountOut = Depends(get_current_user)):
    return current_user


@app.get("/api/healthz")
def healthz():
    return {"ok": True}
