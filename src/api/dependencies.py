import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.domain.principal import Principal, Role
from src.infrastructure.config import Settings, get_settings
from src.infrastructure.db.session import SessionLocal
from src.infrastructure.payments.interfaces import PaymentGateway
from src.infrastructure.payments.stripe_gateway import StripeGateway


logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer()


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_app_settings() -> Settings:
    return get_settings()


def get_payment_gateway(settings: Settings = Depends(get_app_settings)) -> PaymentGateway:
    if not settings.stripe_secret_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe keys not configured. Set STRIPE_SECRET_KEY and STRIPE_WEBHOOK_SECRET.",
        )
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )


def decode_access_token(token: str, settings: Settings) -> dict | None:
    if not settings.jwt_secret:
        logger.error("SUPABASE_JWT_SECRET is not configured; rejecting token.")
        return None
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
        )
    except JWTError:
        return None


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    settings: Settings = Depends(get_app_settings),
) -> Principal:
    payload = decode_access_token(credentials.credentials, settings)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token payload invalid",
        )

    raw_role = (payload.get("app_metadata") or {}).get("role", Role.USER.value)
    try:
        role = Role(raw_role)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unknown role",
        ) from exc

    return Principal(id=user_id, email=payload.get("email"), role=role)


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if principal.role is Role.ADMIN:
        return principal
    if principal.role is Role.USER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Unknown role",
    )
