"""
FastAPI Dependencies - Authentication and service wiring.

All dependencies return typed objects; tests swap them via dependency_overrides.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from flikkt.config import settings
from flikkt.db.session import get_db
from flikkt.exceptions import AuthenticationError
from flikkt.models.domain import UserIdentity
from flikkt.services.analysis import AnalysisService
from flikkt.services.auth import TokenVerifier
from flikkt.services.history import AnalysisHistoryService
from flikkt.services.llm_provider import LLMProvider, OpenAIChatProvider
from flikkt.services.medications import MedicationService
from flikkt.services.scan_usage import ScanUsageService
from flikkt.services.stripe_provider import StripeBillingProvider
from flikkt.services.subscriptions import SubscriptionService

logger = get_logger(__name__)

# Bearer token scheme for JWT auth
bearer_scheme = HTTPBearer(auto_error=False)

_llm_provider: OpenAIChatProvider | None = None


def get_token_verifier() -> TokenVerifier:
    return TokenVerifier(settings.supabase_jwt_secret, settings.supabase_jwt_audience)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> UserIdentity:
    """
    Validate the bearer token from the Authorization header.

    Raises:
        HTTPException 401 if no token or invalid token
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return verifier.verify(credentials.credentials)
    except AuthenticationError as exc:
        logger.warning("user_authentication_failed", error=exc.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=exc.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def get_llm_provider() -> LLMProvider | None:
    """Shared LLM provider, or None (demo mode) when no API key is configured."""
    global _llm_provider
    if not settings.llm_configured:
        return None
    if _llm_provider is None:
        _llm_provider = OpenAIChatProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            max_tokens=settings.openai_max_tokens,
            temperature=settings.openai_temperature,
            timeout_seconds=settings.openai_timeout_seconds,
        )
    return _llm_provider


async def close_llm_provider() -> None:
    global _llm_provider
    if _llm_provider is not None:
        await _llm_provider.close()
        _llm_provider = None


def get_billing_provider() -> StripeBillingProvider:
    return StripeBillingProvider(settings.stripe_api_key, currency=settings.stripe_currency)


def get_analysis_service(
    db: AsyncSession = Depends(get_db),
    llm: LLMProvider | None = Depends(get_llm_provider),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> AnalysisService:
    return AnalysisService(
        scan_usage=ScanUsageService(db, settings.free_scans_per_month),
        medications=MedicationService(db),
        history=AnalysisHistoryService(db),
        llm=llm,
        token_verifier=verifier,
        quota_fail_open=settings.quota_fail_open,
    )


def get_subscription_service(
    db: AsyncSession = Depends(get_db),
    provider: StripeBillingProvider = Depends(get_billing_provider),
) -> SubscriptionService:
    return SubscriptionService(db, provider, site_url=settings.site_url)
