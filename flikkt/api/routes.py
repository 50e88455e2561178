"""
API Routes - Analysis, history, subscription status, plans and health.

All requests/responses use Pydantic models; error bodies keep the shapes the
mobile client already parses.
"""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from flikkt.api.dependencies import (
    get_analysis_service,
    get_current_user,
    get_subscription_service,
)
from flikkt.config import settings
from flikkt.db.session import get_db
from flikkt.exceptions import (
    AnalysisRequestError,
    AuthenticationError,
    ScanLimitReachedError,
    ScanUsageError,
)
from flikkt.models.api import (
    AnalysisErrorResponse,
    AnalysisResultResponse,
    AnalyzeMedicationRequest,
    HealthResponse,
    HistoryItem,
    HistoryResponse,
    PlanListResponse,
    PlanResponse,
    ScanLimitResponse,
    SubscriptionStatusResponse,
)
from flikkt.models.domain import AnalysisInput, AnalysisResult, Unidentified, UserIdentity
from flikkt.observability import metrics
from flikkt.services.analysis import AnalysisService
from flikkt.services.history import AnalysisHistoryService
from flikkt.services.plans import PLANS
from flikkt.services.subscriptions import SubscriptionService

logger = get_logger(__name__)

router = APIRouter()


def _analysis_error(status_code: int, error: str, details: str) -> JSONResponse:
    body = AnalysisErrorResponse(
        error=error, details=details, timestamp=datetime.now(UTC).isoformat()
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _to_response(result: AnalysisResult) -> AnalysisResultResponse:
    reason = (
        result.identification.reason.value
        if isinstance(result.identification, Unidentified)
        else None
    )
    return AnalysisResultResponse(
        product_name=result.product_name,
        compatibility_score=result.compatibility_score,
        interaction_level=result.interaction_level,
        pros=result.pros,
        cons=result.cons,
        alternatives=result.alternatives,
        user_medications=result.user_medications,
        timestamp=result.timestamp.isoformat(),
        note=result.note,
        identified=result.identified,
        unidentified_reason=reason,
    )


@router.post(
    "/analyze-medication",
    response_model=AnalysisResultResponse,
    responses={
        401: {"model": AnalysisErrorResponse},
        429: {"model": ScanLimitResponse},
        500: {"model": AnalysisErrorResponse},
    },
)
async def analyze_medication(
    request: AnalyzeMedicationRequest,
    authorization: str | None = Header(None),
    service: AnalysisService = Depends(get_analysis_service),
) -> AnalysisResultResponse | JSONResponse:
    """
    Analyze a product photo or name against the caller's medications.

    Auth: Bearer {user_jwt}; the token subject must equal userId.

    Upstream failures (medications, LLM, history) still answer 200 with a
    best-effort or fallback result.
    """
    analysis_input = AnalysisInput(
        user_id=request.user_id,
        image_data=request.image_data,
        product_name=request.product_name,
        analysis_type=request.analysis_type,
    )

    try:
        result = await service.analyze(analysis_input, authorization)
    except ScanLimitReachedError as exc:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=ScanLimitResponse(scans_remaining=exc.scans_remaining).model_dump(),
        )
    except AnalysisRequestError as exc:
        logger.warning("analysis_request_invalid", error=exc.message)
        return _analysis_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Analysis failed", exc.message
        )
    except AuthenticationError as exc:
        logger.warning("analysis_unauthorized", error=exc.message)
        return _analysis_error(status.HTTP_401_UNAUTHORIZED, "Unauthorized", exc.message)
    except ScanUsageError as exc:
        metrics.record_error("ScanUsageError", "analyze_medication")
        return _analysis_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Analysis failed", exc.message
        )
    except Exception as exc:
        metrics.record_error(type(exc).__name__, "analyze_medication")
        logger.error("analysis_unexpected_error", error=str(exc), exc_info=True)
        return _analysis_error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Analysis failed", str(exc))

    return _to_response(result)


@router.get("/history", response_model=HistoryResponse)
async def list_history(
    limit: int = Query(20, description="Number of rows, capped at 100"),
    user: UserIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> HistoryResponse:
    """
    List the caller's most recent analyses.

    Auth: Bearer {user_jwt}
    """
    entries = await AnalysisHistoryService(db).recent(user.user_id, limit=limit)
    items = [
        HistoryItem(
            product_name=entry.product_name,
            analysis_type=entry.analysis_type,
            compatibility_score=entry.compatibility_score,
            interaction_level=entry.interaction_level,
            warnings=entry.warnings,
            recommendations=entry.recommendations,
            created_at=entry.created_at.isoformat(),
        )
        for entry in entries
    ]
    return HistoryResponse(items=items, count=len(items))


@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def get_subscription(
    user: UserIdentity = Depends(get_current_user),
    service: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionStatusResponse:
    """
    Stored subscription and usage fields for the caller. No Stripe call.

    Auth: Bearer {user_jwt}
    """
    snapshot = await service.get_local(user.user_id)
    return SubscriptionStatusResponse(
        subscribed=snapshot.subscribed,
        subscription_tier=snapshot.subscription_tier,
        subscription_end=snapshot.subscription_end.isoformat()
        if snapshot.subscription_end
        else None,
        scans_used_this_month=snapshot.scans_used_this_month,
        free_scans_per_month=settings.free_scans_per_month,
    )


@router.get("/plans", response_model=PlanListResponse)
async def list_plans() -> PlanListResponse:
    """Plan catalogue. No auth."""
    return PlanListResponse(
        plans=[
            PlanResponse(
                id=plan.plan_id,
                name=plan.name,
                price_minor=plan.price_minor,
                interval=plan.interval,
                scans_per_month=plan.scans_per_month,
                features=list(plan.features),
            )
            for plan in PLANS.values()
        ]
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """
    Health check for load balancer.

    Verifies database connectivity.
    """
    try:
        await db.execute(text("SELECT 1"))
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "status": "unhealthy",
                "database": "disconnected",
                "error": str(exc),
                "timestamp": datetime.now(UTC).isoformat(),
            },
        ) from exc

    return HealthResponse(
        status="healthy",
        database="connected",
        timestamp=datetime.now(UTC).isoformat(),
        version=settings.api_version,
    )
