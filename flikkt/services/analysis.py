"""
Analysis Service - Orchestrates one food/medication compatibility analysis.

Request flow:
1. Validate input and verify the caller's token (no I/O)
2. Check the monthly scan quota (best-effort unless quota_fail_open is off)
3. Fetch medications (best-effort)
4. Short-circuit for users without medications
5. Build the prompt and call the LLM (demo result when no LLM is configured)
6. Parse and normalize, falling back to an "unavailable" result on any failure
7. For identified products: charge one scan, then store history (both best-effort)

Charging the scan and storing history are separate commits. A failure between
them leaves usage charged without a history row (or the reverse); nothing
reconciles the two.
"""

from collections.abc import Callable
from datetime import UTC, datetime

from structlog import get_logger

from flikkt.exceptions import (
    AIResponseError,
    AnalysisRequestError,
    AuthenticationError,
    HistoryWriteError,
    LLMProviderError,
    MedicationFetchError,
    ScanLimitReachedError,
    ScanUsageError,
)
from flikkt.models.domain import AnalysisInput, AnalysisResult, Medication, Unidentified
from flikkt.observability import log_context, metrics
from flikkt.services.ai_response import (
    demo_result,
    fallback_result,
    no_medications_result,
    normalize_analysis,
    parse_ai_response,
)
from flikkt.services.auth import TokenVerifier
from flikkt.services.history import AnalysisHistoryService
from flikkt.services.llm_provider import LLMProvider
from flikkt.services.medications import MedicationService
from flikkt.services.prompts import build_analysis_prompt
from flikkt.services.scan_usage import ScanUsageService

logger = get_logger(__name__)


def _utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def validate_analysis_input(request: AnalysisInput, authorization: str | None) -> None:
    """
    Reject incomplete requests before anything touches the network or database.

    Raises:
        AnalysisRequestError: Missing user, product input, or Authorization header
    """
    if not request.user_id:
        raise AnalysisRequestError("User authentication required")

    if not request.image_data and not request.product_name:
        raise AnalysisRequestError("Either image data or product name is required")

    if not authorization:
        raise AnalysisRequestError("Authorization header required")

    if request.image_data and not request.image_data.startswith("data:image/"):
        raise AnalysisRequestError("Invalid image data format provided")


class AnalysisService:
    """Runs the analysis workflow for a single request."""

    def __init__(
        self,
        scan_usage: ScanUsageService,
        medications: MedicationService,
        history: AnalysisHistoryService,
        llm: LLMProvider | None,
        token_verifier: TokenVerifier,
        quota_fail_open: bool = True,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.scan_usage = scan_usage
        self.medications = medications
        self.history = history
        self.llm = llm
        self.token_verifier = token_verifier
        self.quota_fail_open = quota_fail_open
        self.clock = clock

    async def analyze(self, request: AnalysisInput, authorization: str | None) -> AnalysisResult:
        """
        Analyze a product against the user's medications.

        Raises:
            AnalysisRequestError: Invalid input
            AuthenticationError: Token invalid or issued for another user
            ScanLimitReachedError: Free-tier user has no scans left
            ScanUsageError: Quota check failed and quota_fail_open is off
        """
        validate_analysis_input(request, authorization)
        identity = self.token_verifier.verify_header(authorization)
        if identity.user_id != request.user_id:
            raise AuthenticationError("Token does not belong to the requested user")

        user_id = request.user_id
        kind = request.kind.value

        with log_context(user_id=user_id, analysis_type=request.analysis_type, kind=kind):
            logger.info(
                "analysis_started",
                product_name=request.product_name,
                image_data_length=len(request.image_data) if request.image_data else 0,
            )

            await self._enforce_quota(user_id, kind)
            medications = await self._load_medications(user_id)
            medication_names = [medication.name for medication in medications]

            if not medications:
                logger.info("analysis_skipped_no_medications")
                metrics.record_analysis("no_medications", kind)
                return no_medications_result(request.product_name, self.clock())

            if self.llm is None:
                logger.warning("analysis_demo_response", medication_count=len(medications))
                metrics.record_analysis("demo", kind)
                return demo_result(request.product_name, medication_names, self.clock())

            result = await self._run_model(request, medications)
            if result is None:
                metrics.record_analysis("fallback", kind)
                return fallback_result(request.product_name, medication_names, self.clock())

            if result.identified:
                await self._commit_side_effects(user_id, request.analysis_type, result)
            elif isinstance(result.identification, Unidentified):
                logger.info(
                    "product_not_identified", reason=result.identification.reason.value
                )

            metrics.record_analysis("identified" if result.identified else "unidentified", kind)
            logger.info(
                "analysis_completed",
                product_name=result.product_name,
                score=result.compatibility_score,
                level=result.interaction_level.value,
            )
            return result

    async def _enforce_quota(self, user_id: str, kind: str) -> None:
        try:
            check = await self.scan_usage.check(user_id)
        except ScanUsageError as exc:
            metrics.record_side_effect_failure("scan_usage_check")
            if not self.quota_fail_open:
                raise
            logger.warning("scan_usage_check_failed_continuing", error=str(exc))
            return

        if check.limit_reached:
            logger.info("scan_limit_reached", scans_remaining=check.scans_remaining)
            metrics.record_analysis("scan_limit", kind)
            raise ScanLimitReachedError(user_id, scans_remaining=0)

    async def _load_medications(self, user_id: str) -> list[Medication]:
        try:
            medications = await self.medications.list_for_user(user_id)
        except MedicationFetchError as exc:
            metrics.record_side_effect_failure("medications_fetch")
            logger.warning("medications_fetch_failed_continuing", error=exc.message)
            return []
        logger.info("medications_loaded", count=len(medications))
        return medications

    async def _run_model(
        self, request: AnalysisInput, medications: list[Medication]
    ) -> AnalysisResult | None:
        """Call the LLM and normalize its answer; None means use the fallback result."""
        assert self.llm is not None
        image_data = request.image_data or None
        prompt = build_analysis_prompt(
            medications, product_name=None if image_data else request.product_name
        )

        try:
            content = await self.llm.complete(prompt, image_data=image_data)
            raw = parse_ai_response(content)
            return normalize_analysis(
                raw, [medication.name for medication in medications], self.clock()
            )
        except LLMProviderError as exc:
            logger.error("llm_call_failed_using_fallback", error=exc.message)
        except AIResponseError as exc:
            logger.error(
                "ai_response_invalid_using_fallback",
                error=exc.message,
                content_preview=exc.content_preview,
            )
        return None

    async def _commit_side_effects(
        self, user_id: str, analysis_type: str | None, result: AnalysisResult
    ) -> None:
        try:
            await self.scan_usage.record_identified_scan(user_id)
        except ScanUsageError as exc:
            metrics.record_side_effect_failure("scan_usage_increment")
            logger.error("scan_usage_increment_failed", error=exc.message)

        if not analysis_type:
            return

        try:
            await self.history.record(user_id, analysis_type, result)
            logger.info("analysis_history_saved")
        except HistoryWriteError as exc:
            metrics.record_side_effect_failure("history_insert")
            logger.error("analysis_history_save_failed", error=exc.message)
