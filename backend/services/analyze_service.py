"""
Relay that forwards visit transcripts to the Anthropic Messages API.

One request per call, no retries. The model is asked for
``{"score", "review"}`` JSON; replies that do not parse are returned as raw
review text with no score.
"""

import time

import httpx

from config.config import Settings, get_settings
from config.logging_config import get_logger
from models.models import AnalyzeRequest, AnalyzeResponse
from services.errors import MissingTranscriptError, UpstreamError
from services.prompt_builder import build_prompt, first_text_block, parse_analysis

logger = get_logger(__name__)


class AnalyzeService:
    """
    Builds the analysis prompt and relays it to the language model.

    The HTTP client is created lazily so tests can inject one backed by
    ``httpx.MockTransport``.
    """

    def __init__(self, settings: Settings | None = None, client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the outbound HTTP client."""
        if self._client is None:
            if not self.settings.anthropic_api_key:
                logger.warning("Anthropic API key not configured, upstream calls will be rejected")
            kwargs = {}
            if self.settings.llm_timeout_seconds is not None:
                kwargs["timeout"] = self.settings.llm_timeout_seconds
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    @property
    def messages_url(self) -> str:
        return f"{self.settings.anthropic_base_url.rstrip('/')}/v1/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "x-api-key": self.settings.anthropic_api_key,
            "anthropic-version": self.settings.anthropic_version,
        }

    def _payload(self, prompt: str) -> dict:
        return {
            "model": self.settings.llm_model,
            "max_tokens": self.settings.llm_max_tokens,
            "system": self.settings.llm_system_prompt,
            "messages": [{"role": "user", "content": prompt}],
        }

    async def analyze(self, request: AnalyzeRequest) -> AnalyzeResponse:
        """
        Score a transcript for potential provider bias.

        Raises:
            MissingTranscriptError: transcript is absent or blank.
            UpstreamError: the API answered with a non-success status.
        """
        transcript = (request.transcript or "").strip()
        if not transcript:
            raise MissingTranscriptError()

        prompt = build_prompt(
            transcript,
            cause=request.cause,
            doctor_name=request.doctor_name,
            user_rating=request.user_rating,
        )

        start_time = time.perf_counter()
        logger.info(
            "Relaying transcript for analysis",
            model=self.settings.llm_model,
            transcript_length=len(transcript),
            doctor_name=request.doctor_name or None,
        )

        response = await self.client.post(
            self.messages_url,
            headers=self._headers(),
            json=self._payload(prompt),
        )

        try:
            data = response.json()
        except ValueError:
            data = response.text

        elapsed_ms = int((time.perf_counter() - start_time) * 1000)

        if not response.is_success:
            logger.warning(
                "Upstream analysis failed",
                status_code=response.status_code,
                processing_time_ms=elapsed_ms,
            )
            raise UpstreamError("Anthropic failed", detail=data)

        result = parse_analysis(first_text_block(data))
        logger.info(
            "Analysis completed",
            score=result.score,
            parsed=result.score is not None,
            processing_time_ms=elapsed_ms,
        )
        return result

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


_analyze_service: AnalyzeService | None = None


def get_analyze_service() -> AnalyzeService:
    """Get the analyze service singleton."""
    global _analyze_service
    if _analyze_service is None:
        _analyze_service = AnalyzeService()
    return _analyze_service
