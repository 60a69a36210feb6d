"""
ShutterBox Backend — Google Gemini Vision Service
===================================================

What:  Detects labels (what is in the photo) and landmarks (named places)
       by sending the stored image to Gemini and parsing a JSON reply.
Who:   Image upload route. Skipped entirely when no API key is configured;
       the upload then proceeds with EXIF and colors only.

Failure handling:
    - each call is retried by tenacity (exponential backoff with jitter)
    - a CircuitBreaker sits in front; while open, uploads fail fast with 503
    - parsing runs after the retried call, so a malformed reply is reported
      once as VisionServiceError and never re-requested
"""

import json
import logging
import math
import time
import uuid
from pathlib import Path
from typing import Any, List

import google.generativeai as genai
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from shutterbox.config import settings
from shutterbox.exceptions import CircuitBreakerOpenError, VisionServiceError
from shutterbox.schemas.image import GeoPoint, Label, Landmark
from shutterbox.services.vision_base import VisionResult, VisionService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Sheds detection calls while Gemini is failing.

        closed    --(failure_threshold failures in a row)-->  open
        open      --(recovery_timeout seconds pass)------->  half_open
        half_open --(probe succeeds)---------------------->  closed
        half_open --(probe fails)------------------------->  open

    Single event loop per process, so no locking.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.opened_at = 0.0

    def _trip(self, reason: str) -> None:
        self.state = self.OPEN
        self.opened_at = time.monotonic()
        logger.warning("Vision circuit open (%s); shedding calls for %ds", reason, self.recovery_timeout)

    def can_execute(self) -> bool:
        """True when a call may go out; raises CircuitBreakerOpenError otherwise."""
        if self.state != self.OPEN:
            return True

        remaining = self.recovery_timeout - (time.monotonic() - self.opened_at)
        if remaining > 0:
            raise CircuitBreakerOpenError(recovery_time=math.ceil(remaining))

        logger.info("Vision circuit half-open; letting one probe call through")
        self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state != self.CLOSED:
            logger.info("Vision circuit closed; Gemini answered again")
        self.state = self.CLOSED
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.state == self.HALF_OPEN:
            self._trip("probe call failed")
        elif self.state == self.CLOSED and self.failure_count >= self.failure_threshold:
            self._trip(f"{self.failure_count} failures in a row")


# ══════════════════════════════════════════════════════════════════════════
# Response parsing
# ══════════════════════════════════════════════════════════════════════════

def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def _parse_labels(items: Any) -> List[Label]:
    labels = []
    for item in items or []:
        try:
            labels.append(Label(
                description=str(item["description"]).strip().lower(),
                score=float(item.get("score", 0.0)),
            ))
        except (KeyError, TypeError, ValueError, PydanticValidationError):
            logger.debug("Skipping malformed label entry: %r", item)
    return labels


def _parse_landmarks(items: Any) -> List[Landmark]:
    landmarks = []
    for item in items or []:
        try:
            location = None
            if item.get("latitude") is not None and item.get("longitude") is not None:
                location = GeoPoint(coordinates=[float(item["longitude"]), float(item["latitude"])])
            landmarks.append(Landmark(
                description=str(item["description"]).strip(),
                location=location,
                score=float(item.get("score", 0.0)),
            ))
        except (KeyError, TypeError, ValueError, AttributeError, PydanticValidationError):
            logger.debug("Skipping malformed landmark entry: %r", item)
    return landmarks


def parse_detection(text: str) -> VisionResult:
    """
    Parse the model's JSON reply.

    Expected shape:
        {"labels": [{"description": str, "score": float}],
         "landmarks": [{"description": str, "score": float,
                        "latitude": float?, "longitude": float?}]}

    Raises:
        VisionServiceError: reply is not a JSON object
    """
    try:
        payload = json.loads(_strip_fences(text) or "{}")
    except json.JSONDecodeError as e:
        raise VisionServiceError(
            message="Image analysis returned an unreadable response.",
            context={"error": str(e)},
        ) from e
    if not isinstance(payload, dict):
        raise VisionServiceError(
            message="Image analysis returned an unreadable response.",
            context={"type": type(payload).__name__},
        )
    return VisionResult(
        labels=_parse_labels(payload.get("labels")),
        landmarks=_parse_landmarks(payload.get("landmarks")),
    )


# ══════════════════════════════════════════════════════════════════════════
# Gemini provider
# ══════════════════════════════════════════════════════════════════════════

_retrying = retry(
    retry=retry_if_exception_type(Exception),
    stop=stop_after_attempt(settings.retry_max_attempts),
    wait=wait_exponential_jitter(
        initial=settings.retry_min_wait,
        max=settings.retry_max_wait,
        jitter=1,
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


class GeminiVisionService(VisionService):

    DETECT_PROMPT = """Analyze this photograph and respond with a single JSON object:
{"labels": [{"description": "...", "score": 0.0}],
 "landmarks": [{"description": "...", "score": 0.0, "latitude": 0.0, "longitude": 0.0}]}

- labels: up to 10 short lowercase nouns for the main subjects, scenery and
  objects, with confidence scores between 0 and 1
- landmarks: named, well-known places or structures that are clearly
  visible, with their approximate coordinates; an empty list if none
Return only the JSON object."""

    def __init__(self):
        self.enabled = settings.vision_enabled
        if self.enabled:
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        logger.info(
            "Vision provider %s %s (breaker trips after %d failures, cools down %ds)",
            settings.gemini_model,
            "enabled" if self.enabled else "disabled",
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    async def detect(self, image_path: str) -> VisionResult:
        """
        Disabled → empty result. Otherwise the breaker is consulted, the
        call is retried with backoff, and the reply parsed. Only transport
        failures count against the breaker; an unparsable reply does not.
        """
        name = Path(image_path).name
        if not self.enabled:
            logger.debug("Vision disabled; %s gets no labels or landmarks", name)
            return VisionResult()

        self.circuit_breaker.can_execute()
        call_id = uuid.uuid4().hex[:8]
        logger.info("[%s] Detecting labels/landmarks in %s", call_id, name)

        try:
            text = await self._generate(image_path, call_id)
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Detection gave up after %d attempt(s): %s: %s",
                call_id,
                settings.retry_max_attempts,
                type(e).__name__,
                e,
            )
            raise VisionServiceError(
                message="Image analysis is unavailable right now. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={
                    "call_id": call_id,
                    "attempts": settings.retry_max_attempts,
                    "error_type": type(e).__name__,
                },
            ) from e

        self.circuit_breaker.record_success()
        result = parse_detection(text)
        logger.info(
            "[%s] %s: %d labels, %d landmarks",
            call_id,
            name,
            len(result.labels),
            len(result.landmarks),
        )
        return result

    @_retrying
    async def _generate(self, image_path: str, call_id: str) -> str:
        started = time.perf_counter()
        try:
            uploaded = genai.upload_file(path=image_path)
            response = await self.model.generate_content_async(
                [self.DETECT_PROMPT, uploaded],
                generation_config={"response_mime_type": "application/json"},
                request_options={"timeout": 60},
            )
        except Exception as e:
            logger.warning(
                "[%s] Gemini attempt failed in %.0fms: %s",
                call_id,
                (time.perf_counter() - started) * 1000,
                e,
            )
            raise

        text = response.text or ""
        logger.debug(
            "[%s] Gemini replied in %.0fms with %d chars",
            call_id,
            (time.perf_counter() - started) * 1000,
            len(text),
        )
        return text

    async def health_check(self) -> bool:
        """Model listing costs no tokens. Disabled providers are never healthy."""
        if not self.enabled:
            return False
        try:
            available = {m.name for m in genai.list_models()}
        except Exception as e:
            logger.warning("Gemini unreachable during health check: %s", e)
            return False

        if f"models/{settings.gemini_model}" not in available:
            logger.warning("Gemini reachable but model %s is not offered", settings.gemini_model)
        return True


vision_service = GeminiVisionService()
