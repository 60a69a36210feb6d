"""
ShutterBox Backend — Vision Service Unit Tests (Mocked)
=========================================================

What:  Tests for GeminiVisionService with the Google Generative AI SDK mocked.
Why:   Tests must not make real API calls (costs money, requires network).
How:   `genai` is patched per test; the model object is a MagicMock whose
       generate_content_async returns canned replies or raises.

What we test:
    ✅ Circuit breaker state machine
    ✅ Reply parsing: code fences, malformed entries, non-JSON
    ✅ Disabled service returns an empty result without calling the API
    ✅ Successful detection, API failure and open circuit
    ❌ Real API calls
"""

import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shutterbox.exceptions import CircuitBreakerOpenError, VisionServiceError
from shutterbox.services.vision_service import (
    CircuitBreaker,
    GeminiVisionService,
    parse_detection,
)


class TestCircuitBreaker:

    def test_starts_closed(self):
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert (breaker.state, breaker.failure_count) == ("closed", 0)
        assert breaker.can_execute() is True

    @pytest.mark.parametrize("failures, expected", [(1, "closed"), (2, "closed"), (3, "open"), (4, "open")])
    def test_trips_at_threshold(self, failures, expected):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(failures):
            breaker.record_failure()
        assert breaker.state == expected

    def test_open_breaker_sheds_calls(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        breaker.record_failure()

        with pytest.raises(CircuitBreakerOpenError) as excinfo:
            breaker.can_execute()
        assert 0 < excinfo.value.recovery_time <= 60

    def test_success_clears_failures(self):
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.failure_count == 2

        breaker.record_success()
        assert (breaker.state, breaker.failure_count) == ("closed", 0)

    def test_probe_after_cool_down(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        breaker.record_failure()
        assert breaker.state == "open"

        time.sleep(0.01)
        assert breaker.can_execute() is True
        assert breaker.state == "half_open"

        breaker.record_success()
        assert breaker.state == "closed"

    def test_failed_probe_reopens(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=0)
        for _ in range(3):
            breaker.record_failure()
        breaker.can_execute()
        assert breaker.state == "half_open"

        breaker.record_failure()
        assert breaker.state == "open"


class TestParseDetection:

    def test_plain_json(self):
        result = parse_detection(
            '{"labels": [{"description": "Bridge", "score": 0.97}],'
            ' "landmarks": [{"description": "Golden Gate Bridge", "score": 0.9,'
            ' "latitude": 37.8199, "longitude": -122.4783}]}'
        )
        assert [(l.description, l.score) for l in result.labels] == [("bridge", 0.97)]
        landmark = result.landmarks[0]
        assert landmark.description == "Golden Gate Bridge"
        assert landmark.location.coordinates == [-122.4783, 37.8199]

    def test_code_fences_stripped(self):
        result = parse_detection('```json\n{"labels": [{"description": "fog"}]}\n```')
        assert result.labels[0].description == "fog"
        assert result.labels[0].score == 0.0
        assert result.landmarks == []

    def test_malformed_entries_skipped(self):
        result = parse_detection(
            '{"labels": [{"score": 0.5}, {"description": "sky", "score": "high"}, {"description": "sea"}],'
            ' "landmarks": ["just a string", {"description": "Alcatraz"}]}'
        )
        assert [l.description for l in result.labels] == ["sea"]
        assert [l.description for l in result.landmarks] == ["Alcatraz"]
        assert result.landmarks[0].location is None

    def test_empty_reply(self):
        result = parse_detection("")
        assert result.labels == []
        assert result.landmarks == []

    @pytest.mark.parametrize("text", ["not json at all", "[1, 2, 3]"])
    def test_unreadable_reply(self, text):
        with pytest.raises(VisionServiceError):
            parse_detection(text)


class TestGeminiVisionService:

    @pytest.fixture
    def mock_genai(self):
        with patch("shutterbox.services.vision_service.genai") as mocked:
            yield mocked

    @pytest.fixture
    def service(self, mock_genai):
        service = GeminiVisionService()
        service.enabled = True
        service.model = MagicMock()
        return service

    @pytest.mark.asyncio
    async def test_disabled_returns_empty(self, mock_genai):
        service = GeminiVisionService()
        service.enabled = False
        service.model = MagicMock()
        service.model.generate_content_async = AsyncMock()

        result = await service.detect("/tmp/photo.jpg")

        assert result.labels == []
        assert result.landmarks == []
        service.model.generate_content_async.assert_not_awaited()
        mock_genai.upload_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_successful_detection(self, service, mock_genai):
        service.model.generate_content_async = AsyncMock(
            return_value=MagicMock(text='{"labels": [{"description": "cat", "score": 0.88}], "landmarks": []}')
        )

        result = await service.detect("/tmp/photo.jpg")

        assert result.labels[0].description == "cat"
        assert service.circuit_breaker.failure_count == 0
        mock_genai.upload_file.assert_called_once_with(path="/tmp/photo.jpg")

    @pytest.mark.asyncio
    async def test_api_failure_raises_vision_error(self, service):
        service.model.generate_content_async = AsyncMock(side_effect=Exception("API Error"))

        with pytest.raises(VisionServiceError):
            await service.detect("/tmp/photo.jpg")
        assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_skips_api(self, service):
        service.circuit_breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        service.circuit_breaker.record_failure()
        service.model.generate_content_async = AsyncMock()

        with pytest.raises(CircuitBreakerOpenError):
            await service.detect("/tmp/photo.jpg")
        service.model.generate_content_async.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unreadable_reply_is_vision_error(self, service):
        service.model.generate_content_async = AsyncMock(return_value=MagicMock(text="sorry, no JSON"))
        with pytest.raises(VisionServiceError):
            await service.detect("/tmp/photo.jpg")

    @pytest.mark.asyncio
    async def test_health_check(self, service, mock_genai):
        mock_genai.list_models.return_value = [SimpleNamespace(name="models/gemini-1.5-flash")]
        assert await service.health_check() is True

        mock_genai.list_models.side_effect = Exception("network down")
        assert await service.health_check() is False

    @pytest.mark.asyncio
    async def test_health_check_disabled(self, service):
        service.enabled = False
        assert await service.health_check() is False
