# -*- coding: utf-8 -*-
"""ConfigTestingService stages, retries, caching and fan-out."""

import asyncio

import httpx
import pytest

from aicfg.providers.models import ProviderType
from aicfg.providers.registry import ProviderRegistry
from aicfg.testing.health import HealthMonitor, build_report
from aicfg.testing.models import ErrorKind, ProviderTestResult, Stage
from aicfg.testing.service import ConfigTestingService, apply_result

from .conftest import chat_ok_handler


class CountingTransport(httpx.MockTransport):
    """Mock transport that remembers every request it saw."""

    def __init__(self, handler):
        self.requests = []

        def _record(request):
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


def make_service(handler, fake_sleep, **kwargs):
    transport = CountingTransport(handler)
    service = ConfigTestingService(
        ProviderRegistry(),
        transport=transport,
        sleep=fake_sleep,
        **kwargs,
    )
    return service, transport


def unreachable(request):
    raise httpx.ConnectError("connection refused", request=request)


class TestStages:
    @pytest.mark.asyncio
    async def test_all_stages_pass(self, make_provider, fake_sleep):
        service, _ = make_service(chat_ok_handler, fake_sleep)
        result = await service.test_provider(make_provider())
        assert result.success
        assert [s.stage for s in result.stages] == [
            Stage.CONNECTIVITY,
            Stage.AUTHENTICATION,
            Stage.MODEL_AVAILABILITY,
            Stage.FUNCTIONALITY,
        ]
        assert result.failed_stage is None
        assert result.response_preview == "Hello there!"
        assert result.usage == {"prompt_tokens": 5, "completion_tokens": 3}

    @pytest.mark.asyncio
    async def test_connectivity_failure_short_circuits(
        self,
        make_provider,
        fake_sleep,
    ):
        service, transport = make_service(unreachable, fake_sleep, retries=2)
        result = await service.test_provider(make_provider())
        assert not result.success
        assert result.failed_stage == Stage.CONNECTIVITY
        assert len(result.stages) == 1
        assert result.stages[0].error_kind == ErrorKind.NETWORK
        assert result.stages[0].attempts == 3
        # Only connectivity attempts went out.
        assert len(transport.requests) == 3
        assert all(
            r.url.path.endswith("/chat/completions") for r in transport.requests
        )

    @pytest.mark.asyncio
    async def test_bad_key_is_not_retried(self, make_provider, fake_sleep):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        service, _ = make_service(handler, fake_sleep, retries=3)
        result = await service.test_provider(make_provider())
        assert result.failed_stage == Stage.AUTHENTICATION
        assert result.error == "HTTP 401: bad key"
        assert result.error_kind == ErrorKind.AUTHENTICATION
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_rate_limit_retried_with_backoff(
        self,
        make_provider,
        fake_sleep,
    ):
        def handler(request):
            return httpx.Response(429, json={"error": "slow down"})

        service, _ = make_service(handler, fake_sleep, retries=5)
        result = await service.test_provider(make_provider())
        assert result.failed_stage == Stage.AUTHENTICATION
        assert result.stage(Stage.AUTHENTICATION).attempts == 6
        assert fake_sleep.delays == [1.0, 2.0, 4.0, 8.0, 8.0]

    @pytest.mark.asyncio
    async def test_timeout_retried_then_reported(
        self,
        make_provider,
        fake_sleep,
    ):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        service, transport = make_service(handler, fake_sleep, retries=2)
        result = await service.test_provider(make_provider())
        assert result.failed_stage == Stage.CONNECTIVITY
        assert result.error_kind == ErrorKind.TIMEOUT
        assert result.stages[0].attempts == 3
        assert result.error.startswith("Request timed out")
        assert fake_sleep.delays == [1.0, 2.0]
        assert len(transport.requests) == 3

    @pytest.mark.asyncio
    async def test_recovers_after_transient_server_error(
        self,
        make_provider,
        fake_sleep,
    ):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 2:
                return httpx.Response(503)
            return chat_ok_handler(request)

        service, _ = make_service(handler, fake_sleep, retries=2)
        result = await service.test_provider(make_provider())
        assert result.success
        assert result.stage(Stage.AUTHENTICATION).attempts == 2
        assert fake_sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_unlisted_model(self, make_provider, fake_sleep):
        service, _ = make_service(chat_ok_handler, fake_sleep)
        provider = make_provider(models=["gpt-5-preview"])
        result = await service.test_provider(provider)
        assert result.failed_stage == Stage.MODEL_AVAILABILITY
        assert result.error_kind == ErrorKind.CONFIGURATION

    @pytest.mark.asyncio
    async def test_custom_without_key_skips_auth(
        self,
        make_provider,
        fake_sleep,
    ):
        service, _ = make_service(chat_ok_handler, fake_sleep)
        provider = make_provider("acme", ProviderType.CUSTOM, ["gpt-4o"])
        result = await service.test_provider(provider)
        assert result.success
        auth = result.stage(Stage.AUTHENTICATION)
        assert auth.skipped
        assert auth.details == {"auth": "none"}

    @pytest.mark.asyncio
    async def test_bedrock_uses_static_checks(self, make_provider, fake_sleep):
        service, transport = make_service(chat_ok_handler, fake_sleep)
        provider = make_provider(
            "aws",
            ProviderType.BEDROCK,
            ["anthropic.claude-sonnet-4-20250514-v1:0"],
        )
        result = await service.test_provider(provider)
        assert result.success
        assert result.stage(Stage.FUNCTIONALITY).skipped
        assert [r.method for r in transport.requests] == ["HEAD"]

    @pytest.mark.asyncio
    async def test_invalid_config_fails_before_network(
        self,
        make_provider,
        fake_sleep,
    ):
        service, transport = make_service(chat_ok_handler, fake_sleep)
        result = await service.test_provider(make_provider(api_key=None))
        assert result.failed_stage == Stage.CONNECTIVITY
        assert result.stages[0].error_kind == ErrorKind.CONFIGURATION
        assert transport.requests == []

    def test_supported_types(self, fake_sleep):
        service, _ = make_service(chat_ok_handler, fake_sleep)
        assert service.is_testing_supported("bedrock")
        assert not service.is_testing_supported("azure")


class TestCache:
    @pytest.mark.asyncio
    async def test_result_reused_within_ttl(self, make_provider, fake_sleep):
        now = [0.0]
        service, transport = make_service(
            chat_ok_handler,
            fake_sleep,
            cache_ttl=60,
            clock=lambda: now[0],
        )
        provider = make_provider()
        first = await service.test_provider(provider)
        sent = len(transport.requests)
        second = await service.test_provider(provider)
        assert second.cached and not first.cached
        assert len(transport.requests) == sent

        now[0] = 61.0
        third = await service.test_provider(provider)
        assert not third.cached
        assert len(transport.requests) == 2 * sent

    @pytest.mark.asyncio
    async def test_changed_default_model_is_tested_again(
        self,
        make_provider,
        fake_sleep,
    ):
        service, _ = make_service(chat_ok_handler, fake_sleep)
        unlisted_first = make_provider(models=["gpt-5-preview", "gpt-4"])
        first = await service.test_provider(unlisted_first)
        assert first.failed_stage == Stage.MODEL_AVAILABILITY

        listed_first = make_provider(models=["gpt-4", "gpt-5-preview"])
        second = await service.test_provider(listed_first)
        assert not second.cached
        assert second.success
        assert second.model_id == "gpt-4"

    @pytest.mark.asyncio
    async def test_use_cache_false_and_clear(self, make_provider, fake_sleep):
        service, transport = make_service(chat_ok_handler, fake_sleep)
        provider = make_provider()
        await service.test_provider(provider)
        result = await service.test_provider(provider, use_cache=False)
        assert not result.cached
        service.clear_cache()
        assert not (await service.test_provider(provider)).cached


class TestFanOut:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(
        self,
        make_provider,
        fake_sleep,
    ):
        def handler(request):
            if request.url.host == "boom.example.com":
                raise RuntimeError("handler exploded")
            return chat_ok_handler(request)

        service, _ = make_service(handler, fake_sleep)
        providers = [
            make_provider("openai"),
            make_provider(
                "boom",
                ProviderType.CUSTOM,
                ["gpt-4"],
                base_url="https://boom.example.com/v1",
            ),
            make_provider("router", ProviderType.OPENROUTER),
        ]
        results = await service.test_multiple_providers(providers, 2)
        assert set(results) == {"openai", "boom", "router"}
        assert results["openai"].success
        assert results["router"].success
        assert not results["boom"].success
        assert results["boom"].error_kind == ErrorKind.UNKNOWN
        assert "handler exploded" in results["boom"].error

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, make_provider, fake_sleep):
        active = {"now": 0, "peak": 0}

        class SlowStrategyService(ConfigTestingService):
            async def test_provider(self, provider, model_id=None, **kwargs):
                active["now"] += 1
                active["peak"] = max(active["peak"], active["now"])
                await asyncio.sleep(0.01)
                active["now"] -= 1
                return await super().test_provider(provider, model_id, **kwargs)

        service = SlowStrategyService(
            ProviderRegistry(),
            transport=httpx.MockTransport(chat_ok_handler),
            sleep=fake_sleep,
        )
        providers = [make_provider(f"p{i}") for i in range(6)]
        results = await service.test_multiple_providers(providers, 2)
        assert len(results) == 6
        assert active["peak"] <= 2


class TestMetadata:
    @pytest.mark.asyncio
    async def test_apply_result(self, make_provider, fake_sleep):
        service, _ = make_service(unreachable, fake_sleep, retries=0)
        provider = make_provider()
        ok_service, _ = make_service(chat_ok_handler, fake_sleep)

        passed = apply_result(provider, await ok_service.test_provider(provider))
        assert passed.metadata.test_status == "success"
        assert passed.metadata.reliability_score == 100.0
        assert passed.metadata.last_tested is not None

        failed = apply_result(passed, await service.test_provider(provider))
        assert failed.metadata.test_status == "failure"
        assert failed.metadata.error_count == 1
        assert failed.metadata.reliability_score == 80.0
        assert "Network error" in failed.metadata.last_error


class TestHealth:
    def test_report_status(self):
        ok = ProviderTestResult(provider_id="a", success=True)
        bad = ProviderTestResult(provider_id="b", success=False)
        assert build_report({"a": ok}).status == "healthy"
        assert build_report({"b": bad}).status == "unhealthy"
        report = build_report({"a": ok, "b": bad})
        assert report.status == "degraded"
        assert report.healthy == 1 and report.total == 2
        assert report.recommendations == ["Inspect the logs for 'b'."]
        assert build_report({}).status == "unhealthy"

    @pytest.mark.asyncio
    async def test_monitor_runs_one_cycle_at_a_time(
        self,
        make_provider,
        fake_sleep,
    ):
        service, _ = make_service(chat_ok_handler, fake_sleep)
        cycle_done = asyncio.Event()
        reports = []

        async def parked_sleep(delay):
            cycle_done.set()
            await asyncio.Event().wait()

        async def providers():
            return [make_provider(), make_provider("second")]

        monitor = HealthMonitor(
            service,
            providers,
            interval=30,
            on_report=reports.append,
            sleep=parked_sleep,
        )
        monitor.start()
        task = monitor._task
        monitor.start()
        assert monitor._task is task

        await asyncio.wait_for(cycle_done.wait(), timeout=5)
        assert monitor.running
        assert len(reports) == 1
        assert reports[0].status == "healthy"
        await monitor.stop()
        assert not monitor.running
