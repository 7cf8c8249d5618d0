"""Tests for the Claude provider strategies."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import FakeRefreshTool
from conftest import FakeSecureStore
from conftest import make_credentials_json
from conftest import make_response
from conftest import no_sleep
from conftest import patch_http_client
from usagehub.core.gate import AccessGate
from usagehub.core.gate import PromptMode
from usagehub.core.refresh import RefreshCoordinator
from usagehub.core.services import Services
from usagehub.credentials.store import OAuthCredentials
from usagehub.credentials.store import SecureCredentialLayer
from usagehub.credentials.tiers import CredentialsFile
from usagehub.credentials.tiers import KeyringCacheStore
from usagehub.errors.types import ErrorCategory
from usagehub.errors.types import UsageFetchError
from usagehub.models import Interaction
from usagehub.models import PeriodType
from usagehub.models import Runtime
from usagehub.models import SourceMode
from usagehub.providers.claude import resolve_strategies
from usagehub.providers.claude.cli import ClaudeCLIStrategy
from usagehub.providers.claude.cli import parse_cli_output
from usagehub.providers.claude.oauth import TOKEN_URL
from usagehub.providers.claude.oauth import USAGE_URL
from usagehub.providers.claude.oauth import ClaudeOAuthStrategy
from usagehub.providers.claude.oauth import parse_usage_response
from usagehub.providers.claude.web import ClaudeWebStrategy
from usagehub.strategies.base import FetchContext

OAUTH_MODULE = "usagehub.providers.claude.oauth"

USAGE_DOCUMENT = {
    "five_hour": {"utilization": 42.0, "resets_at": "2025-01-15T15:00:00+00:00"},
    "seven_day": {"utilization": 27.0, "resets_at": "2025-01-20T18:59:59+00:00"},
    "seven_day_sonnet": {"utilization": 3.0, "resets_at": "2025-01-20T18:59:59+00:00"},
    "seven_day_opus": None,
    "extra_usage": {"is_enabled": True, "used_credits": 2.5, "monthly_limit": 50},
}


class TestResolveStrategies:
    @pytest.mark.parametrize(
        "runtime,mode,expected",
        [
            (Runtime.APP, SourceMode.AUTO, ["claude.oauth", "claude.web", "claude.cli"]),
            (Runtime.APP, SourceMode.OAUTH, ["claude.oauth", "claude.web", "claude.cli"]),
            (Runtime.APP, SourceMode.WEB, ["claude.web"]),
            (Runtime.APP, SourceMode.CLI, ["claude.cli"]),
            (Runtime.CLI, SourceMode.AUTO, ["claude.web", "claude.cli"]),
            (Runtime.CLI, SourceMode.OAUTH, ["claude.oauth"]),
            (Runtime.CLI, SourceMode.WEB, ["claude.web"]),
            (Runtime.CLI, SourceMode.CLI, ["claude.cli"]),
            (Runtime.CLI, SourceMode.API, []),
        ],
    )
    def test_order(self, runtime, mode, expected):
        ctx = FetchContext(runtime=runtime, source_mode=mode)
        assert [s.id for s in resolve_strategies(ctx)] == expected


class TestFallbackRules:
    @pytest.mark.parametrize(
        "runtime,mode,expected",
        [
            (Runtime.APP, SourceMode.AUTO, True),
            (Runtime.APP, SourceMode.OAUTH, True),
            (Runtime.CLI, SourceMode.AUTO, False),
            (Runtime.CLI, SourceMode.OAUTH, False),
        ],
    )
    def test_oauth(self, runtime, mode, expected):
        ctx = FetchContext(runtime=runtime, source_mode=mode)
        assert ClaudeOAuthStrategy().should_fallback(RuntimeError(), ctx) is expected

    def test_web_only_in_auto(self):
        web = ClaudeWebStrategy()
        assert web.should_fallback(RuntimeError(), FetchContext(source_mode=SourceMode.AUTO))
        assert not web.should_fallback(RuntimeError(), FetchContext(source_mode=SourceMode.WEB))

    def test_cli_never(self):
        assert not ClaudeCLIStrategy().should_fallback(RuntimeError(), FetchContext())


class TestParseUsageResponse:
    def test_windows_and_overage(self):
        snapshot = parse_usage_response(USAGE_DOCUMENT, "oauth")

        names = [p.name for p in snapshot.periods]
        assert names == ["Session (5h)", "All Models", "Sonnet"]
        assert snapshot.periods[0].utilization == 42
        assert snapshot.periods[0].period_type == PeriodType.SESSION
        assert snapshot.periods[2].model == "sonnet"
        assert snapshot.overage is not None
        assert str(snapshot.overage.used) == "2.5"
        assert snapshot.source == "oauth"

    def test_disabled_overage_is_omitted(self):
        data = {**USAGE_DOCUMENT, "extra_usage": {"is_enabled": False}}
        assert parse_usage_response(data, "web").overage is None

    def test_bad_reset_time_is_ignored(self):
        data = {"five_hour": {"utilization": 1, "resets_at": "tomorrow"}}
        assert parse_usage_response(data, "oauth").periods[0].resets_at is None

    def test_no_windows_is_parse_error(self):
        with pytest.raises(UsageFetchError) as exc_info:
            parse_usage_response({"five_hour": None}, "oauth")
        assert exc_info.value.category == ErrorCategory.PARSE


class TestParseCLIOutput:
    def test_usage_lines(self):
        output = (
            "\x1b[1mUsage\x1b[0m\n"
            "█ 45.2% (5-hour session)\n"
            "█ 32.0% [7-day period]\n"
            "other text\n"
        )

        snapshot = parse_cli_output(output)

        assert [p.utilization for p in snapshot.periods] == [45, 32]
        assert snapshot.periods[0].period_type == PeriodType.SESSION
        assert snapshot.periods[1].period_type == PeriodType.WEEKLY

    def test_nothing_recognizable(self):
        assert parse_cli_output("Welcome to Claude") is None


class ChangingTool(FakeRefreshTool):
    """Refresh tool that rewrites the credentials file with a fresh token."""

    def __init__(self, credentials_file: CredentialsFile, content: bytes):
        super().__init__()
        self.credentials_file = credentials_file
        self.content = content

    async def touch(self, timeout: float) -> None:
        await super().touch(timeout)
        self.credentials_file.write(self.content)


@pytest.fixture
def credentials_file(tmp_path) -> CredentialsFile:
    return CredentialsFile(tmp_path / "claude" / ".credentials.json")


def make_services(credentials_file, clock, tool=None, mode=PromptMode.ONLY_ON_USER_ACTION):
    gate = AccessGate(mode=mode, clock=clock)
    layer = SecureCredentialLayer(
        cache_store=KeyringCacheStore(),
        credentials_file=credentials_file,
        secure_store=FakeSecureStore(),
        gate=gate,
        clock=clock,
    )
    coordinator = RefreshCoordinator(
        tool=tool or FakeRefreshTool(),
        fingerprint_reader=layer.fingerprint,
        clock=clock,
        sleep=no_sleep,
    )
    return Services(credentials=layer, gate=gate, coordinator=coordinator)


def user_ctx(mode: SourceMode = SourceMode.OAUTH) -> FetchContext:
    return FetchContext(
        source_mode=mode, interaction=Interaction.USER_INITIATED, environment={}
    )


class TestClaudeOAuthStrategy:
    @pytest.mark.asyncio
    async def test_explicit_mode_is_always_available(self, credentials_file, clock):
        strategy = ClaudeOAuthStrategy(make_services(credentials_file, clock))

        assert await strategy.is_available(user_ctx(SourceMode.OAUTH))
        assert not await strategy.is_available(user_ctx(SourceMode.AUTO))

    @pytest.mark.asyncio
    async def test_auto_mode_available_with_credentials(self, credentials_file, clock, utc_now):
        credentials_file.write(make_credentials_json(utc_now + timedelta(hours=1)))
        strategy = ClaudeOAuthStrategy(make_services(credentials_file, clock))

        assert await strategy.is_available(user_ctx(SourceMode.AUTO))

    @pytest.mark.asyncio
    async def test_fetch_success(self, credentials_file, clock, utc_now, mock_httpx_client):
        credentials_file.write(make_credentials_json(utc_now + timedelta(hours=1)))
        mock_httpx_client.get.return_value = make_response(200, USAGE_DOCUMENT, USAGE_URL)
        strategy = ClaudeOAuthStrategy(make_services(credentials_file, clock))

        with patch_http_client(OAUTH_MODULE, mock_httpx_client):
            result = await strategy.fetch(user_ctx())

        assert result.strategy_id == "claude.oauth"
        assert result.source_label == "oauth"
        assert len(result.snapshot.periods) == 3
        headers = mock_httpx_client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer sk-ant-oat01-test"
        assert headers["anthropic-beta"] == "oauth-2025-04-20"

    @pytest.mark.asyncio
    async def test_missing_scope(self, credentials_file, clock, utc_now, mock_httpx_client):
        credentials_file.write(
            make_credentials_json(utc_now + timedelta(hours=1), scopes=("user:inference",))
        )
        strategy = ClaudeOAuthStrategy(make_services(credentials_file, clock))

        with patch_http_client(OAUTH_MODULE, mock_httpx_client):
            with pytest.raises(UsageFetchError) as exc_info:
                await strategy.fetch(user_ctx())

        assert exc_info.value.category == ErrorCategory.AUTHORIZATION
        assert "user:profile" in str(exc_info.value)
        mock_httpx_client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_rejected_token_invalidates_cache(
        self, credentials_file, clock, utc_now, mock_httpx_client, memory_keyring
    ):
        credentials_file.write(make_credentials_json(utc_now + timedelta(hours=1)))
        mock_httpx_client.get.return_value = make_response(401, {}, USAGE_URL)
        strategy = ClaudeOAuthStrategy(make_services(credentials_file, clock))

        with patch_http_client(OAUTH_MODULE, mock_httpx_client):
            with pytest.raises(UsageFetchError) as exc_info:
                await strategy.fetch(user_ctx())

        assert exc_info.value.category == ErrorCategory.AUTHENTICATION
        assert ("usagehub", "claude:oauth-cache") not in memory_keyring.passwords

    @pytest.mark.asyncio
    async def test_no_credentials(self, credentials_file, clock):
        strategy = ClaudeOAuthStrategy(make_services(credentials_file, clock))

        with pytest.raises(UsageFetchError) as exc_info:
            await strategy.fetch(user_ctx())

        assert exc_info.value.category == ErrorCategory.AUTHENTICATION


class TestClaudeOAuthRepair:
    @pytest.mark.asyncio
    async def test_app_owned_token_is_refreshed_directly(
        self, credentials_file, clock, utc_now, mock_httpx_client
    ):
        tool = FakeRefreshTool()
        services = make_services(credentials_file, clock, tool=tool)
        services.credentials.save_refreshed(
            OAuthCredentials(
                access_token="stale",
                refresh_token="refresh-me",
                expires_at=utc_now - timedelta(minutes=1),
                scopes=("user:profile",),
            )
        )
        mock_httpx_client.post.return_value = make_response(
            200, {"access_token": "renewed", "expires_in": 3600}, TOKEN_URL
        )
        mock_httpx_client.get.return_value = make_response(200, USAGE_DOCUMENT, USAGE_URL)

        with patch_http_client(OAUTH_MODULE, mock_httpx_client):
            await ClaudeOAuthStrategy(services).fetch(user_ctx())

        assert tool.touch_count == 0
        post = mock_httpx_client.post.call_args
        assert post.args[0] == TOKEN_URL
        assert post.kwargs["data"]["grant_type"] == "refresh_token"
        assert post.kwargs["data"]["refresh_token"] == "refresh-me"
        headers = mock_httpx_client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer renewed"

    @pytest.mark.asyncio
    async def test_delegated_refresh_recovers(
        self, credentials_file, clock, utc_now, mock_httpx_client
    ):
        credentials_file.write(make_credentials_json(utc_now - timedelta(minutes=5)))
        tool = ChangingTool(
            credentials_file,
            make_credentials_json(utc_now + timedelta(hours=8), access_token="refreshed"),
        )
        services = make_services(credentials_file, clock, tool=tool)
        mock_httpx_client.get.return_value = make_response(200, USAGE_DOCUMENT, USAGE_URL)

        with patch_http_client(OAUTH_MODULE, mock_httpx_client):
            result = await ClaudeOAuthStrategy(services).fetch(user_ctx())

        assert tool.touch_count == 1
        assert result.snapshot.periods
        headers = mock_httpx_client.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer refreshed"

    @pytest.mark.asyncio
    async def test_delegated_refresh_without_change(self, credentials_file, clock, utc_now):
        credentials_file.write(make_credentials_json(utc_now - timedelta(minutes=5)))
        tool = FakeRefreshTool()
        strategy = ClaudeOAuthStrategy(make_services(credentials_file, clock, tool=tool))

        with pytest.raises(UsageFetchError) as exc_info:
            await strategy.fetch(user_ctx())
        assert "delegated Claude CLI refresh failed" in str(exc_info.value)

        # A second request inside the short cooldown does not run the tool again.
        with pytest.raises(UsageFetchError) as exc_info:
            await strategy.fetch(user_ctx())
        assert "cooling down" in str(exc_info.value)
        assert tool.touch_count == 1

    @pytest.mark.asyncio
    async def test_refresh_tool_missing(self, credentials_file, clock, utc_now):
        credentials_file.write(make_credentials_json(utc_now - timedelta(minutes=5)))
        services = make_services(credentials_file, clock, tool=FakeRefreshTool(available=False))

        with pytest.raises(UsageFetchError) as exc_info:
            await ClaudeOAuthStrategy(services).fetch(user_ctx())

        assert "not available for delegated refresh" in str(exc_info.value)
        assert exc_info.value.category == ErrorCategory.AUTHENTICATION

    @pytest.mark.asyncio
    async def test_background_waits_for_user_action(self, credentials_file, clock, utc_now):
        credentials_file.write(make_credentials_json(utc_now - timedelta(minutes=5)))
        tool = FakeRefreshTool()
        services = make_services(credentials_file, clock, tool=tool)
        ctx = FetchContext(source_mode=SourceMode.OAUTH, environment={})

        with pytest.raises(UsageFetchError, match="user-initiated"):
            await ClaudeOAuthStrategy(services).fetch(ctx)
        assert tool.touch_count == 0

    @pytest.mark.asyncio
    async def test_never_mode_does_not_refresh(self, credentials_file, clock, utc_now):
        credentials_file.write(make_credentials_json(utc_now - timedelta(minutes=5)))
        tool = FakeRefreshTool()
        services = make_services(credentials_file, clock, tool=tool, mode=PromptMode.NEVER)

        with pytest.raises(UsageFetchError, match="secure store access is disabled"):
            await ClaudeOAuthStrategy(services).fetch(user_ctx())
        assert tool.touch_count == 0


class TestClaudeWebStrategy:
    @pytest.mark.asyncio
    async def test_requires_session_cookie(self):
        from usagehub.config.settings import ProviderConfig

        web = ClaudeWebStrategy()

        assert not await web.is_available(FetchContext())
        assert not await web.is_available(
            FetchContext(settings=ProviderConfig(cookie_header="other=1"))
        )
        assert await web.is_available(
            FetchContext(settings=ProviderConfig(cookie_header="Cookie: sessionKey=abc"))
        )

    @pytest.mark.asyncio
    async def test_fetch_picks_chat_org(self, mock_httpx_client):
        from usagehub.config.settings import ProviderConfig

        mock_httpx_client.get.side_effect = [
            make_response(
                200,
                [
                    {"uuid": "api-org", "capabilities": ["api"]},
                    {"uuid": "chat-org", "capabilities": ["chat"]},
                ],
            ),
            make_response(200, USAGE_DOCUMENT),
            make_response(
                200, {"current_spend": 5, "hard_limit": 20, "has_hard_limit": True}
            ),
        ]
        ctx = FetchContext(
            source_mode=SourceMode.WEB,
            settings=ProviderConfig(cookie_header="sessionKey=abc"),
        )

        with patch_http_client("usagehub.providers.claude.web", mock_httpx_client):
            result = await ClaudeWebStrategy().fetch(ctx)

        usage_url = mock_httpx_client.get.call_args_list[1].args[0]
        assert "chat-org" in usage_url
        assert result.source_label == "web"
        assert str(result.snapshot.overage.limit) == "20"
