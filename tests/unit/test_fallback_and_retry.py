"""
LLM suggestion fallback and retry/backoff behaviour.
"""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from prospector.core.data_types import SearchHints, TargetFilters
from prospector.core.errors import RateLimitedError, SourceUnavailableError
from prospector.core.retry import is_retryable, with_retry
from prospector.discovery.fallback import SUGGESTION_SOURCE, SuggestionFallback


def llm_returning(text):
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=text)
    return llm


@pytest.mark.asyncio
class TestSuggestionFallback:
    async def test_unavailable_without_llm(self):
        fallback = SuggestionFallback(None)
        assert fallback.available is False
        assert await fallback.suggest(TargetFilters(), 10) == []

    async def test_builds_tagged_drafts_and_dedupes(self):
        llm = llm_returning(json.dumps([
            {"name": "Contoso", "domain": "https://www.contoso.com/", "industry": "Software", "country": "US"},
            {"name": "Contoso Ltd", "domain": "contoso.com"},
            {"name": "Fabrikam", "domain": None},
            {"domain": "noname.io"},
        ]))
        fallback = SuggestionFallback(llm)

        drafts = await fallback.suggest(TargetFilters(industries=["software"]), 10)

        assert [d.name for d in drafts] == ["Contoso", "Fabrikam"]
        assert drafts[0].domain == "contoso.com"
        assert drafts[0].website_url == "https://contoso.com"
        assert drafts[0].sources[0].source == SUGGESTION_SOURCE
        assert drafts[1].domain is None

    async def test_caps_request_at_policy_limit(self):
        items = [{"name": f"Co {i}", "domain": f"co{i}.com"} for i in range(40)]
        llm = llm_returning(json.dumps({"companies": items}))
        fallback = SuggestionFallback(llm)

        drafts = await fallback.suggest(
            TargetFilters(hints=SearchHints(semantic_query="warehouse analytics")), 100
        )

        assert len(drafts) == 15
        prompt = llm.complete.call_args.args[0]
        assert "Suggest up to 15 real companies" in prompt
        assert "SEARCH INTENT: warehouse analytics" in prompt

    async def test_llm_error_yields_empty(self):
        llm = MagicMock()
        llm.complete = AsyncMock(side_effect=TimeoutError("slow"))
        assert await SuggestionFallback(llm).suggest(TargetFilters(), 5) == []

    async def test_garbage_yields_empty(self):
        assert await SuggestionFallback(llm_returning("no idea, sorry")).suggest(TargetFilters(), 5) == []


def test_retryable_classification():
    assert is_retryable(SourceUnavailableError("apollo", "boom", status_code=503))
    assert is_retryable(SourceUnavailableError("apollo", "reset"))
    assert not is_retryable(SourceUnavailableError("apollo", "bad key", status_code=401))
    assert not is_retryable(RateLimitedError("apollo", retry_after=3))
    assert not is_retryable(ValueError("nope"))


@pytest.mark.asyncio
class TestWithRetry:
    async def test_retries_transient_then_succeeds(self):
        fn = AsyncMock(side_effect=[SourceUnavailableError("exa", "HTTP 503", status_code=503), "ok"])
        with patch("prospector.core.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await with_retry(fn, retries=2) == "ok"
        assert fn.await_count == 2
        sleep.assert_awaited_once()

    async def test_rate_limit_is_not_retried(self):
        fn = AsyncMock(side_effect=RateLimitedError("exa", retry_after=5))
        with patch("prospector.core.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(RateLimitedError):
                await with_retry(fn, retries=3)
        assert fn.await_count == 1
        sleep.assert_not_awaited()

    async def test_gives_up_after_retries(self):
        fn = AsyncMock(side_effect=SourceUnavailableError("exa", "HTTP 502", status_code=502))
        with patch("prospector.core.retry.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(SourceUnavailableError):
                await with_retry(fn, retries=2)
        assert fn.await_count == 3
