"""Tests for knowledge sources."""

from unittest.mock import AsyncMock, Mock

import httpx
import pytest


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestStackOverflowSource:
    @pytest.mark.asyncio
    async def test_request_and_mapping(self):
        from bugtrace.suggest.sources import StackOverflowSource
        seen = {}

        def handler(request):
            seen["url"] = request.url
            return httpx.Response(200, json={"items": [{
                "question_id": 123,
                "title": "Why is &quot;foo&quot; undefined?",
                "link": "https://stackoverflow.com/q/123",
                "body_markdown": "x" * 300,
                "score": 17,
                "tags": ["javascript"],
                "is_answered": True,
            }]})

        source = StackOverflowSource(client=_client(handler))
        results = await source.search("TypeError foo", 30)

        params = seen["url"].params
        assert seen["url"].path == "/2.3/search/advanced"
        assert params["q"] == "TypeError foo"
        assert params["site"] == "stackoverflow"
        assert params["sort"] == "relevance"
        assert params["pagesize"] == "20"
        assert "key" not in params

        s = results[0]
        assert s.id == "so-123"
        assert s.title == 'Why is "foo" undefined?'
        assert s.excerpt == "x" * 200 + "..."
        assert s.vote_count == 17
        assert s.relevance_score == 17.0
        assert s.accepted is True
        assert s.tags == ["javascript"]

    @pytest.mark.asyncio
    async def test_api_key_and_cap(self):
        from bugtrace.suggest.sources import StackOverflowSource
        seen = {}

        def handler(request):
            seen["params"] = request.url.params
            items = [{"question_id": i, "title": f"q{i}", "score": 0} for i in range(10)]
            return httpx.Response(200, json={"items": items})

        source = StackOverflowSource(client=_client(handler), api_key="se-key")
        results = await source.search("q", 3)
        assert seen["params"]["key"] == "se-key"
        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        from bugtrace.suggest.sources import SourceError, SourceUnauthorized, StackOverflowSource
        source = StackOverflowSource(client=_client(lambda r: httpx.Response(502)))
        with pytest.raises(SourceError) as exc:
            await source.search("q", 5)
        assert not isinstance(exc.value, SourceUnauthorized)


class TestGitHubSource:
    @pytest.mark.asyncio
    async def test_issue_search(self):
        from bugtrace.suggest.sources import GitHubSource
        seen = {}

        def handler(request):
            seen["request"] = request
            return httpx.Response(200, json={"items": [{
                "id": 99,
                "title": "Crash on undefined",
                "html_url": "https://github.com/o/r/issues/1",
                "body": None,
                "score": 1.5,
                "labels": [{"name": "bug"}],
                "reactions": {"total_count": 4},
                "state": "closed",
            }]})

        results = await GitHubSource(client=_client(handler)).search("TypeError x", 5)

        request = seen["request"]
        assert request.url.path == "/search/issues"
        assert request.url.params["q"] == "TypeError x type:issue state:closed"
        assert request.headers["Accept"] == "application/vnd.github.v3+json"
        assert "Authorization" not in request.headers

        s = results[0]
        assert s.id == "gh-99"
        assert s.excerpt == "..."
        assert s.vote_count == 4
        assert s.tags == ["bug"]
        assert s.accepted is True

    @pytest.mark.asyncio
    async def test_token_adds_code_search(self):
        from bugtrace.suggest.sources import GitHubSource
        paths = []

        def handler(request):
            paths.append(request.url.path)
            assert request.headers["Authorization"] == "Bearer ghp_x"
            if request.url.path == "/search/code":
                return httpx.Response(200, json={"items": [{
                    "name": "app.js", "path": "src/app.js",
                    "repository": {"full_name": "o/r"},
                    "html_url": "https://github.com/o/r/blob/main/src/app.js",
                    "score": 2.0,
                }]})
            return httpx.Response(200, json={"items": []})

        results = await GitHubSource(client=_client(handler), token="ghp_x").search("q", 5)
        assert paths == ["/search/issues", "/search/code"]
        assert results[0].id == "gh-code-o/r/src/app.js"
        assert results[0].tags == ["code"]

    @pytest.mark.asyncio
    async def test_code_search_failure_keeps_issues(self):
        from bugtrace.suggest.sources import GitHubSource

        def handler(request):
            if request.url.path == "/search/code":
                return httpx.Response(422)
            return httpx.Response(200, json={"items": [{"id": 1, "title": "t"}]})

        results = await GitHubSource(client=_client(handler), token="ghp_x").search("q", 5)
        assert [s.id for s in results] == ["gh-1"]

    @pytest.mark.asyncio
    async def test_unauthorized(self):
        from bugtrace.suggest.sources import GitHubSource, SourceUnauthorized
        source = GitHubSource(client=_client(lambda r: httpx.Response(401)), token="bad")
        with pytest.raises(SourceUnauthorized):
            await source.search("q", 5)

    @pytest.mark.asyncio
    async def test_rate_limited_403_is_failure_not_unauthorized(self):
        from bugtrace.suggest import SourceStatus, SuggestionAggregator
        from bugtrace.suggest.sources import GitHubSource, SourceError, SourceUnauthorized

        def handler(request):
            return httpx.Response(
                403,
                json={"message": "API rate limit exceeded"},
                headers={"X-RateLimit-Remaining": "0"},
            )

        source = GitHubSource(client=_client(handler))
        with pytest.raises(SourceError) as exc:
            await source.search("TypeError x", 5)
        assert not isinstance(exc.value, SourceUnauthorized)

        batch = await SuggestionAggregator([source]).fetch("TypeError x", ["github"], 5)
        assert batch.outcomes[0].status == SourceStatus.FAILED
        assert "rate limit" in batch.outcomes[0].error

    @pytest.mark.asyncio
    async def test_retry_after_403_is_failure(self):
        from bugtrace.suggest.sources import GitHubSource, SourceError, SourceUnauthorized
        source = GitHubSource(client=_client(lambda r: httpx.Response(403, headers={"Retry-After": "60"})))
        with pytest.raises(SourceError) as exc:
            await source.search("q", 5)
        assert not isinstance(exc.value, SourceUnauthorized)

    @pytest.mark.asyncio
    async def test_plain_403_is_unauthorized(self):
        from bugtrace.suggest.sources import GitHubSource, SourceUnauthorized
        source = GitHubSource(client=_client(lambda r: httpx.Response(403)), token="revoked")
        with pytest.raises(SourceUnauthorized):
            await source.search("q", 5)

    @pytest.mark.asyncio
    async def test_code_search_without_token(self):
        from bugtrace.suggest.sources import GitHubSource, SourceUnauthorized
        with pytest.raises(SourceUnauthorized):
            await GitHubSource(client=_client(lambda r: httpx.Response(200))).search_code("q", 5)

    @pytest.mark.asyncio
    async def test_transport_error(self):
        from bugtrace.suggest.sources import GitHubSource, SourceError

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(SourceError):
            await GitHubSource(client=_client(handler)).search("q", 5)


class TestMdnSource:
    @pytest.mark.asyncio
    async def test_case_insensitive_match(self):
        from bugtrace.suggest.sources import MdnSource
        results = await MdnSource().search("uncaught typeerror : x is not a function", 10)
        assert [s.id for s in results] == ["mdn-TypeError"]
        assert results[0].url.endswith("/Global_Objects/TypeError")
        assert results[0].title == "TypeError - JavaScript | MDN"

    @pytest.mark.asyncio
    async def test_multiple_and_cap(self):
        from bugtrace.suggest.sources import MdnSource
        query = "TypeError then RangeError then SyntaxError"
        assert len(await MdnSource().search(query, 10)) == 3
        assert [s.id for s in await MdnSource().search(query, 2)] == ["mdn-TypeError", "mdn-SyntaxError"]

    @pytest.mark.asyncio
    async def test_no_match(self):
        from bugtrace.suggest.sources import MdnSource
        assert await MdnSource().search("HTTP : Not Found", 10) == []


class TestAssistantSource:
    @pytest.mark.asyncio
    async def test_parses_llm_answer(self):
        from bugtrace.suggest.sources import AssistantSource
        llm = Mock()
        llm.is_available = True
        llm.agenerate = AsyncMock(return_value='```json\n{"suggestions": ['
                                  '{"title": "Guard the access", "explanation": "Use foo?.bar", "confidence": 0.8},'
                                  '{"title": "", "explanation": "dropped"},'
                                  '{"title": "Init state", "confidence": "high"}]}\n```')

        results = await AssistantSource(llm).search("TypeError : x", 5)

        assert [s.title for s in results] == ["Guard the access", "Init state"]
        assert results[0].relevance_score == 0.8
        assert results[1].relevance_score == 0.0
        assert results[0].id.startswith("ai-")
        assert results[0].url is None
        prompt = llm.agenerate.call_args.args[0]
        assert "TypeError : x" in prompt

    @pytest.mark.asyncio
    async def test_unavailable_llm_is_unauthorized(self):
        from bugtrace.suggest.sources import AssistantSource, SourceUnauthorized
        llm = Mock()
        llm.is_available = False
        with pytest.raises(SourceUnauthorized):
            await AssistantSource(llm).search("q", 5)

    @pytest.mark.asyncio
    async def test_llm_failure_is_source_error(self):
        from bugtrace.suggest.sources import AssistantSource, SourceError
        llm = Mock()
        llm.is_available = True
        llm.agenerate = AsyncMock(side_effect=TimeoutError("too slow"))
        with pytest.raises(SourceError):
            await AssistantSource(llm).search("q", 5)
