"""
tests/test_clients.py — Neynar & DeepSeek Client Tests
========================================================

Both clients accept an httpx transport, so requests are answered by
``httpx.MockTransport`` handlers instead of the network.
"""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import run_async

from depthcaster.errors import UpstreamError
from depthcaster.services.deepseek_client import (
    DeepSeekClient,
    build_cast_content,
    parse_analysis,
    strip_code_fences,
)
from depthcaster.services.neynar_client import NeynarClient

LONG_TEXT = "Incentive design in open protocols is mostly about who pays for the commons."


def _deepseek(handler) -> DeepSeekClient:
    return DeepSeekClient("key", base_url="https://deepseek.test", transport=httpx.MockTransport(handler))


def _neynar(handler) -> NeynarClient:
    return NeynarClient("key", base_url="https://neynar.test", transport=httpx.MockTransport(handler))


def _completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


# ===========================================================================
# DeepSeek: content & parsing
# ===========================================================================
class TestCastContent:
    def test_text_only(self):
        assert build_cast_content({"text": " hello "}) == "Cast text:\nhello"

    def test_embeds(self):
        cast = {
            "text": "look",
            "embeds": [
                {"cast": {"text": "quoted words"}},
                {"url": "https://a.test", "metadata": {"html": {"ogTitle": "A title"}}},
                {"url": "https://img.test/x.png", "metadata": {"content_type": "image/png"}},
            ],
        }
        content = build_cast_content(cast)
        assert "[Quoted cast 1]: quoted words" in content
        assert "[Link 1]: https://a.test\n  Title: A title" in content
        assert "[Image(s) present but no alt text available]" in content

    def test_long_text_is_truncated(self):
        content = build_cast_content({"text": "x" * 2500})
        assert content.endswith("x" * 10 + "...")
        assert len(content) == len("Cast text:\n") + 2000 + 3

    def test_empty(self):
        assert build_cast_content(None) == ""


class TestParseAnalysis:
    def test_strip_fences(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fences('{"a": 1}') == '{"a": 1}'

    def test_parse_clamps_and_normalizes(self):
        raw = json.dumps({"qualityScore": 140, "category": "Market", "reasoning": "r"})
        analysis = parse_analysis(raw, LONG_TEXT)
        assert analysis.quality_score == 100
        assert analysis.category == "market-news"
        assert analysis.reasoning == "r"

    def test_short_text_cap_applies(self):
        raw = '{"qualityScore": 90, "category": "playful"}'
        assert parse_analysis(raw, "gm").quality_score == 20

    def test_non_object_reply(self):
        with pytest.raises(ValueError):
            parse_analysis("[1, 2]", LONG_TEXT)
        with pytest.raises(ValueError):
            parse_analysis("not json", LONG_TEXT)

    def test_wrongly_typed_fields(self):
        raw = json.dumps({"qualityScore": 70, "category": 5, "reasoning": ["a", "b"]})
        analysis = parse_analysis(raw, LONG_TEXT)
        assert analysis.quality_score == 70
        assert analysis.category == "other"
        assert analysis.reasoning is None


# ===========================================================================
# DeepSeek: HTTP
# ===========================================================================
class TestDeepSeekClient:
    def test_analyze(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return _completion('```json\n{"qualityScore": 77, "category": "crypto-critique"}\n```')

        client = _deepseek(handler)
        analysis = run_async(client.analyze_cast_quality({"text": LONG_TEXT}))

        assert analysis.quality_score == 77
        assert analysis.category == "crypto-critique"
        assert seen["auth"] == "Bearer key"
        assert seen["body"]["model"] == "deepseek-chat"
        assert LONG_TEXT in seen["body"]["messages"][1]["content"]

    def test_empty_content_scores_neutral_without_a_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        analysis = run_async(_deepseek(handler).analyze_cast_quality({"text": ""}))
        assert (analysis.quality_score, analysis.category) == (50, "other")

    def test_http_error_yields_none(self):
        client = _deepseek(lambda request: httpx.Response(500, text="boom"))
        assert run_async(client.analyze_cast_quality({"text": LONG_TEXT})) is None

    def test_unparseable_reply_yields_none(self):
        client = _deepseek(lambda request: _completion("I think it's great"))
        assert run_async(client.analyze_cast_quality({"text": LONG_TEXT})) is None

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>gateway</html>"),
            httpx.Response(200, json={"choices": []}),
            httpx.Response(200, json={"choices": [{"message": None}]}),
            httpx.Response(200, json=["unexpected"]),
            httpx.Response(200, json={"choices": [{"message": {"content": 42}}]}),
        ],
    )
    def test_malformed_success_body_yields_none(self, response):
        client = _deepseek(lambda request: response)
        assert run_async(client.analyze_cast_quality({"text": LONG_TEXT})) is None

    def test_non_string_category_becomes_other(self):
        client = _deepseek(lambda request: _completion('{"qualityScore": 70, "category": 5}'))
        analysis = run_async(client.analyze_cast_quality({"text": LONG_TEXT}))
        assert (analysis.quality_score, analysis.category) == (70, "other")


# ===========================================================================
# Neynar
# ===========================================================================
class TestNeynarClient:
    def test_lookup_cast(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v2/farcaster/cast"
            assert request.url.params["identifier"] == "0xabc"
            assert request.headers["x-api-key"] == "key"
            return httpx.Response(200, json={"cast": {"hash": "0xabc"}})

        assert run_async(_neynar(handler).lookup_cast("0xabc")) == {"hash": "0xabc"}

    def test_error_status_raises(self):
        client = _neynar(lambda request: httpx.Response(404, json={"message": "nope"}))
        with pytest.raises(UpstreamError):
            run_async(client.lookup_cast("0xabc"))

    def test_feed_params(self):
        def handler(request: httpx.Request) -> httpx.Response:
            params = request.url.params
            assert params["feed_type"] == "filter"
            assert params["filter_type"] == "fids"
            assert params["fids"] == "1,2"
            return httpx.Response(200, json={"casts": []})

        result = run_async(_neynar(handler).fetch_feed(filter_type="fids", fids=[1, 2]))
        assert result == {"casts": []}

    def test_notification_tokens_follow_cursor(self):
        pages = {
            None: {"notification_tokens": [{"fid": 1}], "next": {"cursor": "p2"}},
            "p2": {"notification_tokens": [{"fid": 2}], "next": {"cursor": None}},
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=pages[request.url.params.get("cursor")])

        tokens = run_async(_neynar(handler).fetch_notification_tokens())
        assert [t["fid"] for t in tokens] == [1, 2]
