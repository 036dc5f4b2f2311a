"""
depthcaster.services.deepseek_client — LLM quality scoring
===========================================================

Asks DeepSeek (OpenAI-compatible chat API) for a 0-100 quality score and a
topic category for a cast.  The model's output is never trusted as-is:

1. Markdown code fences are stripped before JSON parsing.
2. The score is clamped to 0..100.
3. Emoji-only / ultra-short casts are capped
   (:func:`~depthcaster.engine.quality.apply_short_text_caps`).
4. The category is normalized onto the fixed category list.

Any HTTP or parse failure is logged and yields ``None``; callers treat
that as "not analyzed yet".
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from depthcaster.constants import QUALITY_CATEGORIES
from depthcaster.engine.quality import apply_short_text_caps, clamp_score, normalize_category

logger = logging.getLogger(__name__)

DEEPSEEK_API = "https://api.deepseek.com"
DEEPSEEK_MODEL = "deepseek-chat"

_MAX_TEXT_CHARS = 2000
_MAX_QUOTE_CHARS = 500
_MIN_CONTENT_CHARS = 10

SYSTEM_PROMPT = (
    "You are an expert at analyzing social media content quality and "
    "categorizing topics. Always respond with valid JSON only."
)

_CATEGORY_GUIDE = """\
- crypto-critique: Deep analysis of crypto systems, incentives, token dynamics, ecosystem behaviour
- platform-analysis: Farcaster/Base/platform governance, UX critiques, design philosophy
- creator-economy: Creator tokens, artist economics, monetisation models, audience dynamics
- art-culture: Art philosophy, crypto-art exploration, aesthetic commentary, cultural meaning
- ai-philosophy: AI's impact on creation, society, thinking and productivity
- community-culture: Scene dynamics, digital/physical community strategy, social tech
- life-reflection: Life stages, clarity, purpose, meaning, inner transformation
- market-news: Announcements, event recaps, links, news highlights, lightweight info posts
- playful: Humour, meme-y content, lists, quips, light takes
- other: Anything that doesn't fit the above categories"""


@dataclass(frozen=True, slots=True)
class QualityAnalysis:
    quality_score: int
    category: str
    reasoning: str | None = None


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def build_cast_content(cast_data: dict[str, Any] | None) -> str:
    """Flatten a cast and its embeds into the text block sent to the model."""
    cast = cast_data or {}
    text = (cast.get("text") or "").strip()

    quoted: list[str] = []
    links: list[str] = []
    image_alts: list[str] = []
    has_images = False

    for embed in cast.get("embeds") or []:
        meta = embed.get("metadata") or {}
        if (embed.get("cast") or {}).get("text") or embed.get("cast_id"):
            quoted.append((embed.get("cast") or {}).get("text") or "")
            continue
        if meta.get("image") or str(meta.get("content_type") or "").startswith("image/"):
            has_images = True
            if meta.get("alt"):
                image_alts.append(meta["alt"])
            continue
        if embed.get("url"):
            html = meta.get("html") or {}
            info = f"[Link {len(links) + 1}]: {embed['url']}"
            title = meta.get("title") or html.get("ogTitle")
            description = meta.get("description") or html.get("ogDescription")
            if title:
                info += f"\n  Title: {title}"
            if description:
                info += f"\n  Description: {description}"
            links.append(info)

    parts: list[str] = []
    if text:
        parts.append(f"Cast text:\n{_truncate(text, _MAX_TEXT_CHARS)}")
    if quoted:
        lines = "\n".join(
            f"[Quoted cast {i}]: {_truncate(q, _MAX_QUOTE_CHARS)}" for i, q in enumerate(quoted, 1)
        )
        parts.append(f"Quoted casts:\n{lines}")
    if links:
        parts.append("Links:\n" + "\n".join(links))
    if has_images:
        if image_alts:
            parts.append(
                "Images:\n" + "\n".join(f"[Image {i}]: {alt}" for i, alt in enumerate(image_alts, 1))
            )
        else:
            parts.append("Images:\n[Image(s) present but no alt text available]")
    return "\n\n".join(parts)


def _build_prompt(content: str) -> str:
    return (
        "Analyze this Farcaster cast and provide:\n"
        "1. A quality score from 0-100 based on depth, clarity, and value\n"
        '   - Extremely low-effort content (single emoji, "gm", "lol") should score 0-5\n'
        '   - Very short acknowledgements (e.g. "that\'s fair") should typically score 5-20\n'
        "   - Reserve scores above 60 for substantial thought, argument or original perspective\n"
        f"2. A category from this list: {', '.join(QUALITY_CATEGORIES)}\n\n"
        f"Category descriptions:\n{_CATEGORY_GUIDE}\n\n"
        f"{content}\n\n"
        "Respond in JSON format:\n"
        '{"qualityScore": <number 0-100>, "category": "<category>", "reasoning": "<brief explanation>"}'
    )


def strip_code_fences(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.lower().startswith("json"):
            text = text[4:]
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_analysis(raw: str, cast_text: str | None) -> QualityAnalysis:
    """Turn the model's reply into a validated :class:`QualityAnalysis`.

    Raises ``ValueError`` when the reply is not a JSON object.
    """
    result = json.loads(strip_code_fences(raw))
    if not isinstance(result, dict):
        raise ValueError("model reply is not a JSON object")

    score = clamp_score(result.get("qualityScore"))
    score = apply_short_text_caps(cast_text, score)
    reasoning = result.get("reasoning")
    return QualityAnalysis(
        quality_score=score,
        category=normalize_category(result.get("category")),
        reasoning=reasoning if isinstance(reasoning, str) else None,
    )


class DeepSeekClient:
    """Async DeepSeek chat-completions client."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        timeout: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or os.getenv("DEEPSEEK_API_URL", DEEPSEEK_API),
            timeout=timeout,
            transport=transport or httpx.AsyncHTTPTransport(retries=1),
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _complete(self, prompt: str) -> str | None:
        resp = await self._client.post(
            "/chat/completions",
            json={
                "model": DEEPSEEK_MODEL,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "max_tokens": 200,
                "temperature": 0.3,
            },
        )
        if resp.status_code != 200:
            logger.error("DeepSeek API error %d: %s", resp.status_code, resp.text[:200])
            return None
        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, LookupError, TypeError):
            logger.error("Unexpected DeepSeek response body: %.200s", resp.text)
            return None
        return content if isinstance(content, str) else None

    async def analyze_cast_quality(self, cast_data: dict[str, Any]) -> QualityAnalysis | None:
        content = build_cast_content(cast_data)
        if len(content.strip()) < _MIN_CONTENT_CHARS:
            return QualityAnalysis(50, "other", "No analyzable text or embed content")

        try:
            reply = await self._complete(_build_prompt(content))
        except httpx.HTTPError as exc:
            logger.error("DeepSeek request failed: %s", exc)
            return None
        if not reply:
            logger.error("DeepSeek returned no content")
            return None

        try:
            analysis = parse_analysis(reply, cast_data.get("text"))
        except ValueError:
            logger.exception("Could not parse DeepSeek reply: %.200s", reply)
            return None

        logger.info(
            "Quality analysis: score=%d category=%s", analysis.quality_score, analysis.category
        )
        return analysis
