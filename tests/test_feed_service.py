"""
tests/test_feed_service.py — Curated & External Feed Tests
===========================================================
"""

from __future__ import annotations

from dataclasses import replace

import pytest
from conftest import make_cast, run_async

from depthcaster.errors import UpstreamError, ValidationError
from depthcaster.services import curation_service, feed_service, pack_service
from depthcaster.services.deepseek_client import QualityAnalysis


def _curate(engine, hash_, curator=10, **kwargs):
    curation_service.curate_cast(engine, hash_, make_cast(hash_, **kwargs), curator)


# ===========================================================================
# Curated feed
# ===========================================================================
class TestCuratedFeed:
    def test_newest_first_with_cursor(self, db_engine):
        for h in ("0x1", "0x2", "0x3"):
            _curate(db_engine, h)

        first = feed_service.get_curated_feed(db_engine, limit=2)
        assert [i["cast_hash"] for i in first["items"]] == ["0x3", "0x2"]
        assert first["next_cursor"]

        second = feed_service.get_curated_feed(db_engine, limit=2, cursor=first["next_cursor"])
        assert [i["cast_hash"] for i in second["items"]] == ["0x1"]
        assert second["next_cursor"] is None

    def test_exact_page_has_no_cursor(self, db_engine):
        _curate(db_engine, "0x1")
        _curate(db_engine, "0x2")
        page = feed_service.get_curated_feed(db_engine, limit=2)
        assert len(page["items"]) == 2
        assert page["next_cursor"] is None

    def test_invalid_cursor(self, db_engine):
        with pytest.raises(ValidationError):
            feed_service.get_curated_feed(db_engine, cursor="garbage")

    def test_quality_and_category_filters(self, db_engine):
        _curate(db_engine, "0x1")
        _curate(db_engine, "0x2")
        curation_service.update_quality(db_engine, "0x1", QualityAnalysis(90, "playful", ""))
        curation_service.update_quality(db_engine, "0x2", QualityAnalysis(40, "other", ""))

        good = feed_service.get_curated_feed(db_engine, min_quality=70)
        assert [i["cast_hash"] for i in good["items"]] == ["0x1"]

        other = feed_service.get_curated_feed(db_engine, category="other")
        assert [i["cast_hash"] for i in other["items"]] == ["0x2"]

    def test_curator_and_author_filters(self, db_engine):
        _curate(db_engine, "0x1", curator=10, author_fid=100)
        _curate(db_engine, "0x2", curator=11, author_fid=200)

        by_curator = feed_service.get_curated_feed(db_engine, curator_fids=[11])
        assert [i["cast_hash"] for i in by_curator["items"]] == ["0x2"]

        by_author = feed_service.get_curated_feed(db_engine, author_fid=100)
        assert [i["cast_hash"] for i in by_author["items"]] == ["0x1"]

    def test_items_carry_curators(self, db_engine):
        _curate(db_engine, "0x1", curator=10)
        curation_service.curate_cast(db_engine, "0x1", make_cast("0x1"), 11)
        item = feed_service.get_curated_feed(db_engine)["items"][0]
        assert item["curator_fids"] == [10, 11]
        assert item["cast"]["hash"] == "0x1"


class TestPackAndUserFeeds:
    def test_pack_feed_follows_subscriptions(self, db_engine):
        _curate(db_engine, "0x1", curator=10)
        _curate(db_engine, "0x2", curator=11)
        pack = pack_service.create_pack(db_engine, 50, "Builders", [11])

        assert feed_service.get_pack_feed(db_engine, 60)["items"] == []

        pack_service.subscribe(db_engine, 60, pack["id"])
        page = feed_service.get_pack_feed(db_engine, 60)
        assert [i["cast_hash"] for i in page["items"]] == ["0x2"]

    def test_user_curated_casts(self, db_engine):
        _curate(db_engine, "0x1", curator=10)
        _curate(db_engine, "0x2", curator=11)
        curation_service.curate_cast(db_engine, "0x2", make_cast("0x2"), 10)

        page = feed_service.get_user_curated_casts(db_engine, 10, limit=1)
        assert [i["cast_hash"] for i in page["items"]] == ["0x2"]
        assert "curated_by_user_at" in page["items"][0]

        rest = feed_service.get_user_curated_casts(db_engine, 10, cursor=page["next_cursor"])
        assert [i["cast_hash"] for i in rest["items"]] == ["0x1"]

    def test_miniapp_feed(self, db_engine):
        _curate(db_engine, "0x1", author_fid=100, username="carol")
        _curate(db_engine, "0x2", author_fid=200)
        curation_service.update_quality(db_engine, "0x1", QualityAnalysis(75, "playful", ""))
        curation_service.update_quality(db_engine, "0x2", QualityAnalysis(50, "other", ""))

        items = feed_service.get_miniapp_feed(db_engine, min_quality=70)
        assert [i["cast_hash"] for i in items] == ["0x1"]
        assert items[0]["author"]["username"] == "carol"


# ===========================================================================
# External feed
# ===========================================================================
class TestExternalFeed:
    def test_following_requires_viewer(self, neynar, cfg):
        with pytest.raises(ValidationError):
            run_async(feed_service.assemble_external_feed(neynar, "following", cfg))

    def test_following_feed(self, neynar, cfg):
        neynar.feeds["following"] = {
            "casts": [make_cast("0x1"), make_cast("0x2", score=0.1)],
            "next": {"cursor": "abc"},
        }
        result = run_async(
            feed_service.assemble_external_feed(neynar, "following", cfg, viewer_fid=3)
        )
        assert [c["hash"] for c in result["casts"]] == ["0x1"]
        assert result["next_cursor"] == "abc"

    def test_unconfigured_curated_falls_back_to_trending(self, neynar, cfg):
        neynar.feeds["global_trending"] = {"casts": [make_cast("0xt")]}
        result = run_async(feed_service.assemble_external_feed(neynar, "curated", cfg))
        assert [c["hash"] for c in result["casts"]] == ["0xt"]

    def test_merged_feed_dedupes_and_ranks(self, neynar, cfg):
        cfg = replace(cfg, curated_fids=(1, 2))
        neynar.feeds["fids"] = {"casts": [make_cast("0x1", score=0.6), make_cast("0x2", score=0.95)]}
        neynar.feeds["global_trending"] = {"casts": [make_cast("0x2", score=0.95)]}

        result = run_async(feed_service.assemble_external_feed(neynar, "mixed", cfg, limit=10))
        assert [c["hash"] for c in result["casts"]] == ["0x2", "0x1"]
        assert result["next_cursor"] is None

    def test_hidden_bots_are_dropped(self, neynar, cfg):
        neynar.feeds["global_trending"] = {
            "casts": [make_cast("0xbot", username="deepbot", score=0.99), make_cast("0xok")]
        }
        result = run_async(feed_service.assemble_external_feed(neynar, "trending", cfg))
        assert [c["hash"] for c in result["casts"]] == ["0xok"]

    def test_merged_feed_skips_hashless_casts(self, neynar, cfg):
        cfg = replace(cfg, curated_fids=(1,))
        first, second = make_cast("0x1"), make_cast("0x2")
        del first["hash"]
        second["hash"] = None
        neynar.feeds["fids"] = {"casts": [first, make_cast("0x3")]}
        neynar.feeds["global_trending"] = {"casts": [second, make_cast("0x4")]}

        result = run_async(feed_service.assemble_external_feed(neynar, "mixed", cfg, limit=10))
        assert sorted(c["hash"] for c in result["casts"]) == ["0x3", "0x4"]

    def test_deep_thoughts_min_length(self, neynar, cfg):
        neynar.feeds["global_trending"] = {
            "casts": [make_cast("0xshort", text="x" * 60), make_cast("0xlong", text="y" * 150)]
        }
        result = run_async(feed_service.assemble_external_feed(neynar, "deep-thoughts", cfg))
        assert [c["hash"] for c in result["casts"]] == ["0xlong"]

    def test_conversations_need_replies(self, neynar, cfg):
        neynar.feeds["global_trending"] = {
            "casts": [make_cast("0xquiet", replies=1), make_cast("0xbusy", replies=3)]
        }
        result = run_async(feed_service.assemble_external_feed(neynar, "conversations", cfg))
        assert [c["hash"] for c in result["casts"]] == ["0xbusy"]

    def test_failed_source_is_skipped(self, neynar, cfg):
        async def broken(**kwargs):
            raise UpstreamError("down")

        neynar.fetch_feed_by_channel_ids = lambda *a, **k: broken()
        cfg = replace(cfg, curated_channels=("art",))
        neynar.feeds["global_trending"] = {"casts": [make_cast("0xt")]}
        result = run_async(feed_service.assemble_external_feed(neynar, "mixed", cfg))
        assert [c["hash"] for c in result["casts"]] == ["0xt"]
