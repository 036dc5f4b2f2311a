"""
tests/test_collections_packs.py — Collections & Curator Packs
==============================================================
"""

from __future__ import annotations

import pytest
from conftest import grant, make_cast
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from depthcaster.database.models import CollectionCast
from depthcaster.errors import ConflictError, NotFoundError, PermissionDenied, ValidationError
from depthcaster.services import collection_service, curation_service, pack_service, user_service


# ===========================================================================
# Collections
# ===========================================================================
class TestCollectionSettings:
    def test_create_open_collection(self, db_engine):
        c = collection_service.create_collection(db_engine, name=" essays ", creator_fid=1)
        assert c.name == "essays"
        assert c.access_type == "open"

    def test_duplicate_name(self, db_engine):
        collection_service.create_collection(db_engine, name="essays", creator_fid=1)
        with pytest.raises(ConflictError):
            collection_service.create_collection(db_engine, name="essays", creator_fid=2)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"access_type": "secret"},
            {"display_type": "video"},
            {"order_mode": "random"},
            {"order_direction": "sideways"},
            {"access_type": "gated_user"},
            {"access_type": "gated_rule", "gating_rule": {}},
            {"access_type": "gated_rule", "gating_rule": {"type": "user_fid", "fid": "abc"}},
            {"access_type": "gated_rule", "gating_rule": {"type": "user_fid", "fid": True}},
            {"access_type": "gated_rule", "gating_rule": {"type": "has_role", "role": "wizard"}},
            {"access_type": "gated_rule", "gating_rule": {"type": "display_name_contains_emoji"}},
            {"access_type": "gated_rule", "gating_rule": {"type": "follows", "fid": 3}},
        ],
    )
    def test_invalid_settings(self, db_engine, kwargs):
        with pytest.raises(ValidationError):
            collection_service.create_collection(db_engine, name="x", creator_fid=1, **kwargs)

    def test_gating_fields_only_kept_for_their_type(self, db_engine):
        c = collection_service.create_collection(
            db_engine, name="x", creator_fid=1, gating_rule={"type": "has_role", "role": "curator"}
        )
        assert c.gating_rule is None


class TestCollectionUpdates:
    def test_update_merges_and_revalidates(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        c = collection_service.update_collection(
            db_engine, "best", {"description": "Top casts", "order_mode": "auto"}
        )
        assert (c.description, c.order_mode, c.access_type) == ("Top casts", "auto", "open")

        with pytest.raises(ValidationError):
            collection_service.update_collection(db_engine, "best", {"access_type": "gated_rule"})
        # A rejected update leaves the stored settings alone
        assert collection_service.get_collection(db_engine, "best").access_type == "open"

    def test_switching_access_clears_stale_gating(self, db_engine):
        collection_service.create_collection(
            db_engine, name="mine", creator_fid=1, access_type="gated_user", gated_user_id=7
        )
        c = collection_service.update_collection(
            db_engine, "mine",
            {"access_type": "gated_rule", "gating_rule": {"type": "user_fid", "fid": 7}},
        )
        assert c.gated_user_id is None
        assert c.gating_rule == {"type": "user_fid", "fid": 7}

        c = collection_service.update_collection(db_engine, "mine", {"access_type": "open"})
        assert (c.gated_user_id, c.gating_rule) == (None, None)

    def test_unknown_fields_rejected(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        with pytest.raises(ValidationError):
            collection_service.update_collection(db_engine, "best", {"creator_fid": 2})

    def test_update_unknown_collection(self, db_engine):
        with pytest.raises(NotFoundError):
            collection_service.update_collection(db_engine, "nope", {"description": "x"})

    def test_delete_removes_entries_keeps_curation(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        collection_service.add_cast(db_engine, "best", "0xa", 5, make_cast("0xa"))

        collection_service.delete_collection(db_engine, "best")

        with Session(db_engine) as s:
            assert s.scalar(select(func.count(CollectionCast.id))) == 0
        assert curation_service.is_curated(db_engine, "0xa")
        with pytest.raises(NotFoundError):
            collection_service.get_collection(db_engine, "best")
        with pytest.raises(NotFoundError):
            collection_service.delete_collection(db_engine, "best")

    def test_name_is_reusable_after_delete(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        collection_service.delete_collection(db_engine, "best")
        assert collection_service.create_collection(db_engine, name="best", creator_fid=2).creator_fid == 2


class TestCollectionMembership:
    def test_add_uncurated_cast_curates_it(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        entry = collection_service.add_cast(db_engine, "best", "0xa", 5, make_cast("0xa"))

        assert entry.order == 1
        assert curation_service.get_curators_for_cast(db_engine, "0xa") == [5]

    def test_uncurated_cast_needs_data(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        with pytest.raises(ValidationError):
            collection_service.add_cast(db_engine, "best", "0xa", 5)

    def test_duplicate_entry(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        collection_service.add_cast(db_engine, "best", "0xa", 5, make_cast("0xa"))
        with pytest.raises(ConflictError):
            collection_service.add_cast(db_engine, "best", "0xa", 5)

    def test_gated_user_collection(self, db_engine):
        collection_service.create_collection(
            db_engine, name="mine", creator_fid=1, access_type="gated_user", gated_user_id=7
        )
        user_service.upsert_user(db_engine, 8)
        with pytest.raises(PermissionDenied):
            collection_service.add_cast(db_engine, "mine", "0xa", 8, make_cast("0xa"))

        collection_service.add_cast(db_engine, "mine", "0xa", 7, make_cast("0xa"))

    def test_role_rule_collection(self, db_engine):
        collection_service.create_collection(
            db_engine, name="curators", creator_fid=1, access_type="gated_rule",
            gating_rule={"type": "has_role", "role": "curator"},
        )
        grant(db_engine, 9, "curator")
        user_service.upsert_user(db_engine, 10)

        visible_to_9 = [c.name for c in collection_service.list_accessible_collections(db_engine, 9)]
        visible_to_10 = [c.name for c in collection_service.list_accessible_collections(db_engine, 10)]
        assert visible_to_9 == ["curators"]
        assert visible_to_10 == []
        assert collection_service.list_accessible_collections(db_engine, None) == []

    def test_unknown_collection(self, db_engine):
        with pytest.raises(NotFoundError):
            collection_service.add_cast(db_engine, "nope", "0xa", 5, make_cast("0xa"))

    def test_remove_cast(self, db_engine):
        collection_service.create_collection(db_engine, name="best", creator_fid=1)
        collection_service.add_cast(db_engine, "best", "0xa", 5, make_cast("0xa"))
        collection_service.remove_cast(db_engine, "best", "0xa", 5)
        with pytest.raises(NotFoundError):
            collection_service.remove_cast(db_engine, "best", "0xa", 5)


class TestCollectionOrdering:
    def _fill(self, engine, **settings):
        collection_service.create_collection(engine, name="c", creator_fid=1, **settings)
        for h in ("0x1", "0x2", "0x3"):
            collection_service.add_cast(engine, "c", h, 5, make_cast(h))

    def test_manual_order_and_reorder(self, db_engine):
        self._fill(db_engine)
        collection_service.reorder_casts(db_engine, "c", ["0x3", "0x1", "0x2"])

        first = collection_service.list_collection_casts(db_engine, "c", limit=2)
        assert [i["cast_hash"] for i in first["items"]] == ["0x3", "0x1"]
        rest = collection_service.list_collection_casts(db_engine, "c", cursor=first["next_cursor"])
        assert [i["cast_hash"] for i in rest["items"]] == ["0x2"]
        assert rest["next_cursor"] is None

    def test_reorder_rejects_bad_input(self, db_engine):
        self._fill(db_engine)
        with pytest.raises(ValidationError):
            collection_service.reorder_casts(db_engine, "c", ["0x1", "0x1"])
        with pytest.raises(ValidationError):
            collection_service.reorder_casts(db_engine, "c", ["0x1", "0x9"])

    def test_auto_order_desc(self, db_engine):
        self._fill(db_engine, order_mode="auto", order_direction="desc")
        page = collection_service.list_collection_casts(db_engine, "c")
        assert [i["cast_hash"] for i in page["items"]] == ["0x3", "0x2", "0x1"]

    def test_auto_order_asc_paginates(self, db_engine):
        self._fill(db_engine, order_mode="auto", order_direction="asc")
        first = collection_service.list_collection_casts(db_engine, "c", limit=2)
        assert [i["cast_hash"] for i in first["items"]] == ["0x1", "0x2"]
        rest = collection_service.list_collection_casts(db_engine, "c", cursor=first["next_cursor"])
        assert [i["cast_hash"] for i in rest["items"]] == ["0x3"]


# ===========================================================================
# Packs
# ===========================================================================
class TestPacks:
    def test_create_and_get(self, db_engine):
        pack = pack_service.create_pack(db_engine, 1, "Builders", [10, 11, 10], description="d")
        assert pack["user_fids"] == [10, 11]
        assert pack_service.get_pack(db_engine, pack["id"])["name"] == "Builders"

    def test_create_requires_curators(self, db_engine):
        with pytest.raises(ValidationError):
            pack_service.create_pack(db_engine, 1, "Empty", [])

    def test_private_pack_visibility(self, db_engine):
        pack = pack_service.create_pack(db_engine, 1, "Mine", [10], is_public=False)
        assert pack_service.get_pack(db_engine, pack["id"], viewer_fid=1)
        with pytest.raises(NotFoundError):
            pack_service.get_pack(db_engine, pack["id"], viewer_fid=2)
        assert pack_service.list_packs(db_engine) == []
        assert len(pack_service.list_packs(db_engine, viewer_fid=1)) == 1

    def test_search_and_exclude(self, db_engine):
        pack_service.create_pack(db_engine, 1, "Art people", [10])
        pack_service.create_pack(db_engine, 2, "Builders", [11])
        assert [p["name"] for p in pack_service.list_packs(db_engine, search="art")] == ["Art people"]
        assert [p["name"] for p in pack_service.list_packs(db_engine, exclude_creator_fid=1)] == [
            "Builders"
        ]

    def test_only_creator_edits(self, db_engine):
        pack = pack_service.create_pack(db_engine, 1, "Builders", [10])
        with pytest.raises(PermissionDenied):
            pack_service.update_pack(db_engine, pack["id"], 2, name="Hijacked")
        with pytest.raises(PermissionDenied):
            pack_service.delete_pack(db_engine, pack["id"], 2)

        updated = pack_service.update_pack(db_engine, pack["id"], 1, name="Makers", user_fids=[11, 12])
        assert updated["name"] == "Makers"
        assert sorted(updated["user_fids"]) == [11, 12]

    def test_subscribe_is_idempotent_and_counts(self, db_engine):
        pack = pack_service.create_pack(db_engine, 1, "Builders", [10])
        assert pack_service.subscribe(db_engine, 5, pack["id"])
        assert not pack_service.subscribe(db_engine, 5, pack["id"])
        pack_service.subscribe(db_engine, 6, pack["id"])

        assert pack_service.get_pack(db_engine, pack["id"])["usage_count"] == 2
        assert pack_service.list_subscriptions(db_engine, 5) == [pack["id"]]
        assert pack_service.unsubscribe(db_engine, 5, pack["id"])
        assert not pack_service.unsubscribe(db_engine, 5, pack["id"])

    def test_favorites_and_popular(self, db_engine):
        a = pack_service.create_pack(db_engine, 1, "A", [10])
        b = pack_service.create_pack(db_engine, 1, "B", [10])
        pack_service.subscribe(db_engine, 5, b["id"])

        assert [p["name"] for p in pack_service.popular_packs(db_engine)] == ["B", "A"]

        assert pack_service.favorite(db_engine, 5, a["id"])
        assert not pack_service.favorite(db_engine, 5, a["id"])
        assert [p["id"] for p in pack_service.list_favorites(db_engine, 5)] == [a["id"]]
        assert pack_service.unfavorite(db_engine, 5, a["id"])
        assert pack_service.list_favorites(db_engine, 5) == []

    def test_delete_removes_subscriptions(self, db_engine):
        pack = pack_service.create_pack(db_engine, 1, "Builders", [10])
        pack_service.subscribe(db_engine, 5, pack["id"])
        pack_service.delete_pack(db_engine, pack["id"], 1)

        assert pack_service.list_subscriptions(db_engine, 5) == []
        with pytest.raises(NotFoundError):
            pack_service.get_pack(db_engine, pack["id"])
