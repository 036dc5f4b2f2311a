"""
tests/test_users_tags.py — Roles, Preferences & Cast Tags
==========================================================
"""

from __future__ import annotations

import pytest

from depthcaster.errors import ConflictError, NotFoundError, ValidationError
from depthcaster.services import tag_service, user_service


class TestRoles:
    def test_grant_and_revoke(self, db_engine):
        assert user_service.grant_role(db_engine, 5, "curator")
        assert not user_service.grant_role(db_engine, 5, "curator")
        assert user_service.get_user_roles(db_engine, 5) == {"curator"}

        user_service.revoke_role(db_engine, 5, "curator")
        assert user_service.get_user_roles(db_engine, 5) == set()
        with pytest.raises(NotFoundError):
            user_service.revoke_role(db_engine, 5, "curator")

    def test_unknown_role(self, db_engine):
        with pytest.raises(ValidationError):
            user_service.grant_role(db_engine, 5, "wizard")

    def test_role_predicates(self):
        assert user_service.is_admin({"superadmin"})
        assert user_service.is_superadmin({"superadmin"})
        assert not user_service.is_superadmin({"admin"})
        assert user_service.is_curator({"curator"})

    def test_list_role_holders(self, db_engine):
        user_service.upsert_user(db_engine, 5, username="eve")
        user_service.grant_role(db_engine, 5, "admin")
        user_service.grant_role(db_engine, 6, "curator")

        assert user_service.list_role_holders(db_engine, "admin") == [
            {"fid": 5, "role": "admin", "username": "eve"}
        ]
        assert len(user_service.list_role_holders(db_engine)) == 2


class TestPreferences:
    def test_defaults(self, db_engine):
        prefs = user_service.get_preferences(db_engine, 42)
        assert prefs["notifyOnQualityReply"] is True
        assert prefs["qualityReplyThreshold"] == 60
        assert prefs["notifyOnCurated"] is False
        assert prefs["notificationFrequency"] == "all"

    def test_partial_update_merges(self, db_engine):
        user_service.update_preferences(db_engine, 42, {"notifyOnLiked": True})
        prefs = user_service.update_preferences(db_engine, 42, {"notificationFrequency": "weekly"})
        assert prefs["notifyOnLiked"] is True
        assert prefs["notificationFrequency"] == "weekly"
        assert user_service.get_preferences(db_engine, 42) == prefs

    @pytest.mark.parametrize(
        "updates",
        [
            {"notificationFrequency": "hourly"},
            {"qualityReplyThreshold": 101},
            {"qualityReplyThreshold": "70"},
            {"notifyOnLiked": "yes"},
            {"unknown": True},
        ],
    )
    def test_invalid_updates(self, db_engine, updates):
        with pytest.raises(ValidationError):
            user_service.update_preferences(db_engine, 42, updates)
        assert user_service.get_preferences(db_engine, 42) == user_service.merge_preferences(None)

    def test_merge_ignores_invalid_stored_values(self):
        merged = user_service.merge_preferences(
            {"qualityReplyThreshold": "70", "notifyOnLiked": True, "notificationFrequency": None,
             "legacy": 1}
        )
        assert merged["qualityReplyThreshold"] == 60
        assert merged["notifyOnLiked"] is True
        assert merged["notificationFrequency"] == "all"
        assert "legacy" not in merged
        assert user_service.merge_preferences(["junk"]) == user_service.merge_preferences(None)

    def test_upsert_keeps_existing_profile(self, db_engine):
        user_service.upsert_user(db_engine, 7, username="dan", pfp_url="https://p.test/a.png")
        user = user_service.upsert_user(db_engine, 7, display_name="Dan")
        assert (user.username, user.display_name) == ("dan", "Dan")


class TestTags:
    def test_add_normalizes(self, db_engine):
        row = tag_service.add_tag(db_engine, "0xa", "  Essay ", 1)
        assert row["tag"] == "essay"
        assert tag_service.tags_for_cast(db_engine, "0xa") == ["essay"]

    def test_duplicate_tag(self, db_engine):
        tag_service.add_tag(db_engine, "0xa", "essay", 1)
        with pytest.raises(ConflictError):
            tag_service.add_tag(db_engine, "0xa", "ESSAY", 2)

    def test_invalid_tag(self, db_engine):
        with pytest.raises(ValidationError):
            tag_service.add_tag(db_engine, "0xa", "   ", 1)
        with pytest.raises(ValidationError):
            tag_service.add_tag(db_engine, "0xa", "x" * 51, 1)

    def test_counts_and_lookup(self, db_engine):
        tag_service.add_tag(db_engine, "0xa", "essay", 1)
        tag_service.add_tag(db_engine, "0xb", "essay", 1)
        tag_service.add_tag(db_engine, "0xb", "art", 1)

        assert tag_service.list_tags(db_engine) == [
            {"tag": "essay", "count": 2}, {"tag": "art", "count": 1},
        ]
        assert sorted(tag_service.casts_for_tag(db_engine, "Essay")) == ["0xa", "0xb"]

    def test_remove(self, db_engine):
        tag_service.add_tag(db_engine, "0xa", "essay", 1)
        tag_service.remove_tag(db_engine, "0xa", "essay")
        with pytest.raises(NotFoundError):
            tag_service.remove_tag(db_engine, "0xa", "essay")
