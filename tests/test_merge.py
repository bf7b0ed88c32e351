"""Tests for the trending merge/dedup engine."""

import json
from datetime import datetime, timezone

import pytest

from services.merge import CommunityPost, dedupe_by_title, growth_from_age, merge_posts

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _post(title, ups=0, comments=0, source="artificial", age_hours=0.0, n=0):
    return CommunityPost(
        title=title,
        source=source,
        upvotes=ups,
        comment_count=comments,
        created_utc=NOW.timestamp() - age_hours * 3600,
        permalink=f"/r/{source}/comments/{n}",
        url=f"https://reddit.com/{n}",
    )


class TestDedupe:
    def test_titles_differing_by_case_and_whitespace_collapse(self):
        posts = [_post("GPT-5 released", n=1), _post("  gpt-5 RELEASED ", source="singularity", n=2)]

        unique = dedupe_by_title(posts)

        assert len(unique) == 1
        assert unique[0].permalink == "/r/artificial/comments/1"

    def test_first_seen_order_preserved(self):
        posts = [_post("b"), _post("a"), _post("B"), _post("c")]

        assert [p.title for p in dedupe_by_title(posts)] == ["b", "a", "c"]


class TestRanking:
    def test_orders_by_upvotes_plus_twice_comments(self):
        first = _post("first", ups=10, comments=5)  # score 20
        second = _post("second", ups=15, comments=0)  # score 15

        merged = merge_posts([second, first], "artificial-intelligence", now=NOW)

        assert [m.keyword for m in merged] == ["first", "second"]
        assert [m.rank for m in merged] == [1, 2]

    def test_equal_scores_keep_arrival_order(self):
        posts = [_post("x", ups=10), _post("y", ups=8, comments=1), _post("z", ups=10)]

        merged = merge_posts(posts, "technology", now=NOW)

        assert [m.keyword for m in merged] == ["x", "y", "z"]

    def test_truncates_to_fifteen(self):
        posts = [_post(f"post {i}", ups=i) for i in range(40)]

        merged = merge_posts(posts, "technology", now=NOW)

        assert len(merged) == 15
        assert merged[0].keyword == "post 39"
        assert merged[-1].rank == 15

    def test_volume_is_upvotes_plus_comments(self):
        merged = merge_posts([_post("v", ups=7, comments=3)], "technology", now=NOW)

        assert merged[0].volume == 10

    def test_long_titles_truncated(self):
        merged = merge_posts([_post("x" * 300)], "technology", now=NOW)

        assert len(merged[0].keyword) == 200


class TestCategories:
    def test_known_source_maps_to_its_category(self):
        merged = merge_posts([_post("gadget", source="gadgets")], "artificial-intelligence", now=NOW)

        assert merged[0].category == "technology"

    def test_unknown_source_falls_back_to_topic(self):
        merged = merge_posts([_post("odd", source="somewhere")], "machine-learning", now=NOW)

        assert merged[0].category == "machine-learning"

    def test_related_topics_records_source_and_permalink(self):
        merged = merge_posts([_post("r", source="MLOps", n=4)], "machine-learning", now=NOW)

        assert json.loads(merged[0].related_topics) == ["MLOps", "/r/MLOps/comments/4"]


class TestGrowth:
    @pytest.mark.parametrize(
        "age_hours, expected",
        [
            (0.5, 100.0),
            (1.0, 95.0),
            (10.0, 50.0),
            (12.34, 38.3),
            (20.0, 0.0),
            (36.0, 0.0),
        ],
    )
    def test_recency_decay(self, age_hours, expected):
        assert growth_from_age(age_hours) == expected

    def test_growth_computed_from_post_age(self):
        merged = merge_posts([_post("aged", age_hours=10)], "technology", now=NOW)

        assert merged[0].growth == 50.0
