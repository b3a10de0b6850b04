"""
Tests for recommendation reason text: the rule-based default and the
chat-completion call with its fallbacks.
"""

import os
import sys
from unittest.mock import Mock, patch

import pytest
import requests

sys.path.insert(0, os.path.dirname(__file__))

from models import Movie, RecommendationCandidate
from reasons import (
    ReasonGenerator, build_prompt, default_reason, extract_completion_text, format_rating,
)
from settings import Settings


def make_movie(rating=None, genres=None, title="Heat", movie_id=1):
    return Movie(id=movie_id, tmdb_id=949, title=title, genres=list(genres or []), vote_average=rating)


def completion(text, status=200):
    resp = Mock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.json.return_value = {"choices": [{"message": {"role": "assistant", "content": text}}]}
    return resp


@pytest.fixture
def generator():
    return ReasonGenerator(Settings(textgen_credential="test-key", textgen_timeout=2.5))


@pytest.fixture
def liked():
    return [make_movie(8.0, ["Crime"], "The Godfather", 10),
            make_movie(7.9, ["Crime"], "Goodfellas", 11),
            make_movie(8.1, ["Crime"], "Casino", 12),
            make_movie(7.5, ["Drama"], "Scarface", 13)]


# ==================== Default reason ====================

class TestDefaultReason:

    def test_highly_rated_at_eight(self):
        movie = make_movie(8.0, ["Drama", "Crime"])
        assert default_reason(movie) == "Highly rated Drama & Crime with 8★ rating"

    def test_highly_rated_keeps_decimal(self):
        movie = make_movie(8.7, ["Drama", "Crime", "Thriller"])
        assert default_reason(movie) == "Highly rated Drama & Crime with 8.7★ rating"

    def test_popular_at_seven(self):
        assert default_reason(make_movie(7.0, ["Comedy"])) == "Popular Comedy with great reviews"

    def test_just_below_eight_is_popular(self):
        movie = make_movie(7.9, ["Action", "Adventure"])
        assert default_reason(movie) == "Popular Action & Adventure with great reviews"

    def test_trending_below_seven(self):
        assert default_reason(make_movie(6.9, ["Comedy"])) == "Trending Comedy you might enjoy"

    def test_no_genres_low_rating(self):
        assert default_reason(make_movie(5.0, [])) == "Popular choice among viewers"

    def test_null_rating_with_genres(self):
        assert default_reason(make_movie(None, ["Horror"])) == "Trending Horror you might enjoy"

    def test_null_rating_no_genres(self):
        assert default_reason(make_movie(None, None)) == "Popular choice among viewers"

    def test_format_rating(self):
        assert format_rating(9.0) == "9"
        assert format_rating(7.5) == "7.5"


# ==================== Prompt and payload parsing ====================

class TestPrompt:

    def test_prompt_uses_three_titles(self, liked):
        prompt = build_prompt(make_movie(7.8, ["Crime", "Drama"], "Heat"), liked)
        assert "The Godfather, Goodfellas, Casino" in prompt
        assert "Scarface" not in prompt
        assert "'Heat' (Crime, Drama)" in prompt
        assert "Because you liked..." in prompt

    def test_extract_text_strips(self):
        assert extract_completion_text({"choices": [{"message": {"content": "  Hi  "}}]}) == "Hi"

    @pytest.mark.parametrize("payload", [
        {},
        {"choices": []},
        {"choices": [{}]},
        {"choices": [{"message": {"content": None}}]},
        None,
    ])
    def test_extract_text_malformed(self, payload):
        assert extract_completion_text(payload) == ""


# ==================== Generator ====================

class TestReasonGenerator:

    def test_guest_gets_default_without_call(self, generator, liked):
        movie = make_movie(8.0, ["Drama", "Crime"])
        with patch("reasons.requests.post") as post:
            assert generator.reason_for(movie, None, liked) == default_reason(movie)
        post.assert_not_called()

    def test_missing_credential_gets_default(self, liked):
        movie = make_movie(6.0, ["Comedy"])
        with patch("reasons.requests.post") as post:
            reason = ReasonGenerator(Settings()).reason_for(movie, "alice", liked)
        assert reason == "Trending Comedy you might enjoy"
        post.assert_not_called()

    def test_no_liked_history_gets_default(self, generator):
        movie = make_movie(6.0, ["Comedy"])
        with patch("reasons.requests.post") as post:
            assert generator.reason_for(movie, "alice", []) == "Trending Comedy you might enjoy"
        post.assert_not_called()

    def test_uses_provider_text(self, generator, liked):
        movie = make_movie(7.8, ["Crime"], "Heat")
        text = "  Since you enjoyed The Godfather, this tense crime epic fits perfectly.  "
        with patch("reasons.requests.post", return_value=completion(text)) as post:
            reason = generator.reason_for(movie, "alice", liked)
        assert reason == text.strip()
        args, kwargs = post.call_args
        assert args[0] == Settings().textgen_url
        assert kwargs["timeout"] == 2.5
        assert kwargs["headers"]["Authorization"] == "Bearer test-key"
        assert kwargs["json"]["model"] == "llama3-8b-8192"
        assert kwargs["json"]["max_tokens"] == 50
        assert kwargs["json"]["messages"][0]["role"] == "user"

    def test_error_status_falls_back(self, generator, liked):
        movie = make_movie(8.0, ["Drama", "Crime"])
        with patch("reasons.requests.post", return_value=completion("ignored", status=500)):
            assert generator.reason_for(movie, "alice", liked) == "Highly rated Drama & Crime with 8★ rating"

    def test_timeout_falls_back(self, generator, liked):
        movie = make_movie(7.2, ["Comedy"])
        with patch("reasons.requests.post", side_effect=requests.exceptions.Timeout("slow")):
            assert generator.reason_for(movie, "alice", liked) == "Popular Comedy with great reviews"

    def test_connection_error_falls_back(self, generator, liked):
        movie = make_movie(5.0, [])
        with patch("reasons.requests.post", side_effect=requests.exceptions.ConnectionError("down")):
            assert generator.reason_for(movie, "alice", liked) == "Popular choice among viewers"

    def test_blank_text_falls_back(self, generator, liked):
        movie = make_movie(6.0, ["Comedy"])
        with patch("reasons.requests.post", return_value=completion("   ")):
            assert generator.reason_for(movie, "alice", liked) == "Trending Comedy you might enjoy"

    def test_invalid_json_falls_back(self, generator, liked):
        movie = make_movie(6.0, ["Comedy"])
        resp = completion("unused")
        resp.json.side_effect = ValueError("not json")
        with patch("reasons.requests.post", return_value=resp):
            assert generator.reason_for(movie, "alice", liked) == "Trending Comedy you might enjoy"

    def test_annotate_degrades_per_candidate(self, generator, liked):
        first = make_movie(8.0, ["Drama"], "First", 1)
        second = make_movie(6.0, ["Comedy"], "Second", 2)
        candidates = [RecommendationCandidate(first, 8.5), RecommendationCandidate(second, 6.0)]
        responses = [completion("Because you liked Casino, try this."), requests.exceptions.Timeout("slow")]
        with patch("reasons.requests.post", side_effect=responses):
            annotated = generator.annotate(candidates, "alice", liked)
        assert [c.reason for c in annotated] == [
            "Because you liked Casino, try this.",
            "Trending Comedy you might enjoy",
        ]
        assert [c.score for c in annotated] == [8.5, 6.0]
        assert candidates[0].reason == ""
