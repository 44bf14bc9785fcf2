"""Tests for the keyword routing table."""

import json

import pytest

from codeorbit.routing import DEFAULT_ROUTES, RoutingRule, load_routes, match_routes


class TestDefaultRoutes:
    def test_table_order(self):
        assert [r.agent_id for r in DEFAULT_ROUTES] == [
            "frontend",
            "backend",
            "database",
            "devops",
            "docs",
        ]

    @pytest.mark.parametrize(
        "prompt,expected",
        [
            ("Create login page", ["frontend"]),
            ("Add a REST endpoint to the server", ["backend"]),
            ("migrate the DB schema", ["database"]),
            ("set up CI and Docker", ["devops"]),
            ("update the README", ["docs"]),
            ("React components talking to the API", ["frontend", "backend"]),
        ],
    )
    def test_matches(self, prompt, expected):
        assert match_routes(prompt, DEFAULT_ROUTES) == expected

    def test_keywords_need_word_boundaries(self):
        """Substrings such as 'ci' in 'decide' or 'ui' in 'build' do not route."""
        assert match_routes("decide how to build it", DEFAULT_ROUTES) == []


class TestRoutingRule:
    def test_case_insensitive(self):
        rule = RoutingRule(agent_id="x", pattern=r"\bhello\b")
        assert rule.matches("HeLLo there")

    def test_invalid_pattern_rejected_at_construction(self):
        with pytest.raises(Exception):
            RoutingRule(agent_id="x", pattern="(unclosed")

    @pytest.mark.parametrize("agent_id", ["", 5, None])
    def test_agent_id_must_be_non_empty_string(self, agent_id):
        with pytest.raises(ValueError, match="agent_id"):
            RoutingRule(agent_id=agent_id, pattern=r"\bx\b")

    def test_pattern_must_be_string(self):
        with pytest.raises(ValueError, match="pattern"):
            RoutingRule(agent_id="x", pattern=42)


class TestLoadRoutes:
    def test_load_valid_file(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([
            {"agent": "search", "pattern": r"\bfind\b", "description": "Search"},
            {"agent": "docs", "pattern": r"\bdocs?\b"},
        ]))

        routes = load_routes(path)

        assert [r.agent_id for r in routes] == ["search", "docs"]
        assert routes[0].description == "Search"
        assert match_routes("find the docs", routes) == ["search", "docs"]

    def test_rejects_non_list(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps({"agent": "x"}))
        with pytest.raises(ValueError):
            load_routes(path)

    def test_rejects_missing_keys(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([{"agent": "x"}]))
        with pytest.raises(ValueError, match="pattern"):
            load_routes(path)

    def test_rejects_bad_regex(self, tmp_path):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([{"agent": "x", "pattern": "[oops"}]))
        with pytest.raises(ValueError, match="invalid pattern"):
            load_routes(path)

    @pytest.mark.parametrize("agent", [5, "", ["docs"]])
    def test_rejects_bad_agent_id(self, tmp_path, agent):
        path = tmp_path / "routes.json"
        path.write_text(json.dumps([{"agent": agent, "pattern": r"\bdocs\b"}]))
        with pytest.raises(ValueError, match="route #0 is invalid"):
            load_routes(path)
