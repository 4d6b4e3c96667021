"""Tests for settings.py — defaults, environment overrides and validation."""
from __future__ import annotations

import os
from pathlib import Path

import pytest

from sparse_retrieval.embeddings import EmbedderKind
from sparse_retrieval.errors import ConfigurationError
from sparse_retrieval.reranking import RerankMode
from sparse_retrieval.settings import Paths, Settings, load_settings, parse_strategies

_VARS = (
    "RETRIEVAL_DATA_DIR",
    "RETRIEVAL_EMBEDDER",
    "RETRIEVAL_TF_MIN_FREQ",
    "RETRIEVAL_NORMALIZE_QUERY",
    "RETRIEVAL_TOP_K",
    "RETRIEVAL_SCORE_THRESHOLD",
    "RETRIEVAL_MAX_TOKENS",
    "RETRIEVAL_OVERLAP",
    "RETRIEVAL_EVAL_EMBEDDERS",
    "RETRIEVAL_LOG_RUNS",
    "RETRIEVAL_CONTEXT_BUDGET",
    "RETRIEVAL_RERANK_MODES",
    "RETRIEVAL_BOOST_TERMS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_load_settings_defaults(self):
        settings = load_settings()
        assert settings.paths.data_dir == "data"
        assert settings.embedder.kind == EmbedderKind("tf")
        assert settings.embedder.normalize_query is True
        assert settings.search.top_k == 5
        assert settings.search.score_threshold == 0.0
        assert settings.chunk.max_tokens == 200
        assert settings.chunk.overlap == 32
        assert [str(kind) for kind in settings.evaluation.embedder_kinds] == ["tf", "bow"]
        assert [s.mode for s in settings.rag.strategies] == [RerankMode.NONE, RerankMode.TERM_OVERLAP, RerankMode.HYBRID]

    def test_prompt_template_has_placeholders(self):
        template = Settings().rag.prompt_template
        assert "{query}" in template
        assert "{context}" in template

    def test_paths_are_rooted_at_data_dir(self):
        paths = Paths(data_dir="/srv/corpus")
        assert paths.state_file == Path("/srv/corpus/state.json")
        assert paths.chunks_file == Path("/srv/corpus/chunks.jsonl")
        assert paths.runs_dir == Path("/srv/corpus/runs")
        assert paths.models_dir == Path("/srv/corpus/models")
        assert paths.artifacts_dir == Path("/srv/corpus/artifacts")

    def test_instances_do_not_share_mutable_defaults(self):
        first, second = Settings(), Settings()
        first.rag.strategies.clear()
        assert len(second.rag.strategies) == 3


class TestEnvironmentOverrides:
    def test_scalar_overrides(self, monkeypatch):
        monkeypatch.setenv("RETRIEVAL_DATA_DIR", "/tmp/corpus")
        monkeypatch.setenv("RETRIEVAL_TOP_K", "9")
        monkeypatch.setenv("RETRIEVAL_SCORE_THRESHOLD", "0.25")
        monkeypatch.setenv("RETRIEVAL_MAX_TOKENS", "64")
        monkeypatch.setenv("RETRIEVAL_OVERLAP", "8")
        monkeypatch.setenv("RETRIEVAL_TF_MIN_FREQ", "2")
        monkeypatch.setenv("RETRIEVAL_NORMALIZE_QUERY", "false")
        monkeypatch.setenv("RETRIEVAL_CONTEXT_BUDGET", "256")
        monkeypatch.setenv("RETRIEVAL_LOG_RUNS", "no")
        settings = load_settings()
        assert settings.paths.data_dir == "/tmp/corpus"
        assert settings.search.top_k == 9
        assert settings.search.score_threshold == 0.25
        assert (settings.chunk.max_tokens, settings.chunk.overlap) == (64, 8)
        assert settings.embedder.tf_min_freq == 2
        assert settings.embedder.normalize_query is False
        assert settings.rag.context_budget == 256
        assert settings.evaluation.log_runs is False

    def test_embedder_selection(self, monkeypatch):
        monkeypatch.setenv("RETRIEVAL_EMBEDDER", "custom:policy@v2")
        monkeypatch.setenv("RETRIEVAL_EVAL_EMBEDDERS", "tf, custom:policy")
        settings = load_settings()
        assert str(settings.embedder.kind) == "custom:policy@v2"
        assert [str(kind) for kind in settings.evaluation.embedder_kinds] == ["tf", "custom:policy"]

    def test_rerank_modes_and_boost_terms(self, monkeypatch):
        monkeypatch.setenv("RETRIEVAL_RERANK_MODES", "plain=none,boosted=term_overlap")
        monkeypatch.setenv("RETRIEVAL_BOOST_TERMS", "vpn,mfa")
        strategies = load_settings().rag.strategies
        assert [(s.name, s.mode) for s in strategies] == [
            ("plain", RerankMode.NONE),
            ("boosted", RerankMode.TERM_OVERLAP),
        ]
        assert strategies[1].boost_terms == ["vpn", "mfa"]

    def test_boost_terms_alone_apply_to_default_strategies(self, monkeypatch):
        monkeypatch.setenv("RETRIEVAL_BOOST_TERMS", "vpn")
        assert all(s.boost_terms == ["vpn"] for s in load_settings().rag.strategies)

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("RETRIEVAL_TOP_K=11\n", encoding="utf-8")
        try:
            assert load_settings(str(env_file)).search.top_k == 11
        finally:
            os.environ.pop("RETRIEVAL_TOP_K", None)


class TestValidation:
    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("RETRIEVAL_TOP_K", "five"),
            ("RETRIEVAL_SCORE_THRESHOLD", "high"),
            ("RETRIEVAL_NORMALIZE_QUERY", "maybe"),
            ("RETRIEVAL_EMBEDDER", "dense"),
            ("RETRIEVAL_RERANK_MODES", "x=unknown"),
        ],
    )
    def test_malformed_values_raise(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)
        with pytest.raises(ConfigurationError):
            load_settings()


class TestParseStrategies:
    def test_bare_mode_names_itself(self):
        (strategy,) = parse_strategies(["hybrid"])
        assert (strategy.name, strategy.mode) == ("hybrid", RerankMode.HYBRID)

    def test_boost_terms_are_copied(self):
        terms = ["vpn"]
        strategies = parse_strategies(["a=none", "b=hybrid"], terms)
        terms.append("late")
        assert all(s.boost_terms == ["vpn"] for s in strategies)
