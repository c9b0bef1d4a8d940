"""Tests for environment-driven configuration."""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

import pytest

from galactica.core.config import MemoryConfig
from galactica.core.exceptions import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("GALACTICA_"):
            monkeypatch.delenv(key, raising=False)


def test_defaults():
    config = MemoryConfig()

    assert config.duplicate_threshold == 0.92
    assert config.duplicate_window == timedelta(hours=24)
    assert config.decay_halflife_days == 30.0
    assert (config.importance_min, config.importance_max) == (0, 10)
    assert config.index_backend == "linear"


def test_load_reads_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                f"GALACTICA_STORE_PATH={tmp_path / 'store.db'}",
                "GALACTICA_DUPLICATE_THRESHOLD=0.85",
                "GALACTICA_DUPLICATE_WINDOW_HOURS=6",
                "GALACTICA_EMBEDDING_DIMENSION=1024",
                "GALACTICA_INDEX_BACKEND=FAISS",
            ]
        ),
        encoding="utf-8",
    )
    for key in (
        "GALACTICA_STORE_PATH",
        "GALACTICA_DUPLICATE_THRESHOLD",
        "GALACTICA_DUPLICATE_WINDOW_HOURS",
        "GALACTICA_EMBEDDING_DIMENSION",
        "GALACTICA_INDEX_BACKEND",
    ):
        # registers the keys so monkeypatch removes what load_dotenv sets
        monkeypatch.setenv(key, "")

    config = MemoryConfig.load(env_file)

    assert config.store_path == Path(tmp_path / "store.db")
    assert config.duplicate_threshold == 0.85
    assert config.duplicate_window == timedelta(hours=6)
    assert config.embedding_dimension == 1024
    assert config.index_backend == "faiss"
    assert config.env_path == str(env_file)


def test_invalid_number_falls_back_to_default(tmp_path, monkeypatch):
    monkeypatch.setenv("GALACTICA_DECAY_HALFLIFE_DAYS", "soon")
    monkeypatch.setenv("GALACTICA_MAX_TOP_K", "many")

    config = MemoryConfig.load(tmp_path / "missing.env")

    assert config.decay_halflife_days == 30.0
    assert config.max_top_k == 100


def test_invalid_dimension_is_a_config_error(tmp_path, monkeypatch):
    monkeypatch.setenv("GALACTICA_EMBEDDING_DIMENSION", "wide")

    with pytest.raises(ConfigError):
        MemoryConfig.load(tmp_path / "missing.env")


@pytest.mark.parametrize(
    "overrides",
    [
        {"index_backend": "annoy"},
        {"importance_min": 10, "importance_max": 10},
        {"duplicate_threshold": 1.5},
        {"embedding_dimension": 0},
        {"max_top_k": 0},
        {"embed_timeout": 0},
    ],
)
def test_invalid_values_raise_config_error(overrides):
    with pytest.raises(ConfigError):
        MemoryConfig(**overrides)


def test_inverted_importance_bounds_are_explained():
    with pytest.raises(ConfigError, match=r"importance_min \(7\) must be below importance_max \(3\)"):
        MemoryConfig(importance_min=7, importance_max=3)


def test_as_dict_is_serialisable():
    snapshot = MemoryConfig(store_path=Path("x.db")).as_dict()

    assert snapshot["store_path"] == "x.db"
    assert "env_path" not in snapshot
