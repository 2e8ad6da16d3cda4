import os

import pytest

from artistgraph.config import CrawlerSettings, load_env_file
from artistgraph.errors import ConfigError

BASE_ENV = {
    "CLIENT_ID": "cid",
    "CLIENT_SECRET": "secret",
    "NEO4J_PASSWORD": "pw",
}


def test_from_env_applies_defaults():
    s = CrawlerSettings.from_env(BASE_ENV)
    assert s.client_id == "cid"
    assert s.neo4j_uri == "bolt://localhost:7687"
    assert s.neo4j_username == "neo4j"
    assert s.neo4j_database is None
    assert s.rounds == 2
    assert s.album_fan_out == 10
    assert s.on_artist_error == "skip"
    assert s.exclude_expanded is False


def test_from_env_reads_aliases_and_tuning():
    env = {
        "SPOTIFY_CLIENT_ID": "cid",
        "SPOTIFY_CLIENT_SECRET": "secret",
        "NEO4J_PASSWORD": "pw",
        "NEO4J_USER": "crawler",
        "NEO4J_URI": "neo4j+s://example.databases.neo4j.io",
        "CRAWL_ROUNDS": "5",
        "CRAWL_ON_ARTIST_ERROR": "ABORT",
        "GRAPH_TIMEOUT": "2.5",
        "CRAWL_EXCLUDE_EXPANDED": "true",
    }
    s = CrawlerSettings.from_env(env)
    assert s.neo4j_username == "crawler"
    assert s.neo4j_uri.startswith("neo4j+s://")
    assert s.rounds == 5
    assert s.on_artist_error == "abort"
    assert s.graph_timeout == 2.5
    assert s.exclude_expanded is True


def test_missing_credentials_are_all_named():
    with pytest.raises(ConfigError) as exc_info:
        CrawlerSettings.from_env({"CLIENT_ID": "cid"})
    msg = str(exc_info.value)
    assert "CLIENT_SECRET" in msg
    assert "NEO4J_PASSWORD" in msg
    assert "CLIENT_ID," not in msg


@pytest.mark.parametrize("key,value", [
    ("CRAWL_ROUNDS", "many"),
    ("CRAWL_ROUNDS", "0"),
    ("CRAWL_ON_ARTIST_ERROR", "retry"),
    ("CATALOG_TIMEOUT", "-1"),
    ("CRAWL_EXCLUDE_EXPANDED", "sometimes"),
])
def test_invalid_values_raise_config_error(key, value):
    with pytest.raises(ConfigError):
        CrawlerSettings.from_env({**BASE_ENV, key: value})


def test_with_overrides_ignores_none():
    s = CrawlerSettings.from_env(BASE_ENV).with_overrides(rounds=7, on_artist_error=None)
    assert s.rounds == 7
    assert s.on_artist_error == "skip"


def test_load_env_file_does_not_override(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nAG_TEST_A = 'one'\nexport AG_TEST_B=two\nnot a pair\n", encoding="utf-8")
    monkeypatch.setenv("AG_TEST_B", "kept")
    monkeypatch.delenv("AG_TEST_A", raising=False)

    load_env_file(str(env_file))

    assert os.environ["AG_TEST_A"] == "one"
    assert os.environ["AG_TEST_B"] == "kept"
    monkeypatch.delenv("AG_TEST_A")
