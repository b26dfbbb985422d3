"""Tests for the cache reset script."""

import importlib.util
from pathlib import Path

import pytest

from illustra.api.schemas import Session
from illustra.core.persistence import LocalCache

_SCRIPT = Path(__file__).parents[2] / "scripts" / "reset_cache.py"


@pytest.fixture
def reset_script():
    spec = importlib.util.spec_from_file_location("reset_cache", _SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def cache_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'cache.sqlite'}"
    monkeypatch.setenv("CACHE_DATABASE_URL", url)
    return url


def test_force_clears_without_prompt(reset_script, cache_url):
    cache = LocalCache(cache_url)
    cache.write_sessions([Session(id="s1", title="x")])
    cache.write_token("tok")

    assert reset_script.reset_cache(force=True, keep_auth=True) == 1
    assert cache.keys() == ["auth_token"]


def test_declined_prompt_keeps_data(reset_script, cache_url, monkeypatch):
    cache = LocalCache(cache_url)
    cache.write_last_selected("s1")
    monkeypatch.setattr("builtins.input", lambda _: "n")

    assert reset_script.reset_cache(force=False, keep_auth=False) == 0
    assert cache.read_last_selected() == "s1"


def test_unavailable_cache_removes_nothing(reset_script, monkeypatch, capsys):
    monkeypatch.setenv("CACHE_DATABASE_URL", "notadriver://nowhere")
    monkeypatch.setattr("sys.argv", ["reset_cache.py", "--force"])

    reset_script.main()

    assert "Could not open the cache database" in capsys.readouterr().out
