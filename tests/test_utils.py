from __future__ import annotations

import pytest

from filecat.utils import expand_env, filename_tokens, hash_text, is_hidden, load_yaml_file, parse_env_bool, validate_url


def test_filename_tokens_split_stem_and_extension() -> None:
    assert filename_tokens("Holiday.Movie_2019.MKV") == ["holiday", "movie", "2019", "ext:mkv"]


def test_filename_tokens_without_extension() -> None:
    assert filename_tokens("README") == ["readme"]
    assert filename_tokens(".bashrc") == ["bashrc"]


def test_is_hidden(tmp_path) -> None:
    assert is_hidden(tmp_path / ".cache") is True
    assert is_hidden(tmp_path / "visible") is False


def test_hash_text_is_stable() -> None:
    assert hash_text("abc") == hash_text("abc")
    assert len(hash_text("abc")) == 64


def test_expand_env_walks_nested_values(monkeypatch) -> None:
    monkeypatch.setenv("FILECAT_ROOT", "/data")

    assert expand_env({"paths": ["$FILECAT_ROOT/in"], "port": 8000}) == {"paths": ["/data/in"], "port": 8000}


def test_load_yaml_file_handles_empty_documents(tmp_path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    assert load_yaml_file(path) == {}


class TestParseEnvBool:
    @pytest.mark.parametrize("value", ["true", "TRUE", "1", "yes", "on", " On "])
    def test_parses_truthy_values(self, value: str) -> None:
        assert parse_env_bool(value) is True

    @pytest.mark.parametrize("value", ["false", "0", "no", "OFF"])
    def test_parses_falsy_values(self, value: str) -> None:
        assert parse_env_bool(value) is False

    @pytest.mark.parametrize("value", [None, "", "maybe"])
    def test_unrecognised_values(self, value) -> None:
        assert parse_env_bool(value) is None


class TestValidateUrl:
    def test_accepts_http_and_https(self) -> None:
        assert validate_url("http://localhost:8000/hook") is True
        assert validate_url("https://example.com") is True

    @pytest.mark.parametrize("url", [None, "", "ftp://example.com", "example.com", "http://"])
    def test_rejects_invalid_urls(self, url) -> None:
        assert validate_url(url) is False
