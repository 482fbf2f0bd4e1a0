# tests/config/test_config_loader.py
import json

import pytest
from pydantic import ValidationError

from promptcomposer.config.loader import get_config, load_config, reset_config_cache, save_config
from promptcomposer.config.paths import get_user_config_file
from promptcomposer.config.schema import AppConfig

def test_defaults_without_config_file():
    config = load_config()
    assert config == AppConfig()
    assert config.model == "gpt-4o"
    assert config.template_subdirectories == ["template", ""]
    assert not get_user_config_file().exists()

def test_get_config_is_cached():
    assert get_config() is get_config()

def test_save_and_reload():
    save_config(AppConfig(model="gpt-4", max_tokens=32000, project_folders=["/abs/proj"]))
    reset_config_cache()
    config = load_config()
    assert config.model == "gpt-4"
    assert config.max_tokens == 32000
    assert config.project_folders == ["/abs/proj"]
    leftovers = [p.name for p in get_user_config_file().parent.iterdir() if p.name.startswith(".config.json_tmp")]
    assert leftovers == []

def test_corrupted_file_is_backed_up():
    config_path = get_user_config_file()
    config_path.write_text("{ not json", encoding="utf-8")
    assert load_config() == AppConfig()
    assert not config_path.exists()
    assert config_path.with_suffix(".json.corrupted").read_text(encoding="utf-8") == "{ not json"

def test_invalid_values_fall_back_to_defaults():
    get_user_config_file().write_text(json.dumps({"max_flatten_depth": 0}), encoding="utf-8")
    assert load_config().max_flatten_depth == 10

def test_non_object_root_falls_back_to_defaults():
    get_user_config_file().write_text("[1, 2]", encoding="utf-8")
    assert load_config() == AppConfig()

def test_model_environment_override(monkeypatch):
    get_user_config_file().write_text(json.dumps({"model": "gpt-4"}), encoding="utf-8")
    monkeypatch.setenv("PROMPTCOMPOSER_MODEL", "gpt-4o-mini")
    assert load_config().model == "gpt-4o-mini"

def test_extensions_are_dotted():
    assert AppConfig(template_extensions=["txt", ".md"]).template_extensions == [".txt", ".md"]

@pytest.mark.parametrize("field", ["max_flatten_depth", "max_flatten_expansions", "max_tokens"])
def test_limits_must_be_positive(field):
    with pytest.raises(ValidationError):
        AppConfig(**{field: 0})
