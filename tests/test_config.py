import json

import pytest

from config import ConfigError, ViewerConfig, load_config, read_config_file, read_environment
from crt import DisplayModes, MonoMode


def write_config(tmp_path, data):
    path = tmp_path / ".mdglide.json"
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


def test_defaults(tmp_path):
    config = load_config(config_path=tmp_path / "missing.json", environ={})
    assert config == ViewerConfig()
    assert config.style == "auto"
    assert config.wrap == 0


def test_precedence(tmp_path):
    path = write_config(tmp_path, {"style": "light", "wrap": 60, "extractor": "markdown-it"})
    environ = {"MDGLIDE_STYLE": "dracula", "MDGLIDE_WRAP": "72"}

    from_file = load_config(config_path=path, environ={})
    assert (from_file.style, from_file.wrap, from_file.extractor) == ("light", 60, "markdown-it")

    from_env = load_config(config_path=path, environ=environ)
    assert (from_env.style, from_env.wrap) == ("dracula", 72)

    from_cli = load_config({"style": "notty", "wrap": None}, config_path=path, environ=environ)
    assert (from_cli.style, from_cli.wrap) == ("notty", 72)


def test_home_config_file_is_used(tmp_path):
    write_config(tmp_path, {"style": "pink"})
    assert load_config(environ={}).style == "pink"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", ""])
def test_bad_config_file_is_ignored(tmp_path, content):
    path = write_config(tmp_path, content)
    assert read_config_file(path) == {}
    assert load_config(config_path=path, environ={}) == ViewerConfig()


def test_unknown_keys_ignored(tmp_path):
    path = write_config(tmp_path, {"colour": "red", "style": "dark"})
    assert load_config(config_path=path, environ={}).style == "dark"


def test_read_environment_skips_empty_values():
    assert read_environment({"MDGLIDE_STYLE": "", "MDGLIDE_LOG_LEVEL": "debug"}) == {
        "log_level": "debug",
    }


@pytest.mark.parametrize("values", [
    {"wrap": -1},
    {"wrap": "wide"},
    {"extractor": "html"},
    {"log_level": "LOUD"},
])
def test_invalid_values(tmp_path, values):
    with pytest.raises(ConfigError):
        load_config(values, config_path=tmp_path / "missing.json", environ={})


def test_display_settings_from_file_and_environment(tmp_path):
    path = write_config(tmp_path, {"scanlines": True, "mono": "amber", "baudrate": 2400})
    environ = {"MDGLIDE_BBS": "yes", "MDGLIDE_CANVAS_80X25": "1", "MDGLIDE_BAUDRATE": "9600"}
    config = load_config(config_path=path, environ=environ)

    modes = config.display_modes()
    assert modes == DisplayModes(
        scanlines=True, mono=MonoMode.AMBER, canvas_80x25=True, bbs=True, baudrate=9600,
    )


@pytest.mark.parametrize("word, expected", [
    ("on", True), ("TRUE", True), ("0", False), (" no ", False), (False, False),
])
def test_boolean_words(tmp_path, word, expected):
    config = load_config({"scanlines": word}, config_path=tmp_path / "missing.json", environ={})
    assert config.scanlines is expected


@pytest.mark.parametrize("values", [
    {"mono": "blue"},
    {"baudrate": -300},
    {"baudrate": "fast"},
    {"bbs": "maybe"},
])
def test_invalid_display_values(tmp_path, values):
    with pytest.raises(ConfigError):
        load_config(values, config_path=tmp_path / "missing.json", environ={})
