"""Tests for configuration loading and the login helper."""
import configparser

import pytest

from commonswiki import (
    AuthenticationError, CommonsWiki, ExportConfig, COMMENT_DEFAULT,
    NAME_PATTERN_DEFAULT, TOOL_NAME, VERSION,
)

ENV_VARS = ("WIKI_USERNAME", "WIKI_PASSWORD", "WIKI_OVERWRITE", "WIKI_CAT_CAM", "WIKI_HOST")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def write_ini(path, **values):
    conf = configparser.ConfigParser(interpolation=None)
    conf["mediawiki"] = values
    with open(path, "w", encoding="utf-8") as ini:
        conf.write(ini)


def test_defaults(tmp_path):
    config = ExportConfig.load(str(tmp_path / "missing.ini"))
    assert config == ExportConfig()
    assert config.name_pattern == NAME_PATTERN_DEFAULT
    assert config.comment == f"Uploaded with {TOOL_NAME} {VERSION}"
    assert config.title_in_desc is True
    assert config.overwrite is False


def test_load_from_file(tmp_path):
    path = tmp_path / "commons-export.ini"
    write_ini(
        path,
        username="Photographer",
        password="secret",
        overwrite="true",
        cat_cam="yes",
        namepattern="$TITLE - $FILE_NAME",
        authorpattern="$CREATOR",
        titleindesc="false",
        language="de",
    )

    config = ExportConfig.load(str(path))

    assert config.username == "Photographer"
    assert config.password == "secret"
    assert config.overwrite is True
    assert config.cat_cam is True
    assert config.name_pattern == "$TITLE - $FILE_NAME"
    assert config.author_pattern == "$CREATOR"
    assert config.title_in_desc is False
    assert config.language == "de"


def test_environment_wins(tmp_path, monkeypatch):
    path = tmp_path / "commons-export.ini"
    write_ini(path, username="FromFile", password="file-secret")
    monkeypatch.setenv("WIKI_USERNAME", "FromEnv")
    monkeypatch.setenv("WIKI_OVERWRITE", "1")

    config = ExportConfig.load(str(path))

    assert config.username == "FromEnv"
    assert config.password == "file-secret"
    assert config.overwrite is True


def test_save_writes_name_pattern_only(tmp_path):
    path = tmp_path / "commons-export.ini"
    write_ini(path, username="Photographer", namepattern="old")

    config = ExportConfig.load(str(path))
    config.name_pattern = "$DESCRIPTION ($FILE_NAME)"
    config.language = "fr"
    config.save(str(path))

    conf = configparser.ConfigParser(interpolation=None)
    conf.read(path, encoding="utf-8")
    assert conf.get("mediawiki", "namepattern") == "$DESCRIPTION ($FILE_NAME)"
    assert conf.get("mediawiki", "username") == "Photographer"
    assert not conf.has_option("mediawiki", "language")


def test_save_creates_file(tmp_path):
    path = tmp_path / "new.ini"
    ExportConfig(name_pattern="$TITLE").save(str(path))
    assert ExportConfig.load(str(path)).name_pattern == "$TITLE"


def test_resets():
    config = ExportConfig(name_pattern="x", language="de", comment="y")
    config.reset_name_pattern()
    config.reset_language()
    config.reset_comment()
    assert config.name_pattern == NAME_PATTERN_DEFAULT
    assert config.language == "en"
    assert config.comment == COMMENT_DEFAULT


def test_desc_template_prefixes():
    config = ExportConfig(desc_templates="Description, Depicted person,,en ")
    assert config.desc_template_prefixes() == ["Description", "Depicted person", "en"]


def test_login_requires_credentials():
    with pytest.raises(AuthenticationError):
        CommonsWiki.login("", "")
