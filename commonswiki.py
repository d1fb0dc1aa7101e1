import os
import configparser
from dataclasses import dataclass, fields

import mwclient
from dotenv import load_dotenv

TOOL_NAME = "CommonsExport"
VERSION = "1.0"
USER_AGENT = f"{TOOL_NAME}/{VERSION}"

CONFIG_FILE = "commons-export.ini"
CONFIG_SECTION = "mediawiki"

SUPPORTED_EXTENSIONS = ("jpg", "png", "tif", "webp")

NAME_PATTERN_DEFAULT = "$TITLE ($FILE_NAME) $DESCRIPTION"
AUTHOR_PATTERN_DEFAULT = "[[User:$USERNAME|$CREATOR]]"
DESC_TEMPLATES_DEFAULT = "Description,Depicted person,en,de,fr,es,ja,ru,zh,it,pt,ar"
LANGUAGE_DEFAULT = "en"
COMMENT_DEFAULT = f"Uploaded with {TOOL_NAME} {VERSION}"


class ExportError(Exception):
    """Base class for everything that keeps an image from reaching the wiki."""

    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


class EligibilityError(ExportError):
    pass


class AuthenticationError(ExportError):
    pass


class UploadConflictError(ExportError):
    pass


class TransportError(ExportError):
    pass


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes", "on")


@dataclass
class ExportConfig:
    """
    Every user preference the export reads, loaded once per run.

    The INI keys are the preference names (see INI_KEYS); only username,
    password, the two toggles and the host may also come from the environment.
    """
    username: str = ""
    password: str = ""
    overwrite: bool = False
    cat_cam: bool = False
    desc_templates: str = DESC_TEMPLATES_DEFAULT
    name_pattern: str = NAME_PATTERN_DEFAULT
    author_pattern: str = AUTHOR_PATTERN_DEFAULT
    title_in_desc: bool = True
    language: str = LANGUAGE_DEFAULT
    comment: str = COMMENT_DEFAULT
    host: str = "commons.wikimedia.org"

    INI_KEYS = {
        "name_pattern": "namepattern",
        "author_pattern": "authorpattern",
        "title_in_desc": "titleindesc",
    }
    ENV_VARS = {
        "username": "WIKI_USERNAME",
        "password": "WIKI_PASSWORD",
        "overwrite": "WIKI_OVERWRITE",
        "cat_cam": "WIKI_CAT_CAM",
        "host": "WIKI_HOST",
    }

    @classmethod
    def load(cls, path=CONFIG_FILE):
        # 1. Optional .env for local development
        load_dotenv()

        # 2. Config file
        conf = configparser.ConfigParser(interpolation=None)
        conf.read(path, encoding="utf-8")

        values = {}
        for field in fields(cls):
            key = cls.INI_KEYS.get(field.name, field.name)
            raw = None
            if conf.has_section(CONFIG_SECTION):
                raw = conf.get(CONFIG_SECTION, key, fallback=None)

            # 3. Environment overrides the file
            env_name = cls.ENV_VARS.get(field.name)
            if env_name and os.environ.get(env_name):
                raw = os.environ[env_name]

            if raw is None:
                continue
            if field.type is bool:
                values[field.name] = _as_bool(raw)
            else:
                values[field.name] = raw

        return cls(**values)

    def save(self, path=CONFIG_FILE):
        """Write the naming pattern back, leaving every other key untouched."""
        conf = configparser.ConfigParser(interpolation=None)
        conf.read(path, encoding="utf-8")
        if not conf.has_section(CONFIG_SECTION):
            conf.add_section(CONFIG_SECTION)
        conf.set(CONFIG_SECTION, self.INI_KEYS["name_pattern"], self.name_pattern)
        with open(path, "w", encoding="utf-8") as ini:
            conf.write(ini)

    def reset_name_pattern(self):
        self.name_pattern = NAME_PATTERN_DEFAULT

    def reset_language(self):
        self.language = LANGUAGE_DEFAULT

    def reset_comment(self):
        self.comment = COMMENT_DEFAULT

    def desc_template_prefixes(self):
        return [prefix.strip() for prefix in self.desc_templates.split(",") if prefix.strip()]


class CommonsWiki:
    @staticmethod
    def connect(host="commons.wikimedia.org"):
        # mwclient must not retry on its own, failures go straight to the batch
        return mwclient.Site(
            host,
            path="/w/",
            scheme="https",
            clients_useragent=USER_AGENT,
            max_retries=0,
        )

    @staticmethod
    def login(username, password, host="commons.wikimedia.org"):
        if not username or not password:
            raise AuthenticationError("Wiki credentials missing.")

        site = CommonsWiki.connect(host)
        site.login(username, password)
        return site
