# backend/convoflow/services/string_service.py

import logging
import string
from typing import Any, Dict, Optional

from convoflow.config.strings import STRINGS as DEFAULT_STRINGS

logger = logging.getLogger(__name__)


class _SafeValues(dict):
    """Leaves unknown placeholders untouched instead of raising KeyError."""

    def __missing__(self, key):
        return "{" + key + "}"


class StringService:
    """
    Resolves user-facing text by key and language, falling back to the
    default language and finally to the key itself.
    """

    def __init__(self, strings: Optional[Dict[str, Dict[str, str]]] = None, default_language: str = "fr"):
        self._strings: Dict[str, Dict[str, str]] = {
            lang: dict(table) for lang, table in (strings or DEFAULT_STRINGS).items()
        }
        self.default_language = default_language
        logger.info(f"StringService initialized with languages: {sorted(self._strings)}")

    @property
    def languages(self):
        return list(self._strings)

    def has(self, key: str, language: Optional[str] = None) -> bool:
        return key in self._strings.get(language or self.default_language, {})

    def get_string(self, key: str, language: Optional[str] = None, default: Optional[str] = None) -> str:
        """Gets a string for a language, falling back to the default language, then `default`, then the key."""
        table = self._strings.get(language or self.default_language, {})
        if key in table:
            return table[key]
        fallback = self._strings.get(self.default_language, {})
        if key in fallback:
            return fallback[key]
        return default if default is not None else key

    def render(self, key: str, language: Optional[str] = None, values: Optional[Dict[str, Any]] = None, **params) -> str:
        """Looks up a string and fills its {placeholders}."""
        return self.format(self.get_string(key, language), {**(values or {}), **params})

    def format(self, template: str, values: Dict[str, Any]) -> str:
        try:
            return string.Formatter().vformat(template, (), _SafeValues(values))
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Could not fill placeholders in '{template[:40]}...': {e}")
            return template

    def update(self, language: str, overrides: Dict[str, str]) -> None:
        """Overrides or adds strings for one language (administrative, startup only)."""
        self._strings.setdefault(language, {}).update(overrides)
