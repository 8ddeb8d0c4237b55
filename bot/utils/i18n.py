from __future__ import annotations

import json
import logging
from collections.abc import Callable
from pathlib import Path

LOGGER = logging.getLogger(__name__)

Translator = Callable[..., str]


class I18N:
    def __init__(self, base_dir: Path, default_locale: str) -> None:
        self.base_dir = base_dir
        self.default_locale = default_locale
        self._messages: dict[str, dict[str, str]] = {}

    def load_locale(self, locale: str) -> None:
        path = self.base_dir / f"{locale}.json"
        if not path.exists():
            LOGGER.warning("Locale file not found: %s", path)
            self._messages[locale] = {}
            return
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        if isinstance(payload, dict):
            self._messages[locale] = {str(k): str(v) for k, v in payload.items()}

    def _messages_for(self, locale: str) -> dict[str, str]:
        if locale not in self._messages:
            self.load_locale(locale)
        return self._messages.get(locale, {})

    def translate(self, key: str, *args: object, locale: str | None = None) -> str:
        template = self._messages_for(locale or self.default_locale).get(key)
        if template is None:
            template = self._messages_for(self.default_locale).get(key, key)
        return template.format(*args)

    def get_locale(self, locale: str | None) -> Translator:
        """Return a ``(key, *args)`` lookup bound to ``locale`` with default-locale fallback."""

        def _lookup(key: str, *args: object) -> str:
            return self.translate(key, *args, locale=locale)

        return _lookup
