"""
Display preferences (locale and theme).

Preferences are an immutable value. Loading and saving go through plain
read/write callables so the web app can back them with cookies and the
tests with a dict.
"""

from dataclasses import dataclass, replace
from typing import Callable, Optional

LOCALES = ("pt", "en")
THEMES = ("dark", "light")
DEFAULT_LOCALE = "pt"
DEFAULT_THEME = "dark"

LOCALE_KEY = "locale"
THEME_KEY = "theme"

Reader = Callable[[str], Optional[str]]
Writer = Callable[[str, str], None]


@dataclass(frozen=True)
class Preferences:
    locale: str = DEFAULT_LOCALE
    theme: str = DEFAULT_THEME

    def with_locale(self, locale: str) -> "Preferences":
        if locale not in LOCALES:
            raise ValueError(f"Unsupported locale: {locale}")
        return replace(self, locale=locale)

    def toggled_theme(self) -> "Preferences":
        return replace(self, theme="light" if self.theme == "dark" else "dark")


def load_preferences(read: Reader) -> Preferences:
    """Read stored preferences; anything unknown falls back to the defaults."""
    locale = read(LOCALE_KEY)
    theme = read(THEME_KEY)
    return Preferences(
        locale=locale if locale in LOCALES else DEFAULT_LOCALE,
        theme=theme if theme in THEMES else DEFAULT_THEME,
    )


def save_preferences(prefs: Preferences, write: Writer) -> None:
    write(LOCALE_KEY, prefs.locale)
    write(THEME_KEY, prefs.theme)
