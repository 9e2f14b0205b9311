"""
Light/dark theme preference.

The preference is kept in the browser's local storage under ``ui-theme``
(a ``dcc.Store`` with ``storage_type="local"``). ``system`` is resolved in
the browser from the ``prefers-color-scheme`` media query.
"""

THEME_STORAGE_KEY = "ui-theme"
THEMES = [("light", "Claro"), ("dark", "Oscuro"), ("system", "Sistema")]
DEFAULT_THEME = "system"


def normalize_theme(value):
    return value if value in dict(THEMES) else DEFAULT_THEME


def resolve_theme(preference, prefers_dark=False):
    """Concrete theme (``light``/``dark``) for a stored preference."""
    preference = normalize_theme(preference)
    if preference == "system":
        return "dark" if prefers_dark else "light"
    return preference


def theme_selection(triggered_id, selected, stored):
    """
    Keep the theme dropdown and the stored preference in sync.

    Returns (stored preference, dropdown value).
    """
    if triggered_id == "theme-select":
        theme = normalize_theme(selected)
    else:
        theme = normalize_theme(stored)
    return theme, theme


# Resolves the stored preference and applies it to the page
RESOLVE_THEME_JS = """
function(preference) {
    var theme = preference || '%s';
    if (theme === 'system') {
        theme = window.matchMedia('(prefers-color-scheme: dark)').matches ? 'dark' : 'light';
    }
    document.documentElement.setAttribute('data-bs-theme', theme);
    return theme;
}
""" % DEFAULT_THEME
