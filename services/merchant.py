import re


def merchant_key(merchant: str | None) -> str:
    """Canonical lookup key shared by overrides, the global cache and the log."""
    return (merchant or "").lower().strip()


def title_case_merchant(name: str) -> str:
    """
    Upper-case the first letter of every word and keep the rest untouched,
    so "home AC repair" becomes "Home AC Repair" and "macy's" stays "Macy's".
    """
    words = re.split(r"(\s+)", name.strip())
    return "".join(w[:1].upper() + w[1:] if w and not w.isspace() else w for w in words)
