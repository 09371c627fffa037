from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_PSYCOPG_SCHEME = "postgresql+psycopg"
_POSTGRES_ALIASES = {"postgres", "postgresql", "postgresql+asyncpg", _PSYCOPG_SCHEME}
_DISABLED_SSL = {"0", "false", "no", "off", "disable"}
_STRICT_SSL = {"require", "verify-ca", "verify-full"}


def _sslmode_for(value: str) -> str:
    normalized = value.lower().strip()
    if normalized in _DISABLED_SSL:
        return "disable"
    if normalized in _STRICT_SSL:
        return normalized
    return "require"


def normalize_database_url(url: str) -> str:
    """Point Postgres URLs at the async psycopg driver.

    Hosting providers hand out ``postgres://`` URLs and ``ssl=true`` flags; psycopg
    expects ``sslmode``. Non-Postgres URLs (sqlite in tests) pass through unchanged.
    """
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    if parts.scheme not in _POSTGRES_ALIASES:
        return url

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is not None:
        ssl_val = query.pop(ssl_key)
        query.setdefault("sslmode", _sslmode_for(ssl_val))

    return urlunsplit(
        (_PSYCOPG_SCHEME, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment)
    )
