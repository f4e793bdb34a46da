from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_ASYNC_DRIVER = "postgresql+psycopg"

# Supabase/pgbouncer connection strings carry options psycopg rejects.
_DROPPED_PARAMS = {"pgbouncer", "supa"}


def normalize_database_url(url: str) -> str:
    """Rewrite a Postgres/Supabase URL for the async psycopg driver.

    ``postgres://`` and ``postgresql+asyncpg://`` schemes become
    ``postgresql+psycopg://`` and ``ssl=<bool>`` is translated into ``sslmode``.
    """
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme
    if scheme in {"postgres", "postgresql", "postgresql+asyncpg"}:
        scheme = _ASYNC_DRIVER

    query = {
        key: value
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in _DROPPED_PARAMS
    }
    ssl_key = next((key for key in query if key.lower() == "ssl"), None)
    if ssl_key is not None:
        ssl_val = query.pop(ssl_key).lower().strip()
        if "sslmode" not in query:
            if ssl_val in {"0", "false", "no", "off", "disable"}:
                query["sslmode"] = "disable"
            elif ssl_val in {"require", "verify-ca", "verify-full"}:
                query["sslmode"] = ssl_val
            else:
                query["sslmode"] = "require"

    return urlunsplit((scheme, parts.netloc, parts.path, urlencode(query, doseq=True), parts.fragment))
