"""Secret lookup for toolgate.

API keys come from the process environment first, then from a cached
``.env.secrets`` file in the working directory (python-dotenv format).
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import dotenv_values

SECRETS_FILE = ".env.secrets"


@lru_cache(maxsize=1)
def _load_secrets(secrets_path: Path | None = None) -> dict[str, str | None]:
    path = secrets_path or Path(SECRETS_FILE)
    if path.exists():
        return dotenv_values(path)
    return {}


def fetch_secret(
    key: str,
    default: str | None = None,
    secrets_path: Path | None = None,
) -> str | None:
    """Fetch a secret from the environment or ``.env.secrets``.

    The environment wins so tests can clear a key with ``monkeypatch.delenv``.

    Args:
        key: Variable name (e.g., "ANTHROPIC_API_KEY")
        default: Value returned when the key is found nowhere
        secrets_path: Optional explicit secrets file

    Example:
        >>> fetch_secret("ANTHROPIC_API_KEY")
        'sk-ant-...'
    """
    value = os.environ.get(key)
    if value is not None:
        return value

    secrets = _load_secrets(secrets_path)
    if secrets.get(key) is not None:
        return secrets[key]

    return default


def clear_secret_cache() -> None:
    """Forget the cached ``.env.secrets`` contents."""
    _load_secrets.cache_clear()
