"""Environment access for the guest service: typed readers, .env loading and startup checks."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional, Sequence, Tuple, TypeVar

from dotenv import load_dotenv

from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    """Stripped value of ``key``; blank values count as unset."""
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_number(key: str, default: T, cast: Callable[[str], T], minimum: Optional[T]) -> T:
    raw = env_str(key)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning("%s=%r is not a number; keeping %s.", key, raw, default)
        return default
    if minimum is not None and value < minimum:  # type: ignore[operator]
        logger.warning("%s=%s is below %s; keeping %s.", key, value, minimum, default)
        return default
    return value


def env_int(key: str, default: int, *, minimum: Optional[int] = None) -> int:
    return _env_number(key, default, int, minimum)


def env_float(key: str, default: float, *, minimum: Optional[float] = None) -> float:
    return _env_number(key, default, float, minimum)


def env_bool(key: str, default: bool) -> bool:
    raw = env_str(key)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    logger.warning("%s=%r is not a boolean; keeping %s.", key, raw, default)
    return default


def env_list(key: str, default: Sequence[str] = ()) -> Tuple[str, ...]:
    """Comma separated values of ``key`` ("a, b,c"), empty items dropped."""
    raw = os.getenv(key)
    if raw is None:
        return tuple(default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def load_dotenv_if_available(path: Optional[Path] = None) -> bool:
    """Load ``.env`` without overriding the process environment."""

    env_path = path or Path(".env")
    if not env_path.is_file():
        return False
    load_dotenv(dotenv_path=env_path, override=False)
    logger.debug("Environment completed from %s.", env_path)
    return True


def require_env_vars(required: Sequence[str], *, context: Optional[str] = None) -> None:
    missing = sorted(name for name in required if env_str(name) is None)
    if missing:
        prefix = f"[{context}] " if context else ""
        raise RuntimeError(f"{prefix}Missing required environment variables: {', '.join(missing)}.")


__all__ = [
    "env_bool",
    "env_float",
    "env_int",
    "env_list",
    "env_str",
    "load_dotenv_if_available",
    "require_env_vars",
]
