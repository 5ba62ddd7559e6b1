from __future__ import annotations

import os
from typing import Optional

ENV_LOG_LEVEL = "RESTTEST_LOG_LEVEL"
ENV_DEBUG_PY_TRACE = "RESTTEST_DEBUG_PY_TRACE"

_FALSY = ("", "0", "false", "no", "off")


def envvar_value_by_name(name: str) -> Optional[str]:
    """Get the current value of an env var by name, or None if missing."""
    return os.environ.get(name)


def envvar_flag(name: str) -> bool:
    value = envvar_value_by_name(name)
    return value is not None and value.strip().lower() not in _FALSY


def debug_py_trace_enabled() -> bool:
    """Show Python tracebacks alongside rest-test errors."""
    return envvar_flag(ENV_DEBUG_PY_TRACE)


def set_debug_py_trace(enabled: bool) -> None:
    if enabled:
        os.environ[ENV_DEBUG_PY_TRACE] = "1"
    else:
        os.environ.pop(ENV_DEBUG_PY_TRACE, None)


def log_level(default: str = "WARNING") -> str:
    value = envvar_value_by_name(ENV_LOG_LEVEL)
    if not value:
        return default
    return value.strip().upper()
