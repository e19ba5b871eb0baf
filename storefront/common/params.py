from typing import Any, Optional

from quart import request

from .errors import InvalidInput

_MISSING = object()


def int_param(data: dict, name: str, default: Any = _MISSING) -> Optional[int]:
    value = data.get(name, default)
    if value is _MISSING or value is None or value == "":
        if default is _MISSING:
            raise InvalidInput(f"{name} is required")
        return default
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number")


def float_param(data: dict, name: str, default: Any = _MISSING) -> Optional[float]:
    value = data.get(name, default)
    if value is _MISSING or value is None or value == "":
        if default is _MISSING:
            raise InvalidInput(f"{name} is required")
        return default
    if isinstance(value, bool):
        raise InvalidInput(f"{name} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number")


async def json_body() -> dict:
    data = await request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise InvalidInput("JSON object body required")
    return data
