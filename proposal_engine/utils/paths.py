"""Dotted-path access over configuration models and plain dicts.

Paths use snake_case attribute names ("pricing.trim.feet.soffit"); dict
segments are looked up by key so "photos.roofing_asphalt" also works.
"""

from typing import Any, get_args

from pydantic import BaseModel

_MISSING = object()


def split_path(path: str) -> list:
    return [part for part in str(path or "").split(".") if part]


def _step(obj: Any, key: str) -> Any:
    if obj is None:
        return _MISSING
    if isinstance(obj, dict):
        return obj.get(key, _MISSING)
    if isinstance(obj, BaseModel):
        if key in type(obj).model_fields:
            return getattr(obj, key)
        return _MISSING
    return getattr(obj, key, _MISSING)


def get_path(obj: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted path, returning default when any segment is missing."""
    current = obj
    parts = split_path(path)
    if not parts:
        return default
    for part in parts:
        current = _step(current, part)
        if current is _MISSING:
            return default
    return current


def has_path(obj: Any, path: str) -> bool:
    return get_path(obj, path, _MISSING) is not _MISSING


def _mapping_value_type(annotation: Any) -> Any:
    args = get_args(annotation)
    return args[1] if len(args) == 2 else None


def _is_model_type(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, BaseModel)


def _with_key(container: dict, keys: list, value: Any, value_type: Any, path: str) -> dict:
    """Copy of container with value written at the nested keys."""
    key, rest = keys[0], keys[1:]
    updated = dict(container)
    if not rest:
        updated[key] = value
        return updated
    child = container.get(key)
    if child is None:
        child = value_type() if _is_model_type(value_type) else {}
    if isinstance(child, BaseModel):
        child = child.model_copy(deep=True)
        set_path(child, ".".join(rest), value)
    elif isinstance(child, dict):
        child = _with_key(child, rest, value, _mapping_value_type(value_type), path)
    else:
        raise KeyError(path)
    updated[key] = child
    return updated


def set_path(obj: Any, path: str, value: Any) -> None:
    """Assign value at a dotted path.

    Model fields are assigned with setattr so validate_assignment coerces
    the value. Keys inside a dict field are written by re-assigning the
    whole field on its owning model, which validates the new entry too; a
    missing entry whose value type is a model starts from that model's
    defaults.

    Raises:
        KeyError: If a segment is not a field of its model or the path
            runs through something that is neither a model nor a dict.
    """
    parts = split_path(path)
    if not parts:
        raise KeyError(path)
    current = obj
    for index, part in enumerate(parts):
        rest = parts[index + 1:]
        if isinstance(current, BaseModel):
            fields = type(current).model_fields
            if part not in fields:
                raise KeyError(path)
            if not rest:
                setattr(current, part, value)
                return
            child = getattr(current, part)
            if isinstance(child, dict):
                value_type = _mapping_value_type(fields[part].annotation)
                setattr(current, part, _with_key(child, rest, value, value_type, path))
                return
            current = child
        elif isinstance(current, dict):
            if not rest:
                current[part] = value
                return
            current = current.get(part)
        else:
            raise KeyError(path)
