"""
restlayer — CRUD Collaborator Contract
=======================================

What:  The interface a model's data-access service must offer to be exposed
       over HTTP, plus helpers for reading model metadata and serializing
       records.
How:   Structural typing (Protocol). Any object with these methods works;
       methods may be sync or async.

    get_model()            → ModelInfo-like {name, namespace, plural_name}
    create(data)           → record
    retrieve(id)           → record | None
    update(id, data)       → record
    delete(id)             → None
    search(query)          → {"instances": [record, ...], "page": token}
    bulk_insert(items)     → None        (optional)
    bulk_delete(criteria)  → None        (optional)

Records are serialized with ``to_obj()`` when they have one (sync or async),
pydantic's ``model_dump(mode="json")`` for pydantic models, and passed through
unchanged otherwise.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

from restlayer._invoke import invoke


@dataclass(frozen=True)
class ModelInfo:
    """Model metadata used to derive URLs."""

    name: str
    namespace: str
    plural_name: str


@runtime_checkable
class ModelCruds(Protocol):
    def get_model(self) -> Any: ...

    def create(self, data: Any) -> Any: ...

    def retrieve(self, id: Any) -> Any: ...

    def update(self, id: Any, data: Any) -> Any: ...

    def delete(self, id: Any) -> Any: ...

    def search(self, query: Any) -> Any: ...


def _read(source: Any, *names: str) -> Optional[Any]:
    for name in names:
        if isinstance(source, dict) and name in source:
            return source[name]
        value = getattr(source, name, None)
        if value is not None:
            return value() if callable(value) else value
    return None


def model_info(cruds: Any) -> ModelInfo:
    """
    Read ModelInfo from ``cruds.get_model()``.

    Accepts objects or mappings, snake_case or camelCase keys, plain values
    or zero-argument getters (``get_name()``).
    """
    model = cruds.get_model()
    if isinstance(model, ModelInfo):
        return model
    name = _read(model, "name", "get_name", "getName")
    namespace = _read(model, "namespace", "get_namespace", "getNamespace")
    plural_name = _read(model, "plural_name", "pluralName", "get_plural_name", "getPluralName")
    return ModelInfo(
        name=str(name or ""),
        namespace=str(namespace or ""),
        plural_name=str(plural_name or ""),
    )


def supports(cruds: Any, operation: str) -> bool:
    """True when the collaborator offers the optional ``operation``."""
    return callable(getattr(cruds, operation, None))


async def serialize_record(record: Any) -> Any:
    """Plain-object form of a record."""
    to_obj = getattr(record, "to_obj", None)
    if callable(to_obj):
        return await invoke(to_obj)
    if isinstance(record, BaseModel):
        return record.model_dump(mode="json")
    return record


async def serialize_search_result(result: Any) -> Dict[str, Any]:
    """{"instances": [...serialized], "page": token} from a mapping or object."""
    if isinstance(result, dict):
        instances = result.get("instances") or []
        page = result.get("page")
    else:
        instances = getattr(result, "instances", None) or []
        page = getattr(result, "page", None)
    return {
        "instances": [await serialize_record(instance) for instance in instances],
        "page": page,
    }
