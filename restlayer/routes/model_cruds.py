"""
restlayer — Model CRUD Routes
==============================

What:  Derives a REST surface from a CRUD collaborator: URL namespace,
       controller handlers and the Router that binds them.
How:   ``model_base_path`` kebab-cases the model's namespace and plural name
       into ``{url_prefix}{namespace}/{plural_name}``; ``model_cruds_controller``
       builds one guarded handler per operation; ``model_cruds_router``
       registers them.

Routes (base = /billing/invoices for namespace "billing", plural "Invoices"):
    POST    {base}          → create        200 + record
    POST    {base}/search   → search        200 + {instances, page}
    POST    {base}/bulk     → bulk insert   200        (if supported)
    DELETE  {base}/bulk     → bulk delete   200        (if supported)
    GET     {base}/{id}     → retrieve      200 + record | 404 empty
    PUT     {base}/{id}     → update        200 + record
    DELETE  {base}/{id}     → delete        200

Literal segments (/search, /bulk) are registered before /{id} so they win.

Any error inside a handler is logged with model and operation name and
answered with 500 {"error": {"code": "InternalServerError", ...}}; the
exception itself never reaches the client.

Flat naming:
    Older deployments derived the base from the singular model name only
    (``{url_prefix}{name}``). Same-named models in different namespaces then
    collide, so it is only available behind ``flat_names=True`` and emits a
    DeprecationWarning.
"""

import functools
import logging
import re
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Optional

from restlayer._invoke import invoke
from restlayer.cruds import model_info, serialize_record, serialize_search_result, supports
from restlayer.exceptions import ConfigurationError
from restlayer.middleware.body_parser import get_body
from restlayer.middleware.logging import scope_for
from restlayer.routing import Router
from restlayer.schemas.errors import GENERIC_ROUTE_MESSAGE, INTERNAL_SERVER_ERROR, error_envelope

logger = logging.getLogger(__name__)

_WORDS = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")

ControllerFunc = Callable[[Any, Any], Any]


def _char_class(char: str) -> str:
    if char.isupper():
        return "A"
    if char.isalpha():
        return "a"
    if char.isdigit():
        return "0"
    return " "


def kebab_case(value: str) -> str:
    """'BillingAccounts' → 'billing-accounts', 'XMLHttpRequest' → 'xml-http-request'."""
    value = str(value)
    # Boundaries come from a per-character class mask (A upper, a lower, 0 digit)
    mask = "".join(_char_class(char) for char in value)
    return "-".join(value[m.start():m.end()].lower() for m in _WORDS.finditer(mask))


def model_base_path(cruds: Any, url_prefix: str = "/", flat_names: bool = False) -> str:
    info = model_info(cruds)
    prefix = url_prefix if url_prefix.endswith("/") else url_prefix + "/"

    if flat_names:
        warnings.warn(
            "Flat model route names are deprecated and collide across namespaces; "
            "use namespace/plural routes instead",
            DeprecationWarning,
            stacklevel=2,
        )
        if not info.name:
            raise ConfigurationError("Model has no name", context={"model": repr(info)})
        return f"{prefix}{kebab_case(info.name)}"

    if not info.namespace or not info.plural_name:
        raise ConfigurationError(
            "Model must declare a namespace and a plural name",
            context={"model": repr(info)},
        )
    return f"{prefix}{kebab_case(info.namespace)}/{kebab_case(info.plural_name)}"


@dataclass(frozen=True)
class ModelCrudsController:
    create: ControllerFunc
    retrieve: ControllerFunc
    update: ControllerFunc
    delete: ControllerFunc
    search: ControllerFunc
    bulk_insert: Optional[ControllerFunc] = None
    bulk_delete: Optional[ControllerFunc] = None


def _guarded(model_name: str, operation: str, func: ControllerFunc) -> ControllerFunc:
    """Turn any error from ``func`` into a logged, generic 500."""

    @functools.wraps(func)
    async def handler(request, response):
        try:
            return await func(request, response)
        except Exception as e:
            scope_for(request).error(
                "Error in %s.%s: %s",
                model_name,
                operation,
                e,
                exc_info=e,
                extra={"model": model_name, "operation": operation},
            )
            response.reset()
            response.status(500).json(error_envelope(INTERNAL_SERVER_ERROR, GENERIC_ROUTE_MESSAGE))
            return None

    return handler


def model_cruds_controller(cruds: Any) -> ModelCrudsController:
    """Build the handler set for one CRUD collaborator."""
    info = model_info(cruds)
    model_name = info.name or info.plural_name

    async def create(request, response):
        record = await invoke(cruds.create, get_body(request))
        response.status(200).json(await serialize_record(record))

    async def retrieve(request, response):
        record = await invoke(cruds.retrieve, request.path_params["id"])
        if record is None:
            response.status(404)
            return
        response.status(200).json(await serialize_record(record))

    async def update(request, response):
        record = await invoke(cruds.update, request.path_params["id"], get_body(request))
        response.status(200).json(await serialize_record(record))

    async def delete(request, response):
        await invoke(cruds.delete, request.path_params["id"])
        response.status(200)

    async def search(request, response):
        result = await invoke(cruds.search, get_body(request))
        response.status(200).json(await serialize_search_result(result))

    async def bulk_insert(request, response):
        await invoke(cruds.bulk_insert, get_body(request))
        response.status(200)

    async def bulk_delete(request, response):
        await invoke(cruds.bulk_delete, get_body(request))
        response.status(200)

    return ModelCrudsController(
        create=_guarded(model_name, "create", create),
        retrieve=_guarded(model_name, "retrieve", retrieve),
        update=_guarded(model_name, "update", update),
        delete=_guarded(model_name, "delete", delete),
        search=_guarded(model_name, "search", search),
        bulk_insert=_guarded(model_name, "bulk_insert", bulk_insert) if supports(cruds, "bulk_insert") else None,
        bulk_delete=_guarded(model_name, "bulk_delete", bulk_delete) if supports(cruds, "bulk_delete") else None,
    )


def model_cruds_router(
    cruds: Any,
    controller: Optional[ModelCrudsController] = None,
    url_prefix: str = "/",
    flat_names: bool = False,
) -> Router:
    """Router exposing ``cruds`` under its derived base path."""
    controller = controller or model_cruds_controller(cruds)
    base = model_base_path(cruds, url_prefix, flat_names=flat_names)
    router = Router()

    router.add_route("POST", base, controller.create)
    router.add_route("POST", f"{base}/search", controller.search)
    if controller.bulk_insert is not None:
        router.add_route("POST", f"{base}/bulk", controller.bulk_insert)
    if controller.bulk_delete is not None:
        router.add_route("DELETE", f"{base}/bulk", controller.bulk_delete)

    id_path = f"{base}/{{id}}"
    router.add_route("GET", id_path, controller.retrieve)
    router.add_route("PUT", id_path, controller.update)
    router.add_route("DELETE", id_path, controller.delete)

    logger.debug("Derived %d routes under %s", len(router.routes), base)
    return router
