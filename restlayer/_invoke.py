"""Call sync or async callables uniformly.

Handlers, middleware, CRUD collaborators and finish callbacks may all be
plain ``def`` or ``async def``. Anything that calls user-provided code goes
through ``invoke`` so the check lives in one place.
"""

import inspect
from typing import Any


async def invoke(func: Any, *args: Any, **kwargs: Any) -> Any:
    """Call ``func`` and await the result if it is awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
