"""
restlayer — HTTP Layer for CRUD Models
=======================================

What: Turns CRUD collaborators, routes and middleware into a running ASGI
      server with per-request correlation IDs and response instrumentation.

Package layout:

    ┌─────────────────────────────────────┐
    │   server (assembly, listen)         │  ← create_server / RestServer
    ├─────────────────────────────────────┤
    │   routes.model_cruds, routing       │  ← model → URL → handlers
    ├─────────────────────────────────────┤
    │   pipeline, middleware              │  ← ordered stages, logging,
    │                                     │    instrumentation, errors
    ├─────────────────────────────────────┤
    │   http, context, config             │  ← writer, per-request state
    └─────────────────────────────────────┘
"""

from restlayer.config import LoggingOptions, ServerOptions
from restlayer.cruds import ModelCruds, ModelInfo
from restlayer.exceptions import AssemblyError, ConfigurationError, RestLayerError
from restlayer.routing import Route, Router
from restlayer.server import RestServer, create_server, setup_logging

__version__ = "1.0.0"

__all__ = [
    "AssemblyError",
    "ConfigurationError",
    "LoggingOptions",
    "ModelCruds",
    "ModelInfo",
    "RestLayerError",
    "RestServer",
    "Route",
    "Router",
    "ServerOptions",
    "create_server",
    "setup_logging",
]
