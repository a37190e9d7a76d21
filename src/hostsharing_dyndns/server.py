"""
FastAPI server for Hostsharing DynDNS.

This module provides the HTTP endpoint routers call to report their current
addresses. Responses are short plain-text bodies, which router scripts can
check without parsing.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from hostsharing_dyndns.config import Config, load_config
from hostsharing_dyndns.errors import DynDNSError
from hostsharing_dyndns.models import SubdomainRecord, UpdateParams
from hostsharing_dyndns.updater import Updater
from hostsharing_dyndns.validators.argon2id import Argon2idValidator
from hostsharing_dyndns.zonefile import ZoneFile, ZoneState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.datastructures import QueryParams


logger = logging.getLogger(__name__)

# Global config and updater (set during startup)
_config: Config | None = None
_updater: Updater | None = None


def get_config() -> Config:
    """Get the current configuration."""
    if _config is None:
        msg = "Configuration not loaded"
        raise RuntimeError(msg)
    return _config


def get_updater() -> Updater:
    """Get the updater holding the zone state."""
    if _updater is None:
        msg = "Updater not initialized"
        raise RuntimeError(msg)
    return _updater


def set_preloaded_config(config: Config) -> None:
    """
    Inject a pre-loaded configuration into the server module.

    This allows the CLI entry point to pass the parsed configuration to the
    server instance, avoiding the need to re-parse command-line arguments
    during application startup (e.g. in the lifespan handler).

    Parameters
    ----------
    config : Config
        The configuration object to set.
    """
    global _config  # noqa: PLW0603
    _config = config


def build_updater(config: Config) -> Updater:
    """
    Build the updater and its collaborators from the configuration.

    The zone state starts out without addresses.

    Parameters
    ----------
    config : Config
        The application configuration.

    Returns
    -------
    Updater
        The updater.
    """
    updater_config = config.updater
    zonefile = ZoneFile(
        header=config.zonefile.header,
        hostname_placeholder=config.zonefile.hostname_placeholder,
    )
    state = ZoneState(
        SubdomainRecord.empty(updater_config.domain_subpart, updater_config.ttl),
    )
    validator = Argon2idValidator.from_config(updater_config.password)
    return Updater(updater_config, validator, state, zonefile)


def _has_route(app_: FastAPI, path: str) -> bool:
    """Check whether a route with the given path is registered."""
    return any(getattr(route, "path", None) == path for route in app_.router.routes)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    global _config, _updater  # noqa: PLW0603

    # If config was not set by CLI (e.g., running via uvicorn directly),
    # load it here
    if _config is None:
        _config = load_config()
    if _updater is None:
        _updater = build_updater(_config)

    # Dynamically register "/test" endpoint (GET method) if enabled,
    # once per app across restarts of the lifespan
    if _config.health.enabled and not _has_route(_app, "/test"):
        _app.add_api_route("/test", liveness, methods=["GET"])

    logger.info(
        'Hostsharing DynDNS starting on "%s:%d" (subdomain: "%s", zonefile: "%s").',
        _config.server.host,
        _config.server.port,
        _config.updater.domain_subpart,
        _config.updater.filename,
    )

    yield

    logger.info("Hostsharing DynDNS shutting down.")


app = FastAPI(
    title="Hostsharing DynDNS",
    description="Dynamic DNS updater writing zone-file fragments",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(DynDNSError)
async def dyndns_exception_handler(_request: Request, exc: DynDNSError) -> Response:
    """
    Handle rejected update requests.

    The error message becomes the plain-text response body.
    """
    return PlainTextResponse(f"{exc.message}\n", status_code=exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    _request: Request,
    exc: StarletteHTTPException,
) -> Response:
    """
    Handle HTTP exceptions with plain-text responses.

    Keeps 404/405 answers in the same format as the update endpoint.
    """
    return PlainTextResponse(
        f"{exc.detail}\n",
        status_code=exc.status_code,
        headers=exc.headers,
    )


def first_query_value(query_params: QueryParams, name: str) -> str | None:
    """
    Return the first value of a query parameter, or None if absent.

    A repeated parameter is answered by its first occurrence; later
    occurrences are ignored.

    Parameters
    ----------
    query_params : QueryParams
        The request's query parameters.
    name : str
        Parameter name.

    Returns
    -------
    str | None
        The first value, or None.
    """
    values = query_params.getlist(name)
    return values[0] if values else None


@app.get("/", response_class=PlainTextResponse)
def update(request: Request) -> Response:
    """
    Update the subdomain's addresses.

    The parameters are read from the query string directly: a missing user
    or password is answered with 401 by the pipeline rather than 422 by
    FastAPI, and a repeated parameter counts by its first value.

    This is a sync endpoint, so FastAPI runs it in its threadpool and the
    Argon2 key derivation does not block the event loop.
    """
    query = request.query_params
    params = UpdateParams(
        user=first_query_value(query, "user"),
        passwd=first_query_value(query, "passwd"),
        ipaddr=first_query_value(query, "ipaddr"),
        ip6addr=first_query_value(query, "ip6addr"),
    )
    get_updater().handle(params)
    return PlainTextResponse("Ok\n")


# Note: Unlike the route above, this endpoint is dynamically registered
# in lifespan() based on config.health.enabled.
async def liveness() -> Response:
    """Liveness check endpoint."""
    return PlainTextResponse("Hello World\n")
