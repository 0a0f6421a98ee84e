"""
HTTP surface of the echo sandbox.

Administrative routes (/scenario, /history, /replay, /config) and probes are
declared first; every other path falls through to the echo route, which runs
the request-control pipeline in a worker thread so simulated delays block
only that request. Pipeline threads come from their own limiter, sized by
ECHO_WORKER_THREADS, so long sleeps never queue behind the default pool.
"""

import json
import logging
import platform
import random
import secrets
import time
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional

import anyio
import anyio.to_thread
import httpx
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import ConfigError, ServerConfig
from .models import EchoResponse, InboundRequest, client_ip
from .render import VERSION
from .replay import ReplayFailed, ReplayNotFound, ReplayRequestError, parse_replay_request
from .scenarios import ScenarioError, load_definitions
from .server import EchoServer
from .telemetry import setup_tracing

logger = logging.getLogger(__name__)

CORS_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class BodyTooLarge(ValueError):
    pass


async def read_body(request: Request, limit: int) -> bytes:
    chunks, size = [], 0
    async for chunk in request.stream():
        size += len(chunk)
        if limit > 0 and size > limit:
            raise BodyTooLarge(f"Request body exceeds {limit} bytes")
        chunks.append(chunk)
    return b"".join(chunks)


def inbound_request(request: Request, body: bytes) -> InboundRequest:
    uri = request.scope.get("raw_path", b"").decode("latin-1") or request.url.path
    query = request.scope.get("query_string", b"").decode("latin-1")
    if query:
        uri = f"{uri}?{query}"
    return InboundRequest(
        method=request.method,
        uri=uri,
        headers=httpx.Headers(request.headers.raw),
        body=body,
        protocol=f"HTTP/{request.scope.get('http_version', '1.1')}",
        host=request.headers.get("host", ""),
        remote_addr=request.client.host if request.client else "",
    )


def to_response(result: EchoResponse) -> Response:
    response = Response(content=result.body, status_code=result.status_code)
    for name, value in result.headers.multi_items():
        response.headers.append(name, value)
    return response


def _truncate(body: bytes, limit: int) -> str:
    if limit > 0:
        body = body[:limit]
    return body.decode("utf-8", errors="replace")


def log_exchange(config: ServerConfig, request: InboundRequest, result: EchoResponse, elapsed: float) -> None:
    if config.log_body:
        logger.info("Body: %s", _truncate(request.body, config.max_log_body_size))
    if config.log_response and config.log_response_body:
        logger.info("Response body: %s", _truncate(result.body, config.max_log_body_size))
    if config.log_transaction:
        logger.info("--- transaction start ---")
        logger.info("REQUEST: %s %s", request.method, request.path)
        logger.info("Headers: %s", request.headers.multi_items())
        logger.info("Body: %s", _truncate(request.body, config.max_log_body_size))
        logger.info("RESPONSE: %d", result.status_code)
        logger.info("Headers: %s", result.headers.multi_items())
        logger.info("Body: %s", _truncate(result.body, config.max_log_body_size))
        logger.info("Duration: %.3fs", elapsed)
        logger.info("--- transaction end ---")


def create_app(
    config: Optional[ServerConfig] = None,
    rng: Optional[random.Random] = None,
    sleep: Callable[[float], None] = time.sleep,
    defaults: Optional[Mapping[str, str]] = None,
    replay_transport: Optional[httpx.BaseTransport] = None,
) -> FastAPI:
    config = config or ServerConfig.from_env()
    echo = EchoServer(config, rng=rng, sleep=sleep, defaults=defaults, replay_transport=replay_transport)
    if config.scenario_file:
        echo.scenarios.load_file(config.scenario_file)

    app = FastAPI(title="Echo Sandbox", version=VERSION)
    app.state.echo = echo
    workers = anyio.CapacityLimiter(max(config.worker_threads, 1))
    setup_tracing(app)

    # ------------------------ Error mapping ------------------------
    @app.exception_handler(ScenarioError)
    @app.exception_handler(ReplayRequestError)
    @app.exception_handler(ConfigError)
    async def bad_request(request: Request, exc: Exception):
        return PlainTextResponse(str(exc), status_code=400)

    @app.exception_handler(BodyTooLarge)
    async def too_large(request: Request, exc: BodyTooLarge):
        return PlainTextResponse(str(exc), status_code=413)

    @app.exception_handler(ReplayNotFound)
    async def not_found(request: Request, exc: ReplayNotFound):
        return PlainTextResponse(str(exc), status_code=404)

    @app.exception_handler(ReplayFailed)
    async def replay_failed(request: Request, exc: ReplayFailed):
        return PlainTextResponse(str(exc), status_code=500)

    # ------------------------ Middleware ------------------------
    # Added innermost first: rate limit, request id, CORS, logging.
    @app.middleware("http")
    async def rate_limit(request: Request, call_next):
        if echo.rate_limiter is not None and not echo.rate_limiter.allow():
            echo.metrics.injected("rate_limit")
            return PlainTextResponse("Rate limit exceeded", status_code=429, headers={"Retry-After": "60"})
        return await call_next(request)

    @app.middleware("http")
    async def request_id(request: Request, call_next):
        rid = request.headers.get("x-request-id", "")
        if not rid:
            rid = secrets.token_hex(8)
            # Downstream handlers see the id as if the client had sent it
            request.scope["headers"] = [*request.scope["headers"], (b"x-request-id", rid.encode("latin-1"))]
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    if config.enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=CORS_METHODS,
            allow_headers=["*"],
            expose_headers=["*"],
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        client = request.client.host if request.client else "-"
        if config.log_requests:
            logger.info("%s %s %s", client, request.method, request.url.path)
        if config.log_headers:
            logger.info("Headers: %s", request.headers.items())

        response = await call_next(request)

        elapsed = time.perf_counter() - start
        if config.log_requests:
            logger.info("%s %s %s - %d %.3fs", client, request.method, request.url.path,
                        response.status_code, elapsed)
        if config.log_response and config.log_response_headers:
            logger.info("Response headers: %s", response.headers.items())
        echo.metrics.observe(request.method, request.url.path, response.status_code, elapsed)
        return response

    # ------------------------ Probes ------------------------
    @app.get("/health")
    def health():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": str(datetime.now(timezone.utc) - echo.started_at),
        }

    @app.get("/ready")
    def ready():
        return {"status": "ready"}

    @app.get("/metrics")
    def metrics():
        return Response(content=echo.metrics.export(), media_type=echo.metrics.content_type)

    @app.get("/info")
    async def info(request: Request):
        body = await read_body(request, config.max_body_size)
        inbound = inbound_request(request, body)
        headers = {}
        for name, value in inbound.headers.multi_items():
            headers.setdefault(name, []).append(value)
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": inbound.method,
            "url": inbound.uri,
            "path": inbound.path,
            "query": {k: request.query_params.getlist(k) for k in request.query_params.keys()},
            "headers": headers,
            "body_size": len(body),
            "remote_addr": client_ip(inbound),
            "user_agent": inbound.headers.get("User-Agent", ""),
            "content_type": inbound.headers.get("Content-Type", ""),
            "protocol": inbound.protocol,
            "tls": request.url.scheme == "https",
            "request_id": inbound.request_id,
            "server": {
                "hostname": config.hostname,
                "version": VERSION,
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "start_time": echo.started_at.isoformat(),
                "uptime": str(datetime.now(timezone.utc) - echo.started_at),
                "request_count": echo.counter.value,
            },
        }

    # ------------------------ Scenarios ------------------------
    @app.get("/scenario")
    def list_scenarios():
        return [d.to_dict() for d in echo.scenarios.definitions()]

    @app.post("/scenario")
    async def install_scenarios(request: Request):
        text = (await request.body()).decode("utf-8", errors="replace")
        definitions = load_definitions(text)
        echo.scenarios.install(definitions)
        logger.info("Installed %d scenario(s)", len(definitions))
        return {"status": "scenarios updated"}

    # ------------------------ History & replay ------------------------
    @app.get("/history")
    def history():
        return [r.to_dict() for r in echo.history.snapshot()]

    @app.post("/replay")
    async def replay(request: Request):
        try:
            payload = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ReplayRequestError("Invalid request body") from e
        record_id, target = parse_replay_request(payload)
        host = request.headers.get("host", "")
        remote = request.client.host if request.client else ""
        result = await anyio.to_thread.run_sync(
            echo.replayer.replay, record_id, target, host, remote, limiter=workers,
        )
        return to_response(result)

    # ------------------------ Directive defaults ------------------------
    @app.get("/config")
    def get_defaults():
        return dict(echo.defaults.snapshot())

    @app.post("/config")
    async def update_defaults(request: Request):
        try:
            payload = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigError("Invalid config data") from e
        if not isinstance(payload, dict):
            raise ConfigError("Invalid config data")
        snapshot = echo.defaults.update(payload)
        logger.info("Directive defaults updated: %s", sorted(payload))
        return JSONResponse(dict(snapshot))

    # ------------------------ Echo ------------------------
    # Registered last and without a method list so any verb, custom ones
    # included, is echoed
    async def echo_route(request: Request):
        start = time.perf_counter()
        inbound = inbound_request(request, await read_body(request, config.max_body_size))
        result = await anyio.to_thread.run_sync(echo.handle, inbound, limiter=workers)
        log_exchange(config, inbound, result, time.perf_counter() - start)
        return to_response(result)

    app.router.add_route("/{full_path:path}", echo_route, include_in_schema=False)
    return app
