"""
OAuth 2.0 Callback Listener

A single purpose HTTP endpoint that lives for exactly one authorization
attempt. It is bound to the host, port and path of the redirect URL, validates
the redirect, redeems the code and publishes the outcome once on a future.
"""

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from urllib.parse import urlsplit

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from coyote.auth.oauth_models import TokenResponse
from coyote.auth.oauth_session import PKCESession
from coyote.errors import CallbackError, CallbackTimeoutError, ConfigurationError

logger = logging.getLogger(__name__)

CALLBACK_TIMEOUT = 60.0
SHUTDOWN_TIMEOUT = 5.0

SUCCESS_HTML = """
<html>
<head>
    <title>Authentication Successful</title>
    <style>
        body { font-family: Arial, sans-serif; text-align: center; padding: 50px; }
        h1 { color: #4CAF50; }
        p { font-size: 18px; }
    </style>
</head>
<body>
    <h1>Authentication Successful</h1>
    <p>You can close this window and return to the application.</p>
</body>
</html>
"""


@dataclass(frozen=True)
class RedirectTarget:
    host: str
    port: int
    path: str


def parse_redirect_url(redirect_url: str) -> RedirectTarget:
    """
    Split a redirect URL into the address the listener binds to.

    Raises:
        ConfigurationError: If the URL is not an absolute http(s) URL
    """
    try:
        parts = urlsplit(redirect_url)
        port = parts.port
    except ValueError as e:
        raise ConfigurationError(f"failed to parse redirect url: {e}") from e
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ConfigurationError(
            f"redirect url must be an absolute http(s) url, got '{redirect_url}'"
        )
    if port is None:
        port = 443 if parts.scheme == "https" else 80
    return RedirectTarget(host=parts.hostname, port=port, path=parts.path or "/")


class CallbackListener:
    """
    Ephemeral redirect endpoint.

    Usage::

        async with CallbackListener(redirect_url, session, exchange) as listener:
            ...  # offer the consent page
            token = await listener.wait()

    The listener is torn down when the context exits, whatever the outcome.
    """

    def __init__(
        self,
        redirect_url: str,
        session: PKCESession,
        exchange: Callable[[str], Awaitable[TokenResponse]],
    ):
        self.target = parse_redirect_url(redirect_url)
        self.session = session
        self.port = self.target.port
        self._exchange = exchange
        self._claimed = False
        self._result: asyncio.Future[TokenResponse] | None = None
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
        app.add_api_route(self.target.path, self._handle_callback, methods=["GET"])
        return app

    def _future(self) -> asyncio.Future[TokenResponse]:
        if self._result is None:
            self._result = asyncio.get_running_loop().create_future()
        return self._result

    async def _handle_callback(self, request: Request) -> Response:
        result = self._future()
        if self._claimed or result.done():
            return PlainTextResponse("Authorization attempt already completed", status_code=400)
        # claimed before the first await so only one request can redeem the code
        self._claimed = True

        params = request.query_params
        try:
            token = await self._process(
                state=params.get("state"),
                code=params.get("code"),
                error=params.get("error"),
                error_description=params.get("error_description"),
            )
        except CallbackError as e:
            logger.warning(f"Rejected OAuth 2.0 callback: {e.message}")
            if not result.done():
                result.set_exception(e)
            return PlainTextResponse(e.message, status_code=e.status_code)

        if result.done():
            logger.warning("OAuth 2.0 token arrived after the attempt expired")
            return PlainTextResponse("Authorization attempt expired", status_code=400)
        result.set_result(token)
        return HTMLResponse(SUCCESS_HTML)

    async def _process(
        self,
        state: str | None,
        code: str | None,
        error: str | None,
        error_description: str | None,
    ) -> TokenResponse:
        if not self.session.matches(state):
            raise CallbackError("State parameter doesn't match")
        if error:
            raise CallbackError(
                f"Authorization server returned error: {error} - {error_description or ''}"
            )
        if not code:
            raise CallbackError("Code parameter missing in callback")
        return await self._exchange(code)

    async def wait(self, timeout: float = CALLBACK_TIMEOUT) -> TokenResponse:
        """
        Wait for the single callback outcome.

        Raises:
            CallbackError: If the callback was rejected or the exchange failed
            CallbackTimeoutError: If nothing arrived within ``timeout`` seconds
        """
        try:
            return await asyncio.wait_for(self._future(), timeout=max(timeout, 0))
        except asyncio.TimeoutError as e:
            raise CallbackTimeoutError("timeout waiting for OAuth 2.0 callback") from e

    async def start(self) -> None:
        """
        Bind the redirect address and start serving.

        Raises:
            ConfigurationError: If the redirect address can not be bound
            CallbackError: If the HTTP server stops before it is ready
        """
        self._future()
        try:
            self._socket = socket.create_server((self.target.host, self.target.port))
        except OSError as e:
            raise ConfigurationError(
                f"failed to listen on {self.target.host}:{self.target.port} for the OAuth 2.0 callback"
            ) from e
        self.port = self._socket.getsockname()[1]

        config = uvicorn.Config(
            self.app, log_config=None, log_level="warning", access_log=False, lifespan="off"
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._server.serve(sockets=[self._socket]))

        while not self._server.started:
            if self._serve_task.done():
                await self.stop()
                raise CallbackError("callback listener stopped before it was ready")
            await asyncio.sleep(0.01)
        logger.debug(f"Callback listener ready on {self.target.host}:{self.port}{self.target.path}")

    async def stop(self) -> None:
        """Force the listener down, even with a request in flight."""
        if self._server is not None:
            self._server.should_exit = True
            self._server.force_exit = True
        if self._serve_task is not None:
            try:
                await asyncio.wait_for(self._serve_task, timeout=SHUTDOWN_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Callback listener did not stop in time, cancelling")
            except Exception as e:
                logger.warning(f"Callback listener stopped with error: {e}")
            self._serve_task = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        if self._result is not None and not self._result.done():
            self._result.cancel()
        self._server = None
        logger.debug("Callback listener stopped")

    async def __aenter__(self) -> "CallbackListener":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()
