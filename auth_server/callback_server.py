"""
Local HTTP listener that catches the Google OAuth redirect
"""
import asyncio
import errno
import html
import logging
from typing import Awaitable, Callable, Iterable, Optional

from aiohttp import web

from errors import (
    AllPortsExhaustedError,
    AuthServerError,
    CallbackRejectedError,
    MalformedCallbackError,
    PortInUseError,
    ProviderDeniedError,
)
from settings import OAUTH_CALLBACK_HOST, OAUTH_CALLBACK_PATH, STOP_GRACE_SECONDS

logger = logging.getLogger(__name__)

# EADDRINUSE, plus the WinSock codes for "in use" and "reserved by the system"
_PORT_TAKEN_ERRNOS = {errno.EADDRINUSE, 10048, 10013}

PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>{title}</title>
</head>
<body style="font-family: system-ui, sans-serif; text-align: center; padding: 60px;">
  <h1>{title}</h1>
  <p>{message}</p>
  {extra}
</body>
</html>"""


class CallbackResult:
    """Parameters of one redirect request: either a code or an error"""

    def __init__(self, code: Optional[str] = None, error: Optional[str] = None,
                 error_description: Optional[str] = None):
        self.code = code
        self.error = error
        self.error_description = error_description

    def __repr__(self):
        # Never log the code itself
        return f"CallbackResult(code={'<set>' if self.code else None}, error={self.error!r})"


def render_page(title: str, message: str, extra: str = "") -> web.Response:
    """Human-readable page; the browser always gets a 200"""
    return web.Response(
        text=PAGE_TEMPLATE.format(title=html.escape(title), message=html.escape(message), extra=extra),
        content_type="text/html",
        status=200,
    )


class CallbackListener:
    """aiohttp listener serving the OAuth redirect endpoint

    The first request on the callback path is handed to ``on_callback``;
    every later one is answered without being processed. ``on_callback``
    signals failure by raising an ``AuthServerError``.
    """

    def __init__(
        self,
        on_callback: Callable[[CallbackResult], Awaitable[None]],
        host: str = OAUTH_CALLBACK_HOST,
        callback_path: str = OAUTH_CALLBACK_PATH,
        shutdown_timeout: float = STOP_GRACE_SECONDS,
    ):
        self.on_callback = on_callback
        self.host = host
        self.callback_path = callback_path
        self.shutdown_timeout = shutdown_timeout
        self.auth_url: Optional[str] = None
        self.port: Optional[int] = None

        self.app = web.Application()
        self.app.router.add_get(callback_path, self._handle_callback)
        self.app.router.add_get("/", self._handle_index)

        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._accepted = False
        self._close_task: Optional[asyncio.Task] = None

    @property
    def is_listening(self) -> bool:
        return self.site is not None and self._close_task is None

    async def bind(self, port: int) -> None:
        """Start listening on ``port``

        Raises:
            PortInUseError: If the port is already taken
            OSError: For any other bind failure
        """
        if self.runner is None:
            self.runner = web.AppRunner(self.app, shutdown_timeout=self.shutdown_timeout)
            await self.runner.setup()

        site = web.TCPSite(self.runner, self.host, port)
        try:
            await site.start()
        except OSError as e:
            if e.errno in _PORT_TAKEN_ERRNOS:
                raise PortInUseError(port) from e
            raise

        self.site = site
        self.port = port
        logger.debug(f"OAuth callback listener bound to {self.host}:{port}")

    async def bind_first_available(self, ports: Iterable[int]) -> int:
        """Bind to the first free port, trying candidates in order

        Returns:
            The bound port

        Raises:
            AllPortsExhaustedError: If every candidate is taken
        """
        ports = tuple(ports)
        try:
            for port in ports:
                try:
                    await self.bind(port)
                    return port
                except PortInUseError:
                    logger.info(f"Port {port} is in use, trying next candidate")
        except BaseException:
            await self.close()
            raise

        await self.close()
        raise AllPortsExhaustedError(ports)

    async def close(self) -> None:
        """Stop listening; safe to call repeatedly and concurrently"""
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._cleanup())
        await asyncio.shield(self._close_task)

    async def _cleanup(self) -> None:
        runner, self.runner = self.runner, None
        self.site = None
        if runner is not None:
            await runner.cleanup()
            logger.debug(f"OAuth callback listener on port {self.port} closed")

    async def _handle_index(self, request: web.Request) -> web.Response:
        if not self.auth_url:
            return render_page("Authentication server", "The authentication server is starting.")
        link = f'<p><a href="{html.escape(self.auth_url, quote=True)}">Authenticate with Google</a></p>'
        return render_page(
            "Authentication server",
            "Open the link below to sign in with your Google account.",
            extra=link,
        )

    async def _handle_callback(self, request: web.Request) -> web.Response:
        """Handle the OAuth redirect"""
        if self._accepted:
            logger.info("Ignoring repeated OAuth callback")
            return render_page(
                "Already processed",
                "This authentication request was already handled. You can close this window.",
            )
        self._accepted = True

        result = CallbackResult(
            code=request.query.get("code"),
            error=request.query.get("error"),
            error_description=request.query.get("error_description"),
        )
        logger.debug(f"Received OAuth callback: {result!r}")

        try:
            await self.on_callback(result)
        except ProviderDeniedError as e:
            return render_page(
                "Authentication Failed",
                f"Google returned an error: {e.error}. {e.description or ''} You can close this window.",
            )
        except CallbackRejectedError as e:
            return render_page("Authentication not processed", f"{e} Please check the terminal.")
        except MalformedCallbackError:
            return render_page(
                "Authentication Failed",
                "The redirect did not contain an authorization code. Please run the authentication again.",
            )
        except AuthServerError as e:
            return render_page(
                "Authentication Failed",
                f"{e} Please check the terminal and try again.",
            )
        except Exception as e:
            logger.exception(f"Error in callback handler: {e}")
            return render_page("Authentication Failed", "An internal error occurred. Check the terminal for details.")

        return render_page(
            "Authentication Successful",
            "Your tokens have been saved. You can now close this window and return to the terminal.",
        )
