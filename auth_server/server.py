"""Authentication server state machine

Ties the callback listener, the OAuth client and the token store together
for a single authorization code attempt.
"""
import asyncio
import logging
import webbrowser
from typing import Callable, Iterable, Optional, Protocol

from errors import (
    AlreadyStartedError,
    AllPortsExhaustedError,
    AuthServerError,
    CallbackRejectedError,
    ExchangeError,
    MalformedCallbackError,
    ProviderDeniedError,
    StorageError,
)
from google_oauth.models import Credential
from settings import (
    OAUTH_CALLBACK_HOST,
    OAUTH_CALLBACK_PATH,
    OAUTH_CALLBACK_PORTS,
    OAUTH_REDIRECT_HOST,
    STOP_GRACE_SECONDS,
)
from .callback_server import CallbackListener, CallbackResult
from .session import AuthSession, AuthStatus

logger = logging.getLogger(__name__)


class OAuthClient(Protocol):
    def build_authorization_url(self, redirect_uri: str) -> str: ...

    async def exchange_code(self, code: str, redirect_uri: str) -> Credential: ...


class TokenStore(Protocol):
    async def has_valid_credential(self) -> bool: ...

    async def persist(self, credential: Credential) -> None: ...


class AuthServer:
    """One-shot local OAuth callback server

    ``start()`` either finds valid stored tokens and finishes immediately, or
    binds a listener and waits for Google's redirect. The redirect is
    processed at most once; after the exchange (successful or not) the
    listener closes itself. ``stop()`` can be called at any time, any number
    of times.

    Args:
        oauth_client: Builds the authorization URL and exchanges the code
        token_store: Validates and persists credentials
        ports: Candidate callback ports, tried in order
        host: Address the listener binds to
        redirect_host: Host put in the redirect URI (default: OAUTH_REDIRECT_HOST,
            or ``host`` when that is unset, so the browser reaches the bound socket)
        browser_opener: Called with the authorization URL; returns whether a
            browser was opened
        stop_grace_seconds: How long ``stop()`` lets an in-flight exchange
            finish before cancelling it
    """

    def __init__(
        self,
        oauth_client: OAuthClient,
        token_store: TokenStore,
        ports: Iterable[int] = OAUTH_CALLBACK_PORTS,
        host: str = OAUTH_CALLBACK_HOST,
        redirect_host: Optional[str] = None,
        browser_opener: Callable[[str], bool] = webbrowser.open,
        stop_grace_seconds: float = STOP_GRACE_SECONDS,
    ):
        self.oauth_client = oauth_client
        self.token_store = token_store
        self.ports = tuple(ports)
        self.host = host
        self.redirect_host = redirect_host or OAUTH_REDIRECT_HOST or host
        self.browser_opener = browser_opener
        self.stop_grace_seconds = stop_grace_seconds

        self._session = AuthSession()
        self._started = False
        self._listener: Optional[CallbackListener] = None
        self._redirect_uri: Optional[str] = None
        self._auth_url: Optional[str] = None
        self._exchange_task: Optional[asyncio.Task] = None
        self._exchange_error: Optional[AuthServerError] = None
        self._close_task: Optional[asyncio.Task] = None
        self._stopping = False
        self._done = asyncio.Event()

    @property
    def completed_successfully(self) -> bool:
        return self._session.completed_successfully

    @property
    def status(self) -> AuthStatus:
        return self._session.status

    @property
    def bound_port(self) -> Optional[int]:
        return self._session.bound_port

    @property
    def error_detail(self) -> Optional[str]:
        return self._session.error_detail

    @property
    def auth_url(self) -> Optional[str]:
        return self._auth_url

    @property
    def redirect_uri(self) -> Optional[str]:
        return self._redirect_uri

    async def start(self, open_browser: bool = True) -> bool:
        """Start the authentication attempt

        Args:
            open_browser: Whether to open the authorization URL in a browser

        Returns:
            True if tokens are already valid or the listener is waiting for
            the redirect, False if no callback port could be bound

        Raises:
            AlreadyStartedError: If this server was started before
        """
        if self._started:
            raise AlreadyStartedError(self._session.status.value)
        self._started = True

        # Checked before any socket is opened
        if await self._has_valid_credential():
            self._session.transition(AuthStatus.TOKEN_ALREADY_VALID)
            self._done.set()
            logger.info("Valid tokens already stored, browser authentication not needed")
            return True

        listener = CallbackListener(
            self._handle_callback,
            host=self.host,
            shutdown_timeout=self.stop_grace_seconds,
        )
        self._listener = listener

        try:
            port = await listener.bind_first_available(self.ports)
        except AllPortsExhaustedError as e:
            logger.error(str(e))
            self._fail(str(e))
            return False
        except Exception as e:
            self._fail(f"Could not start callback listener: {e}")
            raise

        self._session.set_bound_port(port)
        self._session.transition(AuthStatus.LISTENING)
        self._redirect_uri = f"http://{self.redirect_host}:{port}{OAUTH_CALLBACK_PATH}"

        try:
            self._auth_url = self.oauth_client.build_authorization_url(self._redirect_uri)
        except Exception as e:
            self._fail(f"Could not build authorization URL: {e}")
            await self._close_listener()
            raise
        listener.auth_url = self._auth_url

        logger.info(f"Authentication server listening on http://{self.redirect_host}:{port}")
        if open_browser:
            self._open_browser(self._auth_url)
        else:
            logger.info(f"Open this URL to authenticate: {self._auth_url}")
        return True

    async def stop(self) -> None:
        """Close the listener; never raises

        An exchange that is already running gets ``stop_grace_seconds`` to
        finish. After that it is cancelled and the session is marked failed.
        Callbacks arriving once stopping has begun are rejected, so no new
        exchange can start behind this call.
        """
        self._stopping = True
        try:
            await self._settle_exchange()
            await self._close_listener()
            if self._close_task is not None:
                await asyncio.wait({self._close_task}, timeout=self.stop_grace_seconds)
            # The listener drains requests it already accepted while closing
            await self._settle_exchange()
        except Exception as e:
            logger.error(f"Error while stopping authentication server: {e}")
        finally:
            self._done.set()
            logger.debug(f"Authentication server stopped: {self._session.snapshot()}")

    async def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Wait until the session reaches a terminal status or the server stops

        Args:
            timeout: Maximum time to wait in seconds (None waits forever)

        Returns:
            True if the session finished or ``stop()`` ran, False on timeout
        """
        try:
            await asyncio.wait_for(self._done.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _has_valid_credential(self) -> bool:
        try:
            return await self.token_store.has_valid_credential()
        except StorageError as e:
            logger.warning(f"Could not read stored tokens, starting a new login: {e}")
            return False

    def _open_browser(self, url: str) -> None:
        try:
            opened = self.browser_opener(url)
        except Exception as e:
            logger.debug(f"Browser opener raised: {e}")
            opened = False

        if opened:
            logger.info("Opened browser for authentication")
        else:
            logger.warning(f"Could not open browser automatically. Please open this URL manually: {url}")

    async def _handle_callback(self, result: CallbackResult) -> None:
        """Process the redirect; raises AuthServerError if the attempt failed"""
        if self._stopping:
            logger.info("Callback rejected, authentication server is shutting down")
            raise CallbackRejectedError("The authentication server was shutting down and did not process this request.")
        if self._session.status is not AuthStatus.LISTENING:
            logger.info(f"Callback rejected, session is {self._session.status.value}")
            raise CallbackRejectedError(
                f"This authentication attempt is no longer active (status: {self._session.status.value})."
            )

        if result.error:
            error = ProviderDeniedError(result.error, result.error_description)
            logger.error(str(error))
            self._fail(str(error))
            self._schedule_close()
            raise error

        if not result.code:
            error = MalformedCallbackError()
            logger.error(str(error))
            self._fail(str(error))
            self._schedule_close()
            raise error

        if not self._session.try_transition(AuthStatus.LISTENING, AuthStatus.EXCHANGE_PENDING):
            raise CallbackRejectedError(
                f"This authentication attempt is no longer active (status: {self._session.status.value})."
            )
        self._exchange_task = asyncio.ensure_future(self._exchange(result.code))
        # The browser dropping its connection must not abort the exchange
        await asyncio.shield(self._exchange_task)

        if self._exchange_error is not None:
            raise self._exchange_error

    async def _exchange(self, code: str) -> None:
        try:
            credential = await self.oauth_client.exchange_code(code, self._redirect_uri)
            await self.token_store.persist(credential)
        except asyncio.CancelledError:
            self._fail("Authentication was interrupted before the token exchange finished")
            raise
        except AuthServerError as e:
            logger.error(f"Authentication failed: {e}")
            self._exchange_error = e
            self._fail(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error during token exchange: {e}")
            self._exchange_error = ExchangeError(f"Unexpected error during token exchange: {e}")
            self._fail(str(self._exchange_error))
        else:
            self._session.transition(AuthStatus.COMPLETED)
            self._done.set()
            logger.info("Authentication completed successfully")
        finally:
            self._schedule_close()

    def _fail(self, detail: str) -> None:
        if not self._session.status.is_terminal:
            self._session.transition(AuthStatus.FAILED, error_detail=detail)
        self._done.set()

    def _schedule_close(self) -> None:
        """Close the listener from a separate task so the handler can respond first"""
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._close_listener())

    async def _settle_exchange(self) -> None:
        """Give a running exchange the grace period, then cancel it"""
        task = self._exchange_task
        if task is None or task.done():
            return
        logger.info("Waiting for in-flight token exchange before shutting down...")
        done, _ = await asyncio.wait({task}, timeout=self.stop_grace_seconds)
        if not done:
            logger.warning("Token exchange did not finish in time, abandoning it")
            task.cancel()
            await asyncio.wait({task}, timeout=self.stop_grace_seconds)

    async def _close_listener(self) -> None:
        if self._listener is not None:
            if self._listener.is_listening:
                logger.debug(f"Closing OAuth callback listener on port {self._listener.port}")
            await self._listener.close()
        self._session.set_bound_port(None)
