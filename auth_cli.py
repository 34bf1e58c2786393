"""Google OAuth authentication CLI

Runs the local authentication server until the browser flow finishes, the
stored tokens turn out to be valid already, or the user interrupts it.
Exit code 0 means usable tokens are stored (or the user cancelled), 1 means
authentication failed.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from rich.console import Console

import settings
from auth_server import AuthServer, AuthStatus
from errors import AuthServerError, format_port_range
from google_oauth import GoogleOAuthClient
from google_oauth.token_manager import TokenManager
from utils.logging_setup import setup_logging
from utils.storage import TokenStorage

logger = logging.getLogger(__name__)

# stdout stays clean for callers that capture it
console = Console(stderr=True)


class CLIAuthFlow:
    """Drive one AuthServer from the command line"""

    def __init__(
        self,
        credentials_file: Optional[str] = None,
        token_file: Optional[str] = None,
        open_browser: bool = True,
        poll_interval: float = settings.POLL_INTERVAL_SECONDS,
    ):
        self.credentials_file = credentials_file or settings.GOOGLE_OAUTH_CREDENTIALS
        self.storage = TokenStorage(token_file)
        self.open_browser = open_browser
        self.poll_interval = poll_interval
        self.interrupted: Optional[asyncio.Event] = None
        self._installed_signals: List[signal.Signals] = []

    def request_stop(self):
        """Ask a running flow to shut down, as SIGINT does"""
        if self.interrupted is not None:
            self.interrupted.set()

    def build_server(self) -> AuthServer:
        """Wire the OAuth client, token store and auth server together

        Raises:
            ConfigurationError: If the OAuth keys file is missing or invalid
        """
        oauth_client = GoogleOAuthClient.from_keys_file(self.credentials_file)
        token_manager = TokenManager(self.storage, oauth_client)
        return AuthServer(oauth_client, token_manager)

    async def run(self) -> int:
        """Run the authentication flow

        Returns:
            Process exit code
        """
        self.interrupted = asyncio.Event()
        self._install_signal_handlers()
        auth_server: Optional[AuthServer] = None

        try:
            auth_server = self.build_server()
            started = await auth_server.start(self.open_browser)

            if not started and not auth_server.completed_successfully:
                console.print(
                    "[red][ERROR][/red] Authentication failed. Could not start server or validate existing tokens. "
                    f"Check port availability ({format_port_range(auth_server.ports)}) and try again."
                )
                if auth_server.error_detail:
                    console.print(f"[dim]{auth_server.error_detail}[/dim]")
                return 1

            if auth_server.completed_successfully:
                self._print_success()
                return 0

            console.print("Authentication server started. Please complete the authentication in your browser...")
            console.print(f"[dim]If the browser did not open, visit:[/dim]\n{auth_server.auth_url}")
            return await self._wait_for_result(auth_server)

        except AuthServerError as e:
            console.print(f"[red][ERROR][/red] Authentication error: {e}")
            return 1
        except Exception as e:
            logger.debug("Unhandled authentication error", exc_info=True)
            console.print(f"[red][ERROR][/red] Authentication error: {e}")
            return 1
        finally:
            if auth_server is not None:
                await auth_server.stop()
            self._remove_signal_handlers()

    async def _wait_for_result(self, auth_server: AuthServer) -> int:
        """Poll the completion flag until success, failure or interrupt"""
        while True:
            if auth_server.completed_successfully:
                self._print_success()
                return 0

            if auth_server.status is AuthStatus.FAILED:
                console.print(f"[red][ERROR][/red] Authentication failed: {auth_server.error_detail}")
                return 1

            try:
                await asyncio.wait_for(self.interrupted.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                continue

            console.print("\n[yellow]Authentication cancelled by user[/yellow]")
            return 0

    def _print_success(self):
        console.print("[green][OK][/green] Authentication successful.")
        status = self.storage.get_status()
        if status["expires_at"]:
            console.print(f"Token expires at: {status['expires_at']} ({status['time_until_expiry']})")
        console.print(f"[dim]Tokens stored in {self.storage.token_file}[/dim]")

    def _install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except NotImplementedError:
                # Windows event loops have no add_signal_handler
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.request_stop))
            self._installed_signals.append(sig)

    def _remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in self._installed_signals:
            try:
                loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._installed_signals = []


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Authenticate with Google and store OAuth tokens locally")
    parser.add_argument(
        "--credentials-file",
        default=None,
        help="Path to the OAuth client keys JSON (default: GOOGLE_OAUTH_CREDENTIALS or ./gcp-oauth.keys.json)",
    )
    parser.add_argument(
        "--token-file",
        default=None,
        help="Where to store tokens (default: GOOGLE_CALENDAR_TOKEN_PATH or ~/.config/google-calendar-auth/tokens.json)",
    )
    parser.add_argument("--no-browser", action="store_true", help="Print the authorization URL instead of opening a browser")
    parser.add_argument("--debug", "-d", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    """Entry point for the CLI"""
    args = parse_args(argv)
    setup_logging(debug=args.debug)

    flow = CLIAuthFlow(
        credentials_file=args.credentials_file,
        token_file=args.token_file,
        open_browser=not args.no_browser,
    )

    try:
        exit_code = asyncio.run(flow.run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
