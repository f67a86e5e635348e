"""Command-line interface for Hark.

Provides ``hark start``, ``stop``, ``status`` and ``search``. The entry
point is registered via ``pyproject.toml`` as ``hark = "hark.cli:cli"``.
"""

import asyncio
import logging
import os
import signal
import sys
import time

import click
import httpx

from hark.config import HARK_DIR, PID_FILE, SEARCH_PROVIDER, get_port

logger = logging.getLogger(__name__)

# Log file lives alongside the PID file.
_LOG_FILE = HARK_DIR / "server.log"

_MIN_PORT = 1024
_MAX_PORT = 65535

_PROVIDERS = click.Choice(["canned", "searx"], case_sensitive=False)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_port(port: int | None) -> int:
    """Return the port to use, falling back to env var / default."""
    if port is not None:
        return port
    return get_port()


def _validate_port(port: int) -> None:
    """Raise ``click.BadParameter`` if *port* is out of range."""
    if not (_MIN_PORT <= port <= _MAX_PORT):
        raise click.BadParameter(
            f"Port must be between {_MIN_PORT} and {_MAX_PORT}, got {port}."
        )


def _read_pid() -> int | None:
    """Read the PID from the PID file, or return ``None``."""
    try:
        return int(PID_FILE.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def _is_process_running(pid: int) -> bool:
    """Return ``True`` if a process with *pid* is alive."""
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def _fetch_health(port: int) -> dict | None:
    """Return the /health payload, or None when the server does not answer."""
    try:
        resp = httpx.get(f"http://127.0.0.1:{port}/health", timeout=2.0)
    except (httpx.ConnectError, httpx.TimeoutException, OSError):
        return None
    if resp.status_code != 200:
        return None
    return resp.json()


def _setup_logging_to_file() -> None:
    """Send root logger output to the server log file (daemon mode)."""
    HARK_DIR.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(_LOG_FILE)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    root.addHandler(handler)


def _build_dispatcher(provider: str, open_browser: bool):
    from hark.search.dispatcher import SearchDispatcher
    from hark.search.provider import create_search_provider

    return SearchDispatcher(create_search_provider(provider), open_browser=open_browser)


def _run_server(port: int, provider: str, open_browser: bool) -> None:
    """Start uvicorn with the Hark FastAPI app. Blocks until shutdown."""
    import uvicorn

    from hark.agent.controller import AgentController
    from hark.server.app import create_app

    agent = AgentController(dispatcher=_build_dispatcher(provider, open_browser))
    app = create_app(agent=agent)
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="info")


def _daemonize(port: int, provider: str, open_browser: bool) -> None:
    """Fork into a background daemon process (Unix only).

    The parent writes the child PID to the PID file and returns. The child
    detaches, redirects its output to the log file and runs the server.
    """
    HARK_DIR.mkdir(parents=True, exist_ok=True)

    pid = os.fork()
    if pid > 0:
        PID_FILE.write_text(str(pid))
        click.echo(click.style(f"Server started in background (PID {pid})", fg="green"))
        click.echo(f"  Logs: {_LOG_FILE}")
        click.echo(f"  PID file: {PID_FILE}")
        return

    os.setsid()

    log_fd = os.open(str(_LOG_FILE), os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    os.dup2(log_fd, sys.stdout.fileno())
    os.dup2(log_fd, sys.stderr.fileno())
    os.close(log_fd)

    devnull = os.open(os.devnull, os.O_RDONLY)
    os.dup2(devnull, sys.stdin.fileno())
    os.close(devnull)

    _setup_logging_to_file()

    try:
        _run_server(port, provider, open_browser)
    except Exception:
        logger.exception("Daemon server crashed")
        sys.exit(1)
    finally:
        try:
            PID_FILE.unlink(missing_ok=True)
        except OSError:
            pass


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
def cli() -> None:
    """Hark -- a voice-driven search agent."""


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--port", default=None, type=int, help="Server port (default: 7866)")
@click.option("--daemon", is_flag=True, help="Run as background process")
@click.option("--provider", default=SEARCH_PROVIDER, type=_PROVIDERS, help="Search provider")
@click.option("--no-browser", is_flag=True, help="Don't open search results in a browser")
def start(port: int | None, daemon: bool, provider: str, no_browser: bool) -> None:
    """Start the Hark server."""
    port = _resolve_port(port)
    _validate_port(port)

    existing_pid = _read_pid()
    if existing_pid is not None and _is_process_running(existing_pid):
        click.echo(
            click.style(
                f"Server is already running (PID {existing_pid}). "
                "Use 'hark stop' first.",
                fg="yellow",
            )
        )
        raise SystemExit(1)

    click.echo(f"Starting Hark on port {port}...")

    if daemon:
        _daemonize(port, provider, not no_browser)
        return

    HARK_DIR.mkdir(parents=True, exist_ok=True)
    PID_FILE.write_text(str(os.getpid()))
    try:
        _run_server(port, provider, not no_browser)
    except OSError as exc:
        if "address already in use" in str(exc).lower():
            click.echo(
                click.style(
                    f"Port {port} is already in use. Choose a different port with --port.",
                    fg="red",
                )
            )
            raise SystemExit(1)
        raise
    finally:
        PID_FILE.unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# stop
# ---------------------------------------------------------------------------


@cli.command()
def stop() -> None:
    """Stop the background Hark server."""
    pid = _read_pid()

    if pid is None:
        click.echo(click.style("No PID file found, server may not be running.", fg="yellow"))
        raise SystemExit(1)

    if not _is_process_running(pid):
        click.echo(
            click.style(f"Process {pid} is not running. Cleaning up stale PID file.", fg="yellow")
        )
        PID_FILE.unlink(missing_ok=True)
        return

    click.echo(f"Stopping Hark server (PID {pid})...")
    os.kill(pid, signal.SIGTERM)

    # Wait up to 5 seconds for the process to exit.
    for _ in range(50):
        if not _is_process_running(pid):
            break
        time.sleep(0.1)
    else:
        click.echo(click.style(f"Process {pid} did not exit in time, sending SIGKILL.", fg="red"))
        try:
            os.kill(pid, signal.SIGKILL)
        except OSError:
            pass

    PID_FILE.unlink(missing_ok=True)
    click.echo(click.style("Server stopped.", fg="green"))


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--port", default=None, type=int, help="Server port to check")
def status(port: int | None) -> None:
    """Show Hark server status."""
    port = _resolve_port(port)
    pid = _read_pid()

    if pid is None:
        click.echo(click.style("Server is not running (no PID file).", fg="yellow"))
        raise SystemExit(1)

    if not _is_process_running(pid):
        click.echo(click.style(f"PID file exists ({pid}) but process is not running.", fg="yellow"))
        PID_FILE.unlink(missing_ok=True)
        raise SystemExit(1)

    click.echo(f"Server process is running (PID {pid}).")

    data = _fetch_health(port)
    if data is None:
        click.echo(
            click.style(
                f"Server process is running but not responding on port {port}.", fg="yellow"
            )
        )
        return

    click.echo(click.style("Server is healthy.", fg="green"))
    click.echo(f"  Version:     {data.get('version', '?')}")
    click.echo(f"  Port:        {port}")
    click.echo(f"  Agent:       {data.get('agent_state', '?')}")
    click.echo(f"  Recognition: {'supported' if data.get('recognition_supported') else 'unsupported'}")
    click.echo(f"  TTS:         {data.get('tts_state', '?')} ({data.get('tts_provider', '?')})")
    click.echo(f"  Search:      {data.get('search_provider', '?')}")


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("text", nargs=-1, required=True)
@click.option("--provider", default=SEARCH_PROVIDER, type=_PROVIDERS, help="Search provider")
@click.option("--open/--no-open", "open_browser", default=False, help="Open the results page")
def search(text: tuple[str, ...], provider: str, open_browser: bool) -> None:
    """Interpret TEXT as a spoken command and run the search once."""
    from hark.agent.interpreter import CommandInterpreter
    from hark.errors import DispatchError

    command = " ".join(text)
    query = CommandInterpreter().interpret(command)
    if query is None:
        click.echo(click.style(f"Nothing to search for in '{command}'.", fg="yellow"))
        return

    dispatcher = _build_dispatcher(provider, open_browser)

    async def _run():
        await dispatcher.start()
        try:
            return await dispatcher.dispatch(query)
        finally:
            await dispatcher.stop()

    try:
        result = asyncio.run(_run())
    except DispatchError as exc:
        click.echo(click.style(str(exc), fg="red"))
        raise SystemExit(1)

    click.echo(result.response_text)
    for index, item in enumerate(result.results, start=1):
        click.echo(click.style(f"{index}. {item.title}", bold=True))
        click.echo(f"   {item.link}")
        click.echo(f"   {item.snippet}")
