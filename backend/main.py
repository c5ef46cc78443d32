"""
LocalBrowser — FastAPI application entry point.

Serves a directory tree over HTTP, answers LAN discovery probes and
keeps the firewall rules for both open while running. The same script
doubles as a small client: it can find a server on the network and
list or search its files.
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

import httpx
import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from api.clients import ClientRegistry, tracking_protocol
from api.remote import BrowseClient
from api.routes import content_router, init_routes, router
from api.websocket import EventHub, WebSocketLogHandler
from browse.index import DirectoryIndex
from config import (
    API_HOST,
    API_PORT,
    CONTENT_PATH,
    DEV_MODE,
    DISCOVERY_TIMEOUT,
    MANAGE_FIREWALL,
)
from discovery.client import discover
from discovery.responder import DiscoveryResponder
from firewall.gate import FirewallError, PrivilegeRequired, create_firewall_gate
from firewall.lifecycle import FirewallLifecycle

# --- Logging ---
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
logging.basicConfig(
    level=logging.DEBUG if DEV_MODE else logging.INFO,
    format=LOG_FORMAT,
)
logger = logging.getLogger(__name__)


def create_app(
    served_root: str,
    responder: DiscoveryResponder | None = None,
    firewall: FirewallLifecycle | None = None,
) -> FastAPI:
    """
    Build the server for ``served_root``.

    Raises ValueError when the root is not an existing directory. The
    responder and firewall lifecycle are optional so tests can run the
    HTTP layer on its own.
    """
    index = DirectoryIndex(served_root)
    client_registry = ClientRegistry()
    event_hub = EventHub()
    client_registry.on_change(event_hub.on_clients_changed)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start/stop background services."""
        logger.info("Starting LocalBrowser services...")

        log_handler = WebSocketLogHandler(event_hub, asyncio.get_running_loop())
        log_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(log_handler)

        try:
            if responder is not None:
                try:
                    await responder.start()
                except OSError as e:
                    # HTTP keeps working; peers just can't find us by broadcast
                    logger.error(f"UDP discovery unavailable on port {responder.port}: {e}")

            logger.info(f"LocalBrowser ready, serving {index.root} on {API_HOST}:{API_PORT}")
            yield
        finally:
            logger.info("Shutting down LocalBrowser services...")
            if responder is not None:
                await responder.stop()
            if firewall is not None:
                await asyncio.to_thread(firewall.close)
            logging.getLogger().removeHandler(log_handler)

    app = FastAPI(
        title="LocalBrowser",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.index = index
    app.state.clients = client_registry
    app.state.events = event_hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.debug(f"[SERVER] {request.method} {request.url}")
        return await call_next(request)

    init_routes(index, client_registry)
    app.include_router(router)
    app.include_router(content_router)

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await event_hub.subscribe(websocket)
        await websocket.send_json(
            {"event": "client_update", "data": {"clients": client_registry.clients}}
        )
        try:
            while True:
                # Keep the connection alive; we don't expect client messages
                await websocket.receive_text()
        except WebSocketDisconnect:
            await event_hub.unsubscribe(websocket)
        except Exception:
            await event_hub.unsubscribe(websocket)

    return app


# --- Interactive prompts ---

def prompt_for_directory() -> str | None:
    """Ask for the folder to share with a native dialog."""
    import tkinter as tk
    from tkinter import filedialog

    # Tkinter requires a root window, but we don't want to show it
    root = tk.Tk()
    root.withdraw()
    root.attributes("-topmost", True)

    selected = filedialog.askdirectory(title="Select the folder to share")
    root.destroy()
    return selected or None


def prompt_for_address(candidates: list[str]) -> str | None:
    """Let the user pick one of several server addresses on the console."""
    print("The server answered with several addresses:")
    for number, address in enumerate(candidates, start=1):
        print(f"  {number}) {address}")
    answer = input(f"Choose 1-{len(candidates)} (empty to cancel): ").strip()
    if not answer:
        return None
    try:
        return candidates[int(answer) - 1]
    except (ValueError, IndexError):
        print("Invalid choice.")
        return None


async def _select_address(candidates: list[str]) -> str | None:
    return await asyncio.to_thread(prompt_for_address, candidates)


# --- Commands ---

def serve(root: str | None) -> int:
    root = root or CONTENT_PATH
    if not root:
        try:
            root = prompt_for_directory()
        except ImportError as e:
            logger.error(f"No folder given and no dialog available ({e})")
            return 1
    if not root:
        logger.error("No folder selected, nothing to serve")
        return 1

    firewall = FirewallLifecycle(create_firewall_gate()) if MANAGE_FIREWALL else None

    try:
        app = create_app(root, responder=DiscoveryResponder(), firewall=firewall)
    except ValueError as e:
        logger.error(f"× Error accessing directory: {e}")
        return 1

    if firewall is not None:
        try:
            firewall.open()
        except PrivilegeRequired as e:
            logger.error(f"Firewall setup failed: {e}")
            return 1
        except FirewallError as e:
            logger.error(f"Firewall setup failed: {e}")
            firewall.close()
            return 1
        firewall.install_exit_hook()

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        http=tracking_protocol(app.state.clients),
        log_level="debug" if DEV_MODE else "info",
    )
    return 0


async def _locate(args: argparse.Namespace) -> str | None:
    if args.server:
        return args.server
    selection = await discover(select=_select_address, timeout=args.timeout)
    if selection is None:
        print("No LocalBrowser server found on the local network.")
        return None
    return selection.base_url


async def _discover_command(args: argparse.Namespace) -> int:
    selection = await discover(select=_select_address, timeout=args.timeout)
    if selection is None:
        print("No LocalBrowser server found on the local network.")
        return 1
    print(selection.base_url)
    return 0


async def _browse_command(args: argparse.Namespace) -> int:
    base_url = await _locate(args)
    if base_url is None:
        return 1

    try:
        async with BrowseClient(base_url) as client:
            if args.command == "ls":
                entries = await client.list_directory(args.path)
            else:
                entries = await client.search(args.term)
    except httpx.HTTPError as e:
        logger.error(f"Request to {base_url} failed: {e}")
        return 1

    for entry in entries:
        if entry.is_directory:
            print(f"{'<DIR>':>12}  {entry.path}/")
        else:
            print(f"{entry.size:>12}  {entry.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="localbrowser",
        description="Share a folder on the local network, or browse a shared one.",
    )
    commands = parser.add_subparsers(dest="command")

    serve_cmd = commands.add_parser("serve", help="share a folder (default)")
    serve_cmd.add_argument("root", nargs="?", help="folder to share")

    discovery_options = argparse.ArgumentParser(add_help=False)
    discovery_options.add_argument(
        "--timeout", type=float, default=DISCOVERY_TIMEOUT,
        help="seconds to wait for a discovery reply",
    )
    client_options = argparse.ArgumentParser(add_help=False, parents=[discovery_options])
    client_options.add_argument(
        "--server", help="base URL of the server; skips discovery",
    )

    commands.add_parser("discover", parents=[discovery_options], help="find a server")

    ls_cmd = commands.add_parser("ls", parents=[client_options], help="list a folder")
    ls_cmd.add_argument("path", nargs="?", default="/")

    search_cmd = commands.add_parser("search", parents=[client_options], help="search by name")
    search_cmd.add_argument("term")

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command in (None, "serve"):
        return serve(getattr(args, "root", None))
    if args.command == "discover":
        return asyncio.run(_discover_command(args))
    return asyncio.run(_browse_command(args))


if __name__ == "__main__":
    sys.exit(main())
