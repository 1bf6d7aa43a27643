"""Castaway MUD CLI entry point.

Provides subcommands for running the Socket.IO server and a couple of
operator helpers. Accepts configuration via flags and environment variables,
with .env loading.

Run `python run.py --help` for details.
"""

import argparse
import os
import signal
import sys
from textwrap import dedent

from colorama import Fore, Style
from colorama import init as _color_init
from dotenv import load_dotenv

__version__ = "0.1.0"

_color_init()
# Disable colors if output is not a real terminal (e.g., during pytest capture)
_COLOR_ENABLED = sys.stdout.isatty()


def parse_args(argv: list[str]) -> argparse.Namespace:
    description = """
    Castaway MUD Game Server

    Run the real-time Flask-SocketIO server for the shared island, or manage
    accounts and inspect the map from the command line. CLI flags take
    precedence over environment variables.
    """

    epilog = dedent(
        """
        Environment variables:
          HOST               Bind address for the web server (default: 0.0.0.0)
          PORT               Port for the web server (default: 5000)
          DATABASE_URL       SQLAlchemy database URI (default: sqlite:///instance/castaway.db)
          JWT_SECRET         Token signing key (default: SECRET_KEY)
          OPENAI_API_KEY     Enables art generation for new rooms
          SERVER_ACCESS_CODE Optional shared code required at signup/login
          VALID_SERVER_CODES Optional comma list of allowed island codes

        Examples:
          # Run the server on the default host and port
          python run.py server

          # Bind to localhost only and use a different database
          python run.py server --host 127.0.0.1 --db sqlite:///instance/dev.db

          # Create an account on island ALPHA
          python run.py create-user marooned s3cret! --realm ALPHA

          # Show the charted rooms of island ALPHA
          python run.py list-rooms --realm ALPHA
        """
    )

    parser = argparse.ArgumentParser(
        prog="Castaway",
        description=dedent(description),
        epilog=epilog,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        "--env-file",
        dest="env_file",
        help="Path to a .env file to load before processing flags",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Castaway MUD Server {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    server_parser = subparsers.add_parser(
        "server",
        help="Run the Socket.IO web server",
        formatter_class=argparse.RawTextHelpFormatter,
        description="Run the real-time Flask/Socket.IO server",
    )
    server_parser.add_argument("--host", default=None, help="Host interface to bind (default: env HOST or 0.0.0.0)")
    server_parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: env PORT or 5000)")
    server_parser.add_argument(
        "--db",
        dest="db_uri",
        default=None,
        help="Database URI (default: env DATABASE_URL or sqlite:///instance/castaway.db)",
    )
    server_parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    server_parser.set_defaults(command="server")

    user_parser = subparsers.add_parser(
        "create-user",
        help="Create a player account",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    user_parser.add_argument("handle", help="Player handle (3-20 characters)")
    user_parser.add_argument("password", help="Password (at least 6 characters)")
    user_parser.add_argument("--realm", default="DEFAULT", help="Island code (default: DEFAULT)")
    user_parser.set_defaults(command="create-user")

    rooms_parser = subparsers.add_parser(
        "list-rooms",
        help="List authored rooms",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    rooms_parser.add_argument("--realm", default=None, help="Only list rooms of this island code")
    rooms_parser.set_defaults(command="list-rooms")

    # If no subcommand provided, default to server
    if len(argv) == 0:
        argv = ["server"]

    return parser.parse_args(argv)


def _label(text: str) -> str:
    return f"{Fore.YELLOW}{text}{Style.RESET_ALL}" if _COLOR_ENABLED else text


def _value(val) -> str:
    return f"{Fore.GREEN}{val}{Style.RESET_ALL}" if _COLOR_ENABLED else str(val)


def _error(text: str) -> str:
    return f"{Fore.RED}{text}{Style.RESET_ALL}" if _COLOR_ENABLED else text


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    if getattr(args, "env_file", None):
        load_dotenv(args.env_file)
    else:
        load_dotenv()

    host = getattr(args, "host", None) or os.getenv("HOST", "0.0.0.0")
    port = int(getattr(args, "port", None) or os.getenv("PORT", "5000"))
    db_uri_cli = getattr(args, "db_uri", None)

    # DATABASE_URL must be in place before the app module is imported
    if db_uri_cli:
        os.environ["DATABASE_URL"] = db_uri_cli
    db_banner = db_uri_cli or os.getenv("DATABASE_URL") or "auto (instance/castaway.db)"

    mode = (getattr(args, "command", None) or "server").lower()

    from castaway.logging_utils import log
    from castaway.server import create_user, list_rooms, start_server

    if mode == "create-user":
        user, err = create_user(args.handle, args.password, args.realm)
        if err:
            print(_error(f"[ERROR] {err}"))
            return 1
        print(f"Created {_value(user.handle)} on island {_value(user.server_code)} (id={user.id})")
        return 0

    if mode == "list-rooms":
        rows = list_rooms(args.realm)
        if not rows:
            print("No rooms charted yet.")
            return 0
        for q, r, realm, title, symbol in rows:
            print(f"  {_label(realm):12} ({q:>3},{r:>3}) {symbol or ' '} {title}")
        return 0

    def handle_sigint(sig, frame):
        print("\n[INFO] Shutting down server...")
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_sigint)

    title = f"{Fore.CYAN}{Style.BRIGHT}Castaway Server Bootup{Style.RESET_ALL}" if _COLOR_ENABLED else "Castaway Server Bootup"
    divider = (Fore.MAGENTA + "=" * 40 + Style.RESET_ALL) if _COLOR_ENABLED else "=" * 40
    lines = [
        divider,
        f"  {title}",
        divider,
        f"  {_label('Host:'):12} {_value(host)}",
        f"  {_label('Port:'):12} {_value(port)}",
        f"  {_label('Database:'):12} {_value(db_banner)}",
        f"  {_label('Art:'):12} {_value('enabled' if os.getenv('OPENAI_API_KEY') else 'disabled')}",
        divider,
        "",
    ]
    print("\n".join(lines))
    log.info(event="startup", mode=mode, host=host, port=port, db=db_banner)
    start_server(host=host, port=port, debug=getattr(args, "debug", False))
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
