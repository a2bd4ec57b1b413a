"""Command-line interface for oauth1flow."""

from __future__ import annotations

import argparse
import os
import sys

from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Parameters
    ----------
    argv : list[str], optional
        Arguments to parse (defaults to ``sys.argv[1:]``).

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="oauth1flow",
        description="OAuth 1.0a sign-in and credential management",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log every sign-in step and HTTP exchange",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--toml",
        action="store_true",
        help="Export configuration as TOML",
    )
    config_group.add_argument(
        "--sources",
        action="store_true",
        help="Show configuration file sources",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    # signin command
    signin_parser = subparsers.add_parser(
        "signin",
        help="Sign in through the system browser and save the access token",
    )
    signin_parser.add_argument(
        "--key",
        "-k",
        required=True,
        help="Application/service name the credential is stored under",
    )
    signin_parser.add_argument(
        "--no-save",
        action="store_true",
        help="Do not persist the access token",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Report whether a credential is stored",
    )
    status_parser.add_argument("--key", "-k", required=True, help="Application/service name")

    # signout command
    signout_parser = subparsers.add_parser(
        "signout",
        help="Delete a stored credential",
    )
    signout_parser.add_argument("--key", "-k", required=True, help="Application/service name")

    args = parser.parse_args(argv)

    if args.debug:
        from .log import enable_debug

        enable_debug()

    if args.command == "config":
        return handle_config(args)
    if args.command == "signin":
        return handle_signin(args)
    if args.command == "status":
        return handle_status(args)
    if args.command == "signout":
        return handle_signout(args)
    parser.print_help()
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import OAuth1FlowSettings

    if args.sources:
        return show_config_sources()

    settings = OAuth1FlowSettings()
    output = settings.to_toml() if args.toml else settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def handle_signin(args: argparse.Namespace) -> int:
    """Handle the signin command.

    Runs a loopback sign-in with the ``[oauth1]`` settings.

    Returns
    -------
    int
        ``0`` on success, ``1`` otherwise.
    """
    from .auth import SignInController
    from .exceptions import UserCanceled

    try:
        controller = SignInController.from_settings(
            app_service_name=args.key,
            save_credentials=not args.no_save,
        )
        result = controller.run_in_browser()
    except KeyboardInterrupt:
        print("\nSign-in interrupted.")
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result.success:
        who = f" as {result.auth.user_email}" if result.auth.user_email else ""
        print(f"Signed in{who}.")
        return 0
    if isinstance(result.error, UserCanceled):
        print("Sign-in cancelled.")
    else:
        print(f"Sign-in failed: {result.error}", file=sys.stderr)
    return 1


def handle_status(args: argparse.Namespace) -> int:
    """Handle the status command.

    Returns
    -------
    int
        ``0`` if a credential is stored under the key, ``1`` otherwise.
    """
    from .auth import SignInController, get_credential_store
    from .config import get_settings
    from .types import AuthenticationState

    store = get_credential_store()
    auth = AuthenticationState(consumer_key=get_settings().oauth1.consumer_key)
    if SignInController.authorize_from_store(args.key, auth, store):
        print(f"{args.key}: signed in")
        return 0
    if store.last_error is not None:
        print(f"Error: {store.last_error}", file=sys.stderr)
    else:
        print(f"{args.key}: not signed in")
    return 1


def handle_signout(args: argparse.Namespace) -> int:
    """Handle the signout command.

    Returns
    -------
    int
        ``0`` if a credential was deleted or none existed, ``1`` on failure.
    """
    from .auth import SignInController, get_credential_store

    store = get_credential_store()
    if SignInController.remove_from_store(args.key, store):
        print(f"{args.key}: signed out")
        return 0
    if store.last_error is not None:
        print(f"Error: {store.last_error}", file=sys.stderr)
        return 1
    print(f"{args.key}: no stored credential")
    return 0


def show_config_sources() -> int:
    """Show configuration file sources and their status.

    Returns
    -------
    int
        Exit code.
    """
    sources = [
        ("Built-in defaults", "", True),
        ("pyproject.toml [tool.oauth1flow]", "pyproject.toml", None),
        ("./oauth1flow.toml", "oauth1flow.toml", None),
        ("~/.config/oauth1flow/config.toml", "~/.config/oauth1flow/config.toml", None),
        ("OAUTH1FLOW_CONFIG_FILE", os.environ.get("OAUTH1FLOW_CONFIG_FILE", ""), None),
        ("Environment variables", "OAUTH1FLOW_* vars", None),
    ]

    print("Configuration Sources (in order of precedence):\n")
    print(f"{'Source':<40} {'Status':<15} {'Path'}")
    print("-" * 80)

    for name, path_str, forced_status in sources:
        if forced_status:
            status = "Active"
            path_display = ""
        elif name == "Environment variables":
            env_vars = sorted(
                k
                for k in os.environ
                if k.startswith("OAUTH1FLOW_") and k != "OAUTH1FLOW_CONFIG_FILE"
            )
            status = f"{len(env_vars)} vars" if env_vars else "No vars"
            path_display = ", ".join(env_vars[:3]) + ("..." if len(env_vars) > 3 else "")
        elif not path_str:
            status = "Not set"
            path_display = ""
        else:
            path = Path(path_str).expanduser()
            status = "Found" if path.exists() else "Not found"
            path_display = str(path)

        print(f"{name:<40} {status:<15} {path_display}")

    print("\nNote: Later sources override earlier ones.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
