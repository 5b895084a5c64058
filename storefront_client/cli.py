"""Command-line front end for the storefront client.

    python -m storefront_client login alice@example.com
    python -m storefront_client products --search shoes
    python -m storefront_client payment PAY-1 --watch
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import sys
import threading
from typing import Any, List, Optional

from .app import StorefrontApp
from .client_config import get_config, load_config, save_config, default_config_path
from .error_handling import (
    AuthError,
    RequestError,
    Result,
    handle_error_action,
    map_error_to_action,
)
from .payment_poller import PollOutcome
from .payment_status import is_payment_successful


def _print(data: Any) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _report(error: Exception) -> int:
    if isinstance(error, AuthError):
        print(f"session expired or missing ({error.reason.value}); run `login` again", file=sys.stderr)
        return 1
    if isinstance(error, RequestError):
        handle_error_action(
            map_error_to_action(error.kind),
            refresh=lambda: print("access token rejected; run `login` again", file=sys.stderr),
            notify=lambda msg: print(f"error: {msg}", file=sys.stderr),
            message=error.message,
        )
        return 1
    raise error


def _emit(result: Result[Any]) -> int:
    if not result.ok:
        return _report(result.error)
    _print(result.value)
    return 0


def cmd_login(app: StorefrontApp, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    try:
        user = app.login(args.email, password)
    except RequestError as exc:
        return _report(exc)
    _print({"user": user})
    return 0


def cmd_logout(app: StorefrontApp, args: argparse.Namespace) -> int:
    app.logout()
    return 0


def cmd_whoami(app: StorefrontApp, args: argparse.Namespace) -> int:
    return _emit(app.api.get_profile())


def cmd_products(app: StorefrontApp, args: argparse.Namespace) -> int:
    if args.id:
        return _emit(app.api.get_product(args.id))
    return _emit(app.api.list_products(page=args.page, limit=args.limit, search=args.search))


def cmd_payment(app: StorefrontApp, args: argparse.Namespace) -> int:
    result = app.api.get_payment(args.id)
    if not result.ok:
        return _report(result.error)
    payment = result.value if isinstance(result.value, dict) else {}
    if not args.watch:
        _print(payment)
        return 0

    done = threading.Event()
    app.bus.on("paymentStatus", lambda event: print(json.dumps(event, default=str)))
    app.bus.on(
        "paymentStatus",
        lambda event: done.set() if event.get("kind") in ("terminal", "exhausted") else None,
    )
    handle = app.watch_payment(
        args.id,
        created_at=payment.get("created_at"),
        initial_status=payment.get("status"),
    )
    if handle.outcome is PollOutcome.WINDOW_EXPIRED:
        print(f"not polling: {handle.outcome.value}", file=sys.stderr)
        return 1
    try:
        while not done.wait(0.5):
            pass
    except KeyboardInterrupt:
        handle.cancel()
        return 1
    return 0 if is_payment_successful(handle.state.last_status) else 1


def cmd_config(app: Optional[StorefrontApp], args: argparse.Namespace) -> int:
    path = args.config or default_config_path()
    cfg = load_config(path)
    if args.base_url:
        cfg["base_url"] = args.base_url
    if args.token_path:
        cfg["token_path"] = args.token_path
    if args.base_url or args.token_path:
        save_config(path, cfg)
    _print(cfg)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storefront", description="Storefront API client")
    parser.add_argument("--config", help="path to storefront-client.json")
    parser.add_argument("--log-level", help="logging level (default from config)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("login", help="sign in with email and password")
    p.add_argument("email")
    p.add_argument("--password")
    p.set_defaults(func=cmd_login)

    p = sub.add_parser("logout", help="forget the stored session")
    p.set_defaults(func=cmd_logout)

    p = sub.add_parser("whoami", help="show the signed-in profile")
    p.set_defaults(func=cmd_whoami)

    p = sub.add_parser("products", help="list products or show one")
    p.add_argument("id", nargs="?")
    p.add_argument("--search")
    p.add_argument("--page", type=int)
    p.add_argument("--limit", type=int)
    p.set_defaults(func=cmd_products)

    p = sub.add_parser("payment", help="show a payment, optionally polling its status")
    p.add_argument("id")
    p.add_argument("--watch", action="store_true")
    p.set_defaults(func=cmd_payment)

    p = sub.add_parser("config", help="show or update the config file")
    p.add_argument("--base-url")
    p.add_argument("--token-path")
    p.set_defaults(func=cmd_config, needs_app=False)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = get_config(args.config)
    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not getattr(args, "needs_app", True):
        return args.func(None, args)

    app = StorefrontApp(config)
    app.startup_flow()
    try:
        return args.func(app, args)
    finally:
        app.teardown()
        app.gateway.close()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
