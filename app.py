from __future__ import annotations

import argparse
import shlex
import sys
from typing import Callable, Dict, List, Optional

from sessionkeeper.core.assembly import SessionCore, build_core
from sessionkeeper.core.cache.cart import CartLineRef
from sessionkeeper.core.config import AppConfig, load_config
from sessionkeeper.core.config.io import read_json_file
from sessionkeeper.core.errors import ConfigError, SessionKeeperError
from sessionkeeper.core.events.models import BaseEvent
from sessionkeeper.core.logger import setup_logging
from sessionkeeper.core.session.activity import VISIBILITY_CHANGE, ActivitySignal

DEMO_PRICES: Dict[str, float] = {
    "tee-basic": 19.0,
    "hoodie": 49.0,
    "denim-jacket": 89.0,
    "cap": 15.0,
}
DEFAULT_DELIVERY_FEE = 10.0

# commands that read state without counting as user activity
PASSIVE = {"status", "whoami", "hide", "show", "quit", "exit", "help"}

HELP = """Commands:
  register NAME EMAIL PASSWORD   create an account and sign in
  login EMAIL PASSWORD           sign in
  logout                         sign out
  whoami                         show the signed-in user
  add ITEM SIZE                  add one item of SIZE to the cart
  qty ITEM SIZE N                set quantity (0 removes)
  rm ITEM SIZE                   remove a cart line
  cart                           show the cart
  order ITEM:SIZE [...]          order the selected cart lines
  orders                         show order history
  activity [SIGNAL]              simulate user activity (default: click)
  hide | show                    simulate the app going to background / foreground
  status                         session countdown
  extend                         stay signed in
  quit                           exit
"""

Out = Callable[[str], None]


def attach_notices(core: SessionCore, out: Out) -> List[Callable[[], None]]:
    def _warning(ev: BaseEvent) -> None:
        out(str(ev.payload.get("notice") or "Session expiring soon."))

    def _auth(ev: BaseEvent) -> None:
        if ev.event_type == "auth.logged_out":
            out(str(ev.payload.get("notice") or "Signed out."))
        elif ev.event_type in {"auth.login.failed", "auth.register.failed"}:
            out(str(ev.payload.get("user_message") or "Sign-in failed."))
        elif ev.event_type in {"auth.login.succeeded", "auth.registered", "auth.restored"}:
            out(core.auth.last_notice or "Signed in.")

    return [
        core.bus.subscribe("session.warning", _warning, priority=90),
        core.bus.subscribe("auth.*", _auth, priority=90),
    ]


def _selection(tokens: List[str]) -> List[CartLineRef]:
    refs = []
    for t in tokens:
        item_id, sep, size = t.partition(":")
        if not sep or not item_id or not size:
            raise ValueError(f"expected ITEM:SIZE, got {t!r}")
        refs.append(CartLineRef(item_id=item_id, size=size))
    return refs


def handle_command(core: SessionCore, text: str, *, prices: Dict[str, float], out: Out = print) -> bool:
    """
    Run one shell line. Returns False when the shell should exit.
    """
    try:
        parts = shlex.split(text)
    except ValueError as e:
        out(f"Parse error: {e}")
        return True
    if not parts:
        return True
    cmd, args = parts[0].lower(), parts[1:]
    if cmd not in PASSIVE:
        core.hub.emit(ActivitySignal.KEY_PRESS)

    uid = core.auth.active_user_id()
    try:
        if cmd in {"quit", "exit"}:
            return False
        if cmd == "help":
            out(HELP)
        elif cmd == "register" and len(args) == 3:
            core.auth.register({"name": args[0], "email": args[1], "password": args[2]})
            out("Creating account...")
        elif cmd == "login" and len(args) == 2:
            core.auth.login({"email": args[0], "password": args[1]})
            out("Signing in...")
        elif cmd == "logout":
            if not core.auth.logout():
                out("Not signed in.")
        elif cmd == "whoami":
            p = core.auth.principal
            out(f"{p.name} <{p.email}> (id {p.id})" if p is not None else f"anonymous ({core.auth.state.value})")
        elif cmd == "add" and len(args) == 2:
            if core.cart.add_item(uid, args[0], args[1]):
                out("Added to cart.")
            else:
                out("Sign in to use the cart.")
        elif cmd == "qty" and len(args) == 3:
            if not core.cart.update_quantity(uid, args[0], args[1], int(args[2])):
                out("Sign in to use the cart.")
        elif cmd == "rm" and len(args) == 2:
            if not core.cart.remove_item(uid, args[0], args[1]):
                out("Sign in to use the cart.")
        elif cmd == "cart":
            lines = core.cart.lines()
            if not lines:
                out("Cart is empty.")
            for li in lines:
                out(f"  {li.item_id} [{li.size}] x{li.quantity}")
            out(f"Items: {core.cart.count()}  Subtotal: {core.cart.amount(prices):.2f}")
        elif cmd == "order" and args:
            refs = _selection(args)
            p = core.auth.principal
            if p is None:
                out("Sign in to place an order.")
            else:
                info = {"email": p.email, "first_name": p.name}
                order = core.checkout.place_order(uid, refs, info, prices, delivery_fee=DEFAULT_DELIVERY_FEE)
                if order is not None:
                    out(f"Order {order.id} placed, total {order.total_amount:.2f}.")
        elif cmd == "orders":
            history = core.orders.orders()
            if not history:
                out("No orders yet.")
            for o in history:
                out(f"  {o.id} {o.status.value} {o.total_amount:.2f} ({o.created_at:%Y-%m-%d})")
        elif cmd == "activity":
            name = args[0] if args else ActivitySignal.CLICK.value
            core.hub.emit(name)
        elif cmd == "hide":
            core.hub.emit(VISIBILITY_CHANGE, hidden=True)
        elif cmd == "show":
            core.hub.emit(VISIBILITY_CHANGE, hidden=False)
        elif cmd == "status":
            snap = core.countdown.snapshot()
            if not snap["visible"]:
                out(f"No active session ({core.auth.state.value}).")
            else:
                hint = "  (type 'extend' to stay signed in)" if snap["offer_extend"] else ""
                out(f"Session: {snap['text']} left [{snap['urgency']}]{hint}")
        elif cmd == "extend":
            out("Session extended." if core.orchestrator.reset_timer() else "No active session.")
        else:
            out("Unknown command or wrong arguments. Type 'help'.")
    except SessionKeeperError as e:
        out(e.user_message)
    except ValueError as e:
        out(f"Invalid input: {e}")
    return True


def _load_prices(path: Optional[str]) -> Dict[str, float]:
    if not path:
        return dict(DEMO_PRICES)
    res = read_json_file(path)
    if not res.ok:
        raise ConfigError("Catalog file could not be read.", path=path, error=res.error)
    try:
        return {str(k): float(v) for k, v in res.data.items()}
    except (TypeError, ValueError) as e:
        raise ConfigError("Catalog prices must be numbers.", path=path) from e


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="sessionkeeper: inactivity sign-out with per-user cart and orders")
    ap.add_argument("--config", default=None, help="JSON config file (defaults apply when missing).")
    ap.add_argument("--storage", default=None, help="Override the JSON storage file path.")
    ap.add_argument("--timeout-ms", type=int, default=None, help="Inactivity timeout in milliseconds.")
    ap.add_argument("--warning-ms", type=int, default=None, help="Warning lead time in milliseconds.")
    ap.add_argument("--no-warning", action="store_true", help="Expire without a prior warning.")
    ap.add_argument("--catalog", default=None, help="JSON object of item id -> price.")
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config)
        session_overrides = {}
        if args.timeout_ms is not None:
            session_overrides["timeout_ms"] = args.timeout_ms
        if args.warning_ms is not None:
            session_overrides["warning_ms"] = args.warning_ms
        if args.no_warning:
            session_overrides["show_warning"] = False
        if session_overrides:
            cfg = AppConfig.model_validate({**cfg.model_dump(), "session": {**cfg.session.model_dump(), **session_overrides}})
        if args.storage:
            cfg.storage.path = args.storage
        prices = _load_prices(args.catalog)
    except ConfigError as e:
        print(f"{e.user_message} {e.context}", file=sys.stderr)
        return 2

    logger = setup_logging(cfg.logging.log_dir, cfg.logging.level)
    core = build_core(cfg, logger=logger)
    attach_notices(core, print)
    restored = core.auth.initialize_from_persisted_principal()
    if restored is None:
        print("Not signed in. Type 'help' for commands.")
    logger.info("sessionkeeper CLI ready (timeout=%sms warning=%sms)", cfg.session.timeout_ms, cfg.session.warning_ms)

    try:
        while True:
            try:
                text = input("> ").strip()
            except EOFError:
                print()
                break
            except KeyboardInterrupt:
                print()
                break
            if not handle_command(core, text, prices=prices):
                break
    finally:
        core.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
