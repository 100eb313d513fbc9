#!/usr/bin/env python3
"""
PCP Kanban command line
───────────────────────
Thin text front end over the board client.

Usage:
    pcp-kanban login USER
    pcp-kanban logout
    pcp-kanban board [--from YYYY-MM-DD] [--to YYYY-MM-DD] [--search TERM] [--sort prazo|priority]
    pcp-kanban move ORDER SECTOR [--yes]

Exit codes: 0 ok, 1 failure, 2 session expired (log in again).
"""
import argparse
import asyncio
import getpass
import logging
import sys
from datetime import date

from .app import BoardApp
from .board import matches_search
from .columns import deadline_flag, production_summary, sort_column, total_products
from .config import BoardConfig
from .errors import ApiError, AuthExpired, ConfigError
from .schema import Sector

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_AUTH = 2

FLAG_MARKS = {"overdue": "!!", "soon": "! ", "normal": "  "}


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got '{value}'")


def _confirm(prompt: str) -> bool:
    answer = input(f"{prompt} [s/N] ").strip().lower()
    return answer in ("s", "sim", "y", "yes")


# ──────────────────────────────────────────
# Commands
# ──────────────────────────────────────────


async def cmd_login(app: BoardApp, args) -> int:
    password = getpass.getpass("Senha: ")
    await app.auth.login(args.username, password)
    print("✅ Login realizado")
    return EXIT_OK


async def cmd_logout(app: BoardApp, args) -> int:
    app.auth.logout()
    print("Sessão encerrada")
    return EXIT_OK


async def cmd_board(app: BoardApp, args) -> int:
    await app.reload(args.start, args.end)
    visible = app.board.filter(lambda t: matches_search(t, args.search or ""))

    for sector in Sector:
        column = sort_column(app.board.by_sector(sector, visible), sort_by=args.sort)
        print(
            f"\n{sector.label} — {sector.description} "
            f"({len(column)} pedidos, {total_products(column)} produtos)"
        )
        for line in production_summary(column, sector):
            print(f"     {line.quantity:>3}x {line.label}")
        for task in column:
            mark = FLAG_MARKS[deadline_flag(task)]
            due = task.due_date.isoformat() if task.due_date else "sem prazo"
            print(f"  {mark} #{task.order_number:<8} {task.client:<24} {due:<10} {task.priority.value}")

    stats = app.board.stats_snapshot()
    print(
        f"\nTotal: {stats.total} | Em produção: {stats.in_progress} | "
        f"Finalizados: {stats.completed} | Alta prioridade: {stats.high_priority}"
    )
    return EXIT_OK


async def cmd_move(app: BoardApp, args) -> int:
    await app.reload(args.start, args.end)
    task = app.find_task(args.order)
    if task is None:
        print(f"❌ Pedido {args.order} não encontrado no período")
        return EXIT_FAILED

    controller = app.controller
    controller.drag_start(task.id)
    pending = controller.drop(args.sector)
    if pending is None:
        print(f"Pedido {task.order_number} já está em {task.sector.label}")
        return EXIT_OK

    if not args.yes and not _confirm(f"Mover {pending.describe()}?"):
        controller.cancel()
        print("Movimentação cancelada")
        return EXIT_OK

    outcome = await controller.confirm()
    print(("✅ " if outcome.success else "❌ ") + outcome.describe())
    if outcome.auth_expired:
        return EXIT_AUTH
    return EXIT_OK if outcome.success else EXIT_FAILED


COMMANDS = {
    "login": cmd_login,
    "logout": cmd_logout,
    "board": cmd_board,
    "move": cmd_move,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="pcp-kanban",
        description="Production board: orders moving through manufacturing sectors",
    )
    ap.add_argument("--config", default=None, help="Path to config.yaml")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store the session")
    login.add_argument("username")

    sub.add_parser("logout", help="Forget the stored session")

    sector_keys = [s.value for s in Sector]
    for name, helptext in (("board", "Show the board"), ("move", "Move an order to another sector")):
        p = sub.add_parser(name, help=helptext)
        p.add_argument("--from", dest="start", type=_parse_day, default=None)
        p.add_argument("--to", dest="end", type=_parse_day, default=None)
        if name == "board":
            p.add_argument("--search", default=None)
            p.add_argument("--sort", choices=["prazo", "priority"], default="prazo")
        else:
            p.add_argument("order", help="Order id or order number")
            p.add_argument("sector", choices=sector_keys)
            p.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")
    return ap


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [pcp-kanban] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    try:
        cfg = BoardConfig.load(args.config)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_FAILED

    app = BoardApp(cfg)
    try:
        return asyncio.run(COMMANDS[args.command](app, args))
    except AuthExpired:
        print("⛔ Sessão expirada, faça login novamente: pcp-kanban login USER", file=sys.stderr)
        return EXIT_AUTH
    except ApiError as e:
        print(f"❌ {e}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
