# main.py

"""Entry point for the price_watch command-line tool."""

import argparse
import asyncio
import logging
import sys

from price_watch.cli.runner import available_fetcher_ids
from price_watch.config.logging_config import setup_logging
from price_watch.config.settings import Settings

logger = logging.getLogger("price_watch.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(available_fetcher_ids())

    parser = argparse.ArgumentParser(
        prog="price_watch",
        description="Track product prices and email alerts on drops.",
        epilog=f"Available fetchers: {valid_ids}",
    )
    parser.add_argument(
        "--fetcher",
        default=None,
        choices=available_fetcher_ids(),
        help=f"Marketplace fetcher (default: {Settings.DEFAULT_FETCHER}).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Show INFO logs on the console.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Run one price-check cycle.")
    check.add_argument(
        "--delay",
        type=float,
        default=None,
        help=f"Seconds between products (default: {Settings.CHECK_ITEM_DELAY}).",
    )
    check.add_argument(
        "--json",
        action="store_true",
        default=False,
        dest="as_json",
        help="Print the cycle report as JSON.",
    )

    watch = sub.add_parser("watch", help="Run check cycles on a timer.")
    watch.add_argument(
        "--interval",
        type=float,
        default=3600.0,
        help="Seconds between cycles (default: 3600).",
    )
    watch.add_argument("--delay", type=float, default=None)

    add = sub.add_parser("add", help="Track a product by URL.")
    add.add_argument("url", help="Product page URL.")
    add.add_argument("-e", "--email", default=None, help="Alert email.")
    add.add_argument(
        "-t",
        "--target",
        type=float,
        default=None,
        help="Target price (omit to follow the predicted price).",
    )

    sub.add_parser("list", help="List tracked products.")

    show = sub.add_parser("show", help="Show a product's history.")
    show.add_argument("product_id", type=int)

    deactivate = sub.add_parser(
        "deactivate", help="Stop tracking a product or an alert.",
    )
    deactivate.add_argument("record_id", type=int)
    deactivate.add_argument(
        "--alert",
        action="store_true",
        default=False,
        help="Treat the id as an alert id.",
    )
    return parser


def _dispatch(args: argparse.Namespace) -> int:
    """Route parsed arguments to the matching runner command."""
    from price_watch.cli import runner

    if args.command == "check":
        return asyncio.run(
            runner.run_check(args.fetcher, args.delay, args.as_json)
        )
    if args.command == "watch":
        return asyncio.run(
            runner.run_watch(args.interval, args.fetcher, args.delay)
        )
    if args.command == "add":
        return runner.run_add(
            args.url, args.email, args.target, args.fetcher,
        )
    if args.command == "list":
        return runner.run_list()
    if args.command == "show":
        return runner.run_show(args.product_id)
    return runner.run_deactivate(args.record_id, args.alert)


def main() -> None:
    """Parse arguments, set up logging, and run the chosen command."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(verbose=args.verbose)
    logger.info("price_watch starting, log file: %s", log_file)

    try:
        exit_code = _dispatch(args)
    except Exception:
        logger.critical("Fatal error during %s", args.command, exc_info=True)
        raise
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
