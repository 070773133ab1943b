#!/usr/bin/env python
"""CLI entry point for the combo advisor."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .advisor_logging import LogLevel, create_logger
from .cache import FileCacheBackend, SuggestionCache, suggest_cached
from .catalog import CatalogError, get_catalog
from .combo_search import DEFAULT_TIME_BUDGET_MS, next_modifier
from .config import QUEUE_LENGTH, SettingsError, load_settings


def parse_stash(items: List[str]) -> Dict[int, int]:
    """Parse ``ID=COUNT`` pairs; a bare ``ID`` counts as one owned modifier."""
    stash: Dict[int, int] = {}
    for item in items:
        raw_id, _, raw_count = item.partition("=")
        try:
            modifier_id = int(raw_id)
            count = int(raw_count) if raw_count else 1
        except ValueError:
            raise argparse.ArgumentTypeError(f"Invalid stash entry {item!r} (expected ID=COUNT)") from None
        if count < 0:
            raise argparse.ArgumentTypeError(f"Negative count in stash entry {item!r}")
        stash[modifier_id] = stash.get(modifier_id, 0) + count
    return stash


def format_combo(combo: List[int], show_tiers: bool) -> str:
    catalog = get_catalog()
    parts = []
    for modifier_id in combo:
        label = f"{modifier_id} {catalog.name_of(modifier_id)}"
        if show_tiers:
            label += f" (T{catalog.tier_of(modifier_id)})"
        parts.append(label)
    return ", ".join(parts)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Suggest the next modifier to add to the crafting queue."
    )
    parser.add_argument(
        "-s",
        "--settings",
        type=Path,
        default=None,
        help="Path to user settings YAML (default: Advisor/DefaultUserSettings.yaml)",
    )
    parser.add_argument(
        "--stash",
        nargs="*",
        default=[],
        metavar="ID=COUNT",
        help="Owned modifiers, e.g. --stash 0=2 5=1",
    )
    parser.add_argument(
        "--queue",
        nargs="*",
        type=int,
        default=[],
        metavar="ID",
        help=f"Modifiers already in the queue, in order (at most {QUEUE_LENGTH})",
    )
    parser.add_argument(
        "--time-budget",
        type=float,
        default=DEFAULT_TIME_BUDGET_MS,
        help=f"Search time budget in milliseconds (default: {DEFAULT_TIME_BUDGET_MS})",
    )
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Persist suggestions in this directory",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="MINIMAL",
        choices=[level.name for level in LogLevel],
        help="Logging verbosity (default: MINIMAL)",
    )

    args = parser.parse_args(argv)

    try:
        stash = parse_stash(args.stash)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))

    try:
        catalog = get_catalog()
        settings = load_settings(args.settings)
    except (CatalogError, SettingsError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    unknown_roster = sorted({m for combo in settings.roster_combos() for m in combo if m not in catalog})
    if unknown_roster:
        print(f"error: settings reference unknown modifier ids: {unknown_roster}", file=sys.stderr)
        return 2

    unknown = sorted({m for m in list(stash) + list(args.queue) if m not in catalog})
    if unknown:
        parser.error(f"unknown modifier ids: {unknown}")

    logger = create_logger(level=args.log_level, output=sys.stderr, name_of=catalog.name_of)
    cache = SuggestionCache(FileCacheBackend(args.cache_dir) if args.cache_dir else None)
    cache.load()

    combo = suggest_cached(
        cache,
        settings,
        stash,
        args.queue,
        catalog=catalog,
        time_budget_ms=args.time_budget,
        logger=logger,
    )
    cache.save_if_modified()

    if combo is None:
        print("No suggestion.")
        return 1

    print(f"Suggested combo: {format_combo(combo, settings.show_tiers)}")
    print(f"Next modifier: {format_combo([next_modifier(combo, args.queue)], settings.show_tiers)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
