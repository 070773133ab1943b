"""Crafting-queue combo advisor."""
from .config import (
    LabeledCombo,
    UserSettings,
    default_settings,
    load_settings,
    save_settings,
)
from .catalog import Catalog, CatalogError, Modifier, Reward, get_catalog, load_catalog
from .combo_value import combo_value
from .production import produced_ids, produced_recipes
from .combo_search import suggest_combo, suggest_next_modifier, next_modifier
from .cache import SuggestionCache, FileCacheBackend, SQLiteCacheBackend, cache_key, suggest_cached
from .advisor_logging import LogLevel, AdvisorLogger, create_logger, create_string_logger

__all__ = [
    "LabeledCombo",
    "UserSettings",
    "default_settings",
    "load_settings",
    "save_settings",
    "Catalog",
    "CatalogError",
    "Modifier",
    "Reward",
    "get_catalog",
    "load_catalog",
    "combo_value",
    "produced_ids",
    "produced_recipes",
    "suggest_combo",
    "suggest_next_modifier",
    "next_modifier",
    "SuggestionCache",
    "FileCacheBackend",
    "SQLiteCacheBackend",
    "cache_key",
    "suggest_cached",
    "LogLevel",
    "AdvisorLogger",
    "create_logger",
    "create_string_logger",
]
