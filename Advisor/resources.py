"""Locate bundled data files from a checkout, an install, or a PyInstaller build."""
from __future__ import annotations

import sys
from pathlib import Path


def get_resource_path(relative_path: str) -> Path:
    """
    Absolute path of a bundled resource.

    Parameters
    ----------
    relative_path : str
        Path below the directory that holds the ``Advisor`` package,
        e.g. "Advisor/data/modifiers.json"

    Returns
    -------
    Path
    """
    # PyInstaller unpacks bundled files under sys._MEIPASS
    if getattr(sys, "frozen", False):
        root = Path(sys._MEIPASS)  # type: ignore[attr-defined]
    else:
        root = Path(__file__).resolve().parent.parent
    return root / relative_path
