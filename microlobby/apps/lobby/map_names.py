"""
map_names.py — Canonical Map Names
===================================
Maps a raw map title (which usually carries a version suffix and
decorations) to the short name used as the stats lookup key.

    >>> normalize_map_name("Legion TD 10.2d")
    MapLookup(map_name='Legion TD', stats_available=True)
    >>> normalize_map_name("My Custom Map v1.3")
    MapLookup(map_name='My Custom Map', stats_available=False)
"""

import re
from typing import NamedTuple


class MapLookup(NamedTuple):
    map_name: str
    stats_available: bool


# Order matters: first match wins.
KNOWN_MAPS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"HLW", re.I), "HLW"),
    (re.compile(r"pyro\s*td\s*league", re.I), "Pyro TD"),
    (re.compile(r"vampirism\s*fire", re.I), "Vampirism Fire"),
    (re.compile(r"footmen.*vs.*grunts", re.I), "Footmen Vs Grunts"),
    (re.compile(r"Broken.*Alliances", re.I), "Broken Alliances"),
    (re.compile(r"Reforged.*Footmen", re.I), "Reforged Footmen Frenzy"),
    (re.compile(r"Direct.*Strike.*Reforged", re.I), "Direct Strike"),
    (re.compile(r"WW3.*Diplomacy", re.I), "WW3 Diplomacy"),
    (re.compile(r"Legion.*TD", re.I), "Legion TD"),
    (re.compile(r"Tree.*Tag", re.I), "Tree Tag"),
    (re.compile(r"Battleships.*Crossfire", re.I), "Battleships Crossfire"),
]

VERSION_SUFFIX = re.compile(r"\s*v?\.?(\d+\.)?(\*|\d+)\w*\s*$", re.I)
PATH_SEPARATORS = re.compile(r"[\\/]")


def normalize_map_name(raw_name: str) -> MapLookup:
    for pattern, canonical in KNOWN_MAPS:
        if pattern.search(raw_name):
            return MapLookup(canonical, True)
    return MapLookup(VERSION_SUFFIX.sub("", raw_name.strip()), False)


def clean_map_path(path: str) -> str:
    """Filename component of a map path ("Maps/Download/x.w3x" → "x.w3x")."""
    return PATH_SEPARATORS.split(path)[-1]
