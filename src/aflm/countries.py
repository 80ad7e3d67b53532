"""
Country name -> ISO 3166-1 alpha-2 resolution.

The address lookup endpoint is keyed by ISO2 code while the form stores
the country display name chosen in the dropdown. The table ships with the
package as data/countries.yaml.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional

import yaml

_DATA_FILE = Path(__file__).parent / "data" / "countries.yaml"


@lru_cache(maxsize=1)
def load_country_table() -> Dict[str, str]:
    """Return the {display name: ISO2} table, loaded once."""
    with open(_DATA_FILE, "r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    return {str(name): str(code).upper() for name, code in data.get("countries", {}).items()}


@lru_cache(maxsize=1)
def _folded_table() -> Dict[str, str]:
    return {name.casefold(): code for name, code in load_country_table().items()}


def resolve_iso2(country_name: Optional[str]) -> Optional[str]:
    """
    Resolve a country display name to its ISO2 code.

    Matching ignores case and surrounding whitespace. Returns None for
    blank or unknown names; the caller decides how to report that.
    """
    if not country_name or not country_name.strip():
        return None
    return _folded_table().get(country_name.strip().casefold())


def country_names() -> list:
    """Display names in table order (the dropdown's option list)."""
    return list(load_country_table().keys())
