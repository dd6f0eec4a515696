"""
SQL helper functions registered with local providers.

Resource tables store multi-valued attributes (attachments, target groups,
instances) as JSON arrays. Collectors emit null when an attribute has no
items, so queries must never distinguish "null" from "empty" when asking
how many items a resource has.
"""

from __future__ import annotations

import json
from typing import Any


def item_count(value: Any) -> int:
    """
    Count items in a multi-valued column.

    Null, empty strings and empty containers count as zero items. JSON
    text is decoded first. A scalar that is not a container counts as a
    single item.

    Examples:
        >>> item_count(None)
        0
        >>> item_count("[]")
        0
        >>> item_count('[{"InstanceId": "i-1"}]')
        1
    """
    if value is None:
        return 0
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        if not value.strip():
            return 0
        try:
            value = json.loads(value)
        except ValueError:
            return 1
        if value is None:
            return 0
    if isinstance(value, (list, tuple, dict, set)):
        return len(value)
    return 1


# Registered as (name, number of arguments, callable)
SQL_FUNCTIONS = [
    ("item_count", 1, item_count),
]
