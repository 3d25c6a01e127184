"""
Enumerations shared across the query wizard.
"""

from enum import Enum


class Capability(str, Enum):
    FILTERS = "filters"
    SORTS = "sorts"
    INCLUDES = "includes"
    FIELDS = "fields"
    APPENDS = "appends"


class BuildState(Enum):
    UNBUILT = "unbuilt"
    BUILT = "built"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"

    @classmethod
    def parse(cls, value) -> "SortDirection":
        if isinstance(value, cls):
            return value
        return cls.DESC if str(value).lower() in ("desc", "-") else cls.ASC


class FilterOperator(str, Enum):
    EQUAL = "="
    NOT_EQUAL = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    LIKE = "LIKE"
    NOT_LIKE = "NOT LIKE"
    DYNAMIC = "dynamic"

    @property
    def is_comparison(self) -> bool:
        return self in (
            FilterOperator.GREATER_THAN,
            FilterOperator.GREATER_THAN_OR_EQUAL,
            FilterOperator.LESS_THAN,
            FilterOperator.LESS_THAN_OR_EQUAL,
        )

    @property
    def accepts_list(self) -> bool:
        return self in (FilterOperator.EQUAL, FilterOperator.NOT_EQUAL)

    @classmethod
    def parse_dynamic(cls, value):
        """
        Split a leading comparison operator off a dynamic filter value.

        Returns ``(operator, value)``, or ``(None, None)`` when the value
        cannot be used (empty operand, non-numeric comparison).
        """
        if isinstance(value, (list, tuple)):
            return cls.EQUAL, list(value)
        if not isinstance(value, str) or value == "":
            return None, None
        for prefix, operator in (
            (">=", cls.GREATER_THAN_OR_EQUAL),
            ("<=", cls.LESS_THAN_OR_EQUAL),
            ("!=", cls.NOT_EQUAL),
            ("<>", cls.NOT_EQUAL),
            (">", cls.GREATER_THAN),
            ("<", cls.LESS_THAN),
        ):
            if value.startswith(prefix):
                operand = value[len(prefix):]
                if operand == "":
                    return None, None
                if operator.is_comparison and not is_numeric(operand):
                    return None, None
                return operator, operand
        return cls.EQUAL, value


def is_numeric(value) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    try:
        float(str(value).strip())
    except (TypeError, ValueError):
        return False
    return True
