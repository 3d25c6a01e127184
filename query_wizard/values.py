"""
Value objects parsed from client requests.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .enums import SortDirection


@dataclass(frozen=True)
class Sort:
    """A requested sort: a field plus a direction."""

    field: str
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def parse(
        cls, token: Union[str, "Sort"], direction: Optional[Union[str, SortDirection]] = None
    ) -> "Sort":
        if isinstance(token, Sort):
            return token
        text = str(token).strip()
        if direction is not None:
            return cls(text.lstrip("-"), SortDirection.parse(direction))
        if text.startswith("-"):
            return cls(text[1:], SortDirection.DESC)
        return cls(text, SortDirection.ASC)

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESC

    @property
    def token(self) -> str:
        return f"-{self.field}" if self.descending else self.field

    def __str__(self) -> str:
        return self.token
