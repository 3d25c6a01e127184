"""
Exception types raised by the query wizard.

``InvalidQuery`` and its subclasses describe rejected client input and carry
the structured data needed to build a client-facing message. The remaining
exceptions signal programming or configuration errors.
"""

from typing import Any, Iterable, List, Optional


def _join(names: Iterable[str]) -> str:
    return ", ".join(str(name) for name in names)


class QueryWizardError(Exception):
    """Base exception for the query wizard."""


class InvalidDefinition(QueryWizardError, ValueError):
    """Raised when a filter, sort or include definition is malformed."""


class InvalidQuery(QueryWizardError):
    """Base exception for rejected client query parameters."""

    status_code = 400
    capability: Optional[str] = None

    def as_dict(self) -> dict:
        return {"message": str(self), "capability": self.capability}


class NotAllowedError(InvalidQuery):
    """Raised when the client requests names outside the allowed set."""

    label = "item(s)"

    def __init__(self, unknown: Iterable[str], allowed: Iterable[str]):
        self.unknown: List[str] = list(unknown)
        self.allowed: List[str] = list(allowed)
        super().__init__(
            f"Requested {self.label} `{_join(self.unknown)}` are not allowed. "
            f"Allowed {self.label} are `{_join(self.allowed)}`."
        )

    def as_dict(self) -> dict:
        data = super().as_dict()
        data.update({"unknown": self.unknown, "allowed": self.allowed})
        return data


class FiltersNotAllowed(NotAllowedError):
    capability = "filters"
    label = "filter(s)"


class SortsNotAllowed(NotAllowedError):
    capability = "sorts"
    label = "sort(s)"


class IncludesNotAllowed(NotAllowedError):
    capability = "includes"
    label = "include(s)"


class FieldsNotAllowed(NotAllowedError):
    capability = "fields"
    label = "field(s)"


class AppendsNotAllowed(NotAllowedError):
    capability = "appends"
    label = "append(s)"


class QueryLimitExceeded(InvalidQuery):
    """Raised when a request exceeds a configured abuse limit."""

    noun = "items"

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"The number of requested {self.noun} ({count}) exceeds "
            f"the maximum allowed ({limit})."
        )

    def as_dict(self) -> dict:
        data = super().as_dict()
        data.update({"count": self.count, "limit": self.limit})
        return data


class MaxFiltersCountExceeded(QueryLimitExceeded):
    capability = "filters"
    noun = "filters"


class MaxSortsCountExceeded(QueryLimitExceeded):
    capability = "sorts"
    noun = "sorts"


class MaxIncludesCountExceeded(QueryLimitExceeded):
    capability = "includes"
    noun = "includes"


class MaxAppendsCountExceeded(QueryLimitExceeded):
    capability = "appends"
    noun = "appends"


class DepthLimitExceeded(QueryLimitExceeded):
    """Raised when a dotted path is nested deeper than allowed."""

    kind = "Item"

    def __init__(self, name: str, depth: int, limit: int):
        self.name = name
        self.depth = depth
        self.count = depth
        self.limit = limit
        InvalidQuery.__init__(
            self,
            f"{self.kind} `{name}` has depth {depth} which exceeds "
            f"the maximum allowed depth of {limit}.",
        )

    def as_dict(self) -> dict:
        data = super().as_dict()
        data.update({"name": self.name, "depth": self.depth})
        return data


class MaxIncludeDepthExceeded(DepthLimitExceeded):
    capability = "includes"
    kind = "Include"


class MaxAppendDepthExceeded(DepthLimitExceeded):
    capability = "appends"
    kind = "Append"


class InvalidSubject(QueryWizardError, TypeError):
    """Raised when the wizard is handed an object no driver can query."""

    def __init__(self, subject: Any):
        subject_type = subject if isinstance(subject, type) else type(subject)
        self.subject_type = subject_type
        self.type_name = f"{subject_type.__module__}.{subject_type.__qualname__}"
        super().__init__(f"Subject class `{self.type_name}` is invalid.")


class InvalidFilterValue(QueryWizardError, ValueError):
    """Raised when a filter strategy cannot safely use the supplied value."""

    def __init__(self, value: Any, filter_name: Optional[str] = None):
        self.value = value
        self.filter_name = filter_name
        super().__init__(f"Filter value `{value!r}` is invalid.")


class UnsupportedCapability(QueryWizardError):
    """Raised when a driver does not implement a capability."""

    def __init__(self, driver: str, capability: str):
        self.driver = driver
        self.capability = capability
        super().__init__(
            f"Driver '{driver}' does not support '{capability}' capability"
        )


class UnknownDefinitionType(QueryWizardError):
    """Raised when no strategy is registered for a definition type tag."""

    def __init__(self, capability: str, type_name: str, driver: Optional[str] = None):
        self.capability = capability
        self.type_name = type_name
        self.driver = driver
        where = f" in driver '{driver}'" if driver else ""
        super().__init__(
            f"No {capability} strategy registered for type '{type_name}'{where}"
        )


class DriverNotFound(QueryWizardError, LookupError):
    """Raised when a driver name is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Driver '{name}' is not registered")
