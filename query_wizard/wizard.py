"""
Query wizards.

A wizard holds a subject (a queryset), the caller's configuration and the
request parameters. ``build()`` validates the request against the effective
allow-lists and applies, in order, tap callbacks, filters, sorts, includes
and field selection. The result is reused until the configuration changes.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Type, Union

from django.http import HttpRequest

from .conf import QueryWizardSettings, get_settings
from .definitions import FilterDefinition, IncludeDefinition, SortDefinition
from .drivers import BaseDriver, driver_registry
from .enums import BuildState, Capability
from .exceptions import InvalidSubject
from .normalizer import DefinitionNormalizer
from .parameters import QueryParameters, extract_requested_filter_names, merge_requested_includes
from .resolution import (
    WILDCARD,
    flatten,
    resolve_definitions,
    resolve_includes,
    resolve_names,
    select_source,
)
from .schema import ITEM, LIST, ResourceSchema, SchemaContext
from .validation import RequestValidator
from .values import Sort

logger = logging.getLogger(__name__)

FILTERS = Capability.FILTERS.value
SORTS = Capability.SORTS.value
INCLUDES = Capability.INCLUDES.value
FIELDS = Capability.FIELDS.value
APPENDS = Capability.APPENDS.value

ParametersInput = Union[QueryParameters, HttpRequest, Mapping[str, Any], None]


def _as_parameters(parameters: ParametersInput, settings: QueryWizardSettings) -> QueryParameters:
    if isinstance(parameters, QueryParameters):
        return parameters
    if isinstance(parameters, HttpRequest):
        return QueryParameters.from_request(parameters, settings=settings)
    return QueryParameters(data=parameters or {}, settings=settings)


class BaseQueryWizard:
    """
    Build state machine: ``UNBUILT`` -> ``build()`` -> ``BUILT``. Every
    configuration method moves the wizard back to ``UNBUILT`` and restores
    the subject given at construction, so rebuilding never stacks
    predicates from an earlier build.
    """

    context_mode: Optional[str] = None

    def __init__(
        self,
        subject: Any,
        parameters: ParametersInput = None,
        driver: Union[BaseDriver, str, None] = None,
        schema: Union[ResourceSchema, Type[ResourceSchema], None] = None,
        settings: Optional[QueryWizardSettings] = None,
    ):
        self.settings = settings or get_settings()
        if isinstance(driver, str):
            driver = driver_registry.get(driver)
        elif driver is None:
            driver = driver_registry.resolve(subject)
        if not driver.supports(subject):
            raise InvalidSubject(subject)
        self.driver = driver
        self.original_subject = driver.prepare_subject(subject)
        self.subject = driver.clone_subject(self.original_subject)
        self.parameters = _as_parameters(parameters, self.settings)
        self.schema = schema() if isinstance(schema, type) else schema
        self.normalizer = DefinitionNormalizer(self.settings)
        self.validator = RequestValidator(self.settings)

        self._allowed: Dict[str, Optional[List[Any]]] = {cap.value: None for cap in Capability}
        self._disallowed: Dict[str, List[str]] = {cap.value: [] for cap in Capability}
        self._defaults: Dict[str, Optional[List[Any]]] = {
            SORTS: None,
            INCLUDES: None,
            FIELDS: None,
            APPENDS: None,
        }
        self._tap_callbacks: List[Callable[[Any], Any]] = []
        self._reset_state()

    def _reset_state(self) -> None:
        self.state = BuildState.UNBUILT
        self._built_signature: Optional[tuple] = None
        self._cache: Dict[str, Any] = {}
        self._hidden_fields: List[str] = []
        self._relation_fields: Dict[str, List[str]] = {}

    # ------------------------------------------------------------------ #
    # Construction helpers
    # ------------------------------------------------------------------ #
    @classmethod
    def for_subject(cls, subject: Any, parameters: ParametersInput = None, **kwargs):
        return cls(subject, parameters, **kwargs)

    @classmethod
    def using(cls, driver: Union[BaseDriver, str], subject: Any, parameters: ParametersInput = None, **kwargs):
        return cls(subject, parameters, driver=driver, **kwargs)

    @classmethod
    def for_schema(
        cls,
        schema: Union[ResourceSchema, Type[ResourceSchema]],
        parameters: ParametersInput = None,
        mode: Optional[str] = None,
        **kwargs,
    ):
        schema = schema() if isinstance(schema, type) else schema
        wizard = cls(schema.get_model(), parameters, schema=schema, **kwargs)
        wizard.original_subject = wizard.driver.prepare_subject(schema.get_queryset(wizard))
        wizard.subject = wizard.driver.clone_subject(wizard.original_subject)
        if mode is not None:
            wizard.context_mode = mode
        return wizard

    # ------------------------------------------------------------------ #
    # Configuration (every method invalidates the build)
    # ------------------------------------------------------------------ #
    def invalidate(self) -> None:
        if self.state is BuildState.BUILT:
            self.subject = self.driver.clone_subject(self.original_subject)
            logger.debug("Invalidated build of %r", self)
        self._reset_state()

    def _set_allowed(self, capability: str, items) -> "BaseQueryWizard":
        self._allowed[capability] = flatten(items)
        self.invalidate()
        return self

    def _set_disallowed(self, capability: str, names) -> "BaseQueryWizard":
        self._disallowed[capability] = [str(name) for name in flatten(names)]
        self.invalidate()
        return self

    def _set_defaults(self, capability: str, items) -> "BaseQueryWizard":
        self._defaults[capability] = flatten(items)
        self.invalidate()
        return self

    def allowed_filters(self, *filters: Union[str, FilterDefinition, Iterable]):
        return self._set_allowed(FILTERS, filters)

    def disallowed_filters(self, *names: Union[str, Iterable[str]]):
        return self._set_disallowed(FILTERS, names)

    def allowed_sorts(self, *sorts: Union[str, SortDefinition, Iterable]):
        return self._set_allowed(SORTS, sorts)

    def disallowed_sorts(self, *names: Union[str, Iterable[str]]):
        return self._set_disallowed(SORTS, names)

    def default_sorts(self, *sorts: Union[str, Sort, Iterable]):
        return self._set_defaults(SORTS, [Sort.parse(s).token for s in flatten(sorts)])

    def allowed_includes(self, *includes: Union[str, IncludeDefinition, Iterable]):
        return self._set_allowed(INCLUDES, includes)

    def disallowed_includes(self, *names: Union[str, Iterable[str]]):
        return self._set_disallowed(INCLUDES, names)

    def default_includes(self, *names: Union[str, Iterable[str]]):
        return self._set_defaults(INCLUDES, names)

    def allowed_fields(self, *fields: Union[str, Iterable[str]]):
        return self._set_allowed(FIELDS, fields)

    def disallowed_fields(self, *names: Union[str, Iterable[str]]):
        return self._set_disallowed(FIELDS, names)

    def default_fields(self, *fields: Union[str, Iterable[str]]):
        return self._set_defaults(FIELDS, fields)

    def allowed_appends(self, *appends: Union[str, Iterable[str]]):
        return self._set_allowed(APPENDS, appends)

    def disallowed_appends(self, *names: Union[str, Iterable[str]]):
        return self._set_disallowed(APPENDS, names)

    def default_appends(self, *appends: Union[str, Iterable[str]]):
        return self._set_defaults(APPENDS, appends)

    def tap(self, callback: Callable[[Any], Any]):
        """Run ``callback(subject)`` first on every build; a non-None return replaces the subject."""
        self._tap_callbacks.append(callback)
        self.invalidate()
        return self

    def set_schema(self, schema: Union[ResourceSchema, Type[ResourceSchema], None]):
        self.schema = schema() if isinstance(schema, type) else schema
        self.invalidate()
        return self

    def set_parameters(self, parameters: ParametersInput):
        self.parameters = _as_parameters(parameters, self.settings)
        self.invalidate()
        return self

    # ------------------------------------------------------------------ #
    # Effective sets
    # ------------------------------------------------------------------ #
    def get_context(self) -> Optional[SchemaContext]:
        if "context" not in self._cache:
            context = None
            if self.schema is not None and self.context_mode:
                context = self.schema.get_context(self.context_mode, self)
            self._cache["context"] = context
        return self._cache["context"]

    def _source(self, capability: str) -> Optional[List[Any]]:
        context = self.get_context()
        schema_items = self.schema.get_allowed(capability, self) if self.schema else None
        return select_source(
            self._allowed[capability],
            schema_items,
            context.allowed(capability) if context else None,
            default=[WILDCARD] if capability == FIELDS else (),
        )

    def is_configured(self, capability: str) -> bool:
        return self._source(capability) is not None

    def _disallowed_for(self, capability: str) -> List[str]:
        context = self.get_context()
        extra = context.disallowed(capability) if context else []
        return self._disallowed[capability] + extra

    def _cached(self, key: str, factory: Callable[[], Any]) -> Any:
        if key not in self._cache:
            self._cache[key] = factory()
        return self._cache[key]

    def effective_filters(self) -> Dict[str, FilterDefinition]:
        return self._cached(
            FILTERS,
            lambda: resolve_definitions(
                self._source(FILTERS) or [],
                self.normalizer.normalize_filter,
                self._disallowed_for(FILTERS),
            ),
        )

    def effective_sorts(self) -> Dict[str, SortDefinition]:
        return self._cached(
            SORTS,
            lambda: resolve_definitions(
                self._source(SORTS) or [],
                self.normalizer.normalize_sort,
                self._disallowed_for(SORTS),
            ),
        )

    def effective_includes(self) -> Dict[str, IncludeDefinition]:
        return self._cached(
            INCLUDES,
            lambda: resolve_includes(
                self._source(INCLUDES) or [], self.normalizer, self._disallowed_for(INCLUDES)
            ),
        )

    def effective_fields(self) -> List[str]:
        return self._cached(
            FIELDS,
            lambda: resolve_names(self._source(FIELDS) or [], self._disallowed_for(FIELDS)),
        )

    def effective_appends(self) -> List[str]:
        return self._cached(
            APPENDS,
            lambda: resolve_names(self._source(APPENDS) or [], self._disallowed_for(APPENDS)),
        )

    def effective_defaults(self, capability: str) -> List[Any]:
        if self._defaults[capability]:
            return list(self._defaults[capability])
        context = self.get_context()
        if context is not None and context.defaults(capability) is not None:
            return list(context.defaults(capability))
        if self.schema is not None:
            return self.schema.get_defaults(capability, self)
        return []

    def get_resource_key(self) -> str:
        if self.schema is not None:
            return self.schema.get_type()
        return self.driver.resource_key(self.original_subject)

    # ------------------------------------------------------------------ #
    # Build
    # ------------------------------------------------------------------ #
    def build(self) -> Any:
        signature = self.parameters.signature()
        if self.state is BuildState.BUILT:
            if signature == self._built_signature:
                return self.subject
            self.invalidate()

        logger.debug("Building %r", self)
        self._apply_tap_callbacks()
        self._apply_filters()
        self._apply_sorts()
        self._apply_includes()
        self._apply_fields()
        self.state = BuildState.BUILT
        self._built_signature = signature
        return self.subject

    def to_queryset(self) -> Any:
        return self.build()

    def _apply_tap_callbacks(self) -> None:
        for callback in self._tap_callbacks:
            result = callback(self.subject)
            if result is not None:
                self.subject = result

    def requested_filter_names(self) -> List[str]:
        return self._cached(
            "requested_filters",
            lambda: extract_requested_filter_names(
                self.parameters.filters(),
                self.effective_filters().keys(),
                self.settings.limits.max_filter_depth,
            ),
        )

    def _apply_filters(self) -> None:
        effective = self.effective_filters()
        requested = self.requested_filter_names()
        if effective or self.is_configured(FILTERS):
            self.validator.validate_filters(requested, effective)
        else:
            self.validator.check_filters_count(requested)
        if not effective:
            return

        self.driver.ensure_capability(Capability.FILTERS)
        requested_index = set(requested)
        for definition in effective.values():
            value = self.resolve_filter_value(definition, requested_index)
            if value is None:
                continue
            value = definition.prepare_value(value)
            if value is None:
                continue
            self.subject = self.driver.apply_filter(self.subject, definition, value)

    def resolve_filter_value(self, definition: FilterDefinition, requested: Iterable[str]) -> Any:
        """Request value, else the filter default, else the schema default."""
        if definition.name in requested:
            value = self.parameters.get_filter_value(definition.name)
            if value is None and self.settings.apply_filter_default_on_null:
                return self._filter_default(definition)
            return value
        return self._filter_default(definition)

    def _filter_default(self, definition: FilterDefinition) -> Any:
        if definition.default is not None:
            return definition.default
        if self.schema is not None:
            return self.schema.get_default_filters(self).get(definition.name)
        return None

    def get_passthrough_filters(self) -> Dict[str, Any]:
        """Prepared values of passthrough filters, keyed by filter name."""
        requested = set(self.requested_filter_names())
        result: Dict[str, Any] = {}
        for name, definition in self.effective_filters().items():
            if not definition.is_passthrough:
                continue
            value = self.resolve_filter_value(definition, requested)
            if value is None:
                continue
            value = definition.prepare_value(value)
            if value is not None:
                result[name] = value
        return result

    def _apply_sorts(self) -> None:
        defaults = [Sort.parse(token) for token in self.effective_defaults(SORTS)]
        pairs = self.validator.validate_sorts(
            self.parameters.sorts(),
            defaults,
            self.effective_sorts(),
            self.is_configured(SORTS),
            self.normalizer,
        )
        if pairs:
            self.driver.ensure_capability(Capability.SORTS)
        for definition, sort in pairs:
            self.subject = self.driver.apply_sort(self.subject, definition, sort.direction)

    def validated_includes(self) -> List[IncludeDefinition]:
        """Default and requested includes that pass validation, in order."""
        defaults = [str(name) for name in self.effective_defaults(INCLUDES)]
        requested = merge_requested_includes(defaults, self.parameters.includes())
        return self.validator.validate_includes(
            requested, defaults, self.effective_includes(), self.is_configured(INCLUDES)
        )

    def _apply_includes(self) -> None:
        includes = self.validated_includes()
        self._relation_fields = self._validated_relation_fields()
        if includes:
            self.driver.ensure_capability(Capability.INCLUDES)
        for definition in includes:
            self.subject = self.driver.apply_include(
                self.subject, definition, self._relation_fields.get(definition.relation)
            )

    def _requested_root_fields(self) -> Optional[List[str]]:
        fields = self.parameters.fields()
        requested = fields.get(self.get_resource_key())
        if requested is None:
            requested = fields.get("")
        if requested is None:
            defaults = self.effective_defaults(FIELDS)
            requested = [name for name in defaults if "." not in name] or None
        return requested

    def validated_fields(self) -> Optional[List[str]]:
        """Root fields to select, or ``None`` for all of them."""
        root_allowed = [name for name in self.effective_fields() if "." not in name]
        return self.validator.validate_fields(
            self._requested_root_fields(),
            root_allowed,
            self.is_configured(FIELDS),
            self._disallowed_for(FIELDS),
        )

    def _apply_fields(self) -> None:
        fields = self.validated_fields()
        if not fields:
            return
        self.driver.ensure_capability(Capability.FIELDS)
        self.subject, self._hidden_fields = self.driver.apply_fields(self.subject, fields)

    def _validated_relation_fields(self) -> Dict[str, List[str]]:
        resource_key = self.get_resource_key()
        requested = {
            key: value
            for key, value in self.parameters.fields().items()
            if key not in (resource_key, "")
        }
        aliases = {
            name: definition.relation
            for name, definition in self.effective_includes().items()
            if definition.is_relationship
        }
        return self.validator.validate_relation_fields(
            requested, self.effective_fields(), aliases, self._disallowed_for(FIELDS)
        )

    # ------------------------------------------------------------------ #
    # Post-processing
    # ------------------------------------------------------------------ #
    def valid_appends(self) -> List[str]:
        return self.validator.validate_appends(
            self.parameters.appends(),
            [str(name) for name in self.effective_defaults(APPENDS)],
            self.effective_appends(),
            self.is_configured(APPENDS),
        )

    def process(self, results: Any) -> Any:
        """
        Apply appends and field masks to executed results.

        ``results`` is a model instance or an iterable of them.
        """
        from .postprocessing import PostProcessor

        self.build()
        processor = PostProcessor()
        processor.mark_annotations(results, self.driver.annotation_names(self.subject))
        if self._hidden_fields:
            processor.hide_fields(results, self._hidden_fields)
        if self._relation_fields:
            processor.apply_relation_fields(results, self._relation_fields)
        appends = self.valid_appends()
        if appends:
            self.driver.ensure_capability(Capability.APPENDS)
            results = self.driver.apply_appends(results, appends)
        return results

    # ------------------------------------------------------------------ #
    # Cloning
    # ------------------------------------------------------------------ #
    def clone(self) -> "BaseQueryWizard":
        """
        Copy the configuration onto an independent, unbuilt wizard.

        Definitions are shared (they are immutable); the subject is cloned
        from the original subject so neither wizard sees the other's build.
        """
        other = copy.copy(self)
        other._allowed = {k: (list(v) if v is not None else None) for k, v in self._allowed.items()}
        other._disallowed = {k: list(v) for k, v in self._disallowed.items()}
        other._defaults = {k: (list(v) if v is not None else None) for k, v in self._defaults.items()}
        other._tap_callbacks = list(self._tap_callbacks)
        other.original_subject = self.driver.clone_subject(self.original_subject)
        other.subject = self.driver.clone_subject(other.original_subject)
        other._reset_state()
        return other

    def __copy__(self):
        other = type(self).__new__(type(self))
        other.__dict__.update(self.__dict__)
        return other

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.get_resource_key()} {self.state.value}>"


class QueryWizard(BaseQueryWizard):
    """Wizard for list endpoints."""

    context_mode = LIST


class ItemQueryWizard(BaseQueryWizard):
    """Wizard for single-item endpoints; no filters or sorts apply."""

    context_mode = ITEM

    def _apply_filters(self) -> None:
        return None

    def _apply_sorts(self) -> None:
        return None
