"""
Unit tests for request validation against effective sets.
"""

import logging

import pytest

from query_wizard.conf import QueryWizardSettings
from query_wizard.definitions import IncludeDefinition, SortDefinition
from query_wizard.exceptions import (
    AppendsNotAllowed,
    FieldsNotAllowed,
    FiltersNotAllowed,
    IncludesNotAllowed,
    MaxAppendDepthExceeded,
    MaxAppendsCountExceeded,
    MaxFiltersCountExceeded,
    MaxIncludeDepthExceeded,
    MaxIncludesCountExceeded,
    MaxSortsCountExceeded,
    SortsNotAllowed,
)
from query_wizard.normalizer import DefinitionNormalizer
from query_wizard.resolution import resolve_definitions, resolve_includes
from query_wizard.validation import RequestValidator, build_prefix_index, is_append_allowed
from query_wizard.values import Sort

pytestmark = pytest.mark.unit


def _validator(limits=None, **switches):
    settings = QueryWizardSettings(**switches)
    if limits:
        settings = settings.with_overrides(limits=limits)
    return RequestValidator(settings)


@pytest.fixture
def normalizer():
    return DefinitionNormalizer(QueryWizardSettings())


def _filters(normalizer, *names):
    return resolve_definitions(names, normalizer.normalize_filter)


def _sorts(normalizer, *names):
    return resolve_definitions(names, normalizer.normalize_sort)


def test_prefix_index():
    assert build_prefix_index(["a.b.c", "d"]) == {"a", "a.b"}


@pytest.mark.parametrize(
    "name, allowed, expected",
    [
        ("excerpt", ["*"], True),
        ("excerpt", ["excerpt"], True),
        ("author.display_name", ["author.*"], True),
        ("author.profile.city", ["author.*"], True),
        ("author", ["author.*"], False),
        ("comments.shout", ["author.*"], False),
    ],
)
def test_append_patterns(name, allowed, expected):
    assert is_append_allowed(name, allowed) is expected


class TestFilters:
    def test_allowed_and_ancestor_names_pass(self, normalizer):
        effective = _filters(normalizer, "status", "author.profile.city")
        valid = _validator().validate_filters(["status", "author.profile"], effective)
        assert valid == ["status", "author.profile"]

    def test_unknown_name_raises(self, normalizer):
        effective = _filters(normalizer, "status")
        with pytest.raises(FiltersNotAllowed) as excinfo:
            _validator().validate_filters(["secret"], effective)
        assert excinfo.value.unknown == ["secret"]
        assert excinfo.value.allowed == ["status"]

    def test_permissive_mode_drops_and_logs(self, normalizer, caplog):
        effective = _filters(normalizer, "status")
        validator = _validator(disable_invalid_filter_query_exception=True)
        with caplog.at_level(logging.WARNING, logger="query_wizard"):
            valid = validator.validate_filters(["secret", "status"], effective)
        assert valid == ["status"]
        assert "secret" in caplog.text

    def test_count_limit_is_fatal_in_permissive_mode(self, normalizer):
        validator = _validator(
            limits={"max_filters_count": 1}, disable_invalid_filter_query_exception=True
        )
        with pytest.raises(MaxFiltersCountExceeded) as excinfo:
            validator.validate_filters(["a", "b"], _filters(normalizer, "a", "b"))
        assert (excinfo.value.count, excinfo.value.limit) == (2, 1)

    def test_disabled_count_limit(self, normalizer):
        validator = _validator(limits={"max_filters_count": 0})
        names = [f"f{i}" for i in range(30)]
        assert validator.validate_filters(names, _filters(normalizer, *names)) == names


class TestSorts:
    def test_requested_sorts_are_paired_with_definitions(self, normalizer):
        effective = _sorts(normalizer, "title", "views")
        pairs = _validator().validate_sorts(
            [Sort.parse("-views"), Sort.parse("title")], [], effective, True, normalizer
        )
        assert [(d.name, s.token) for d, s in pairs] == [("views", "-views"), ("title", "title")]

    def test_requested_sorts_replace_defaults(self, normalizer):
        effective = _sorts(normalizer, "title", "views")
        pairs = _validator().validate_sorts(
            [Sort.parse("title")], [Sort.parse("-views")], effective, True, normalizer
        )
        assert [s.token for _, s in pairs] == ["title"]

    def test_unknown_requested_sort_raises(self, normalizer):
        with pytest.raises(SortsNotAllowed):
            _validator().validate_sorts(
                [Sort.parse("secret")], [], _sorts(normalizer, "title"), True, normalizer
            )

    def test_unknown_default_is_skipped(self, normalizer):
        pairs = _validator().validate_sorts(
            [], [Sort.parse("secret"), Sort.parse("-title")], _sorts(normalizer, "title"), True, normalizer
        )
        assert [s.token for _, s in pairs] == ["-title"]

    def test_defaults_without_allowed_sorts_apply_as_field_sorts(self, normalizer):
        pairs = _validator().validate_sorts([], [Sort.parse("-created")], {}, False, normalizer)
        assert pairs[0][0].type == "field"
        assert pairs[0][1].descending

    def test_explicit_empty_allow_list_rejects_requests(self, normalizer):
        with pytest.raises(SortsNotAllowed):
            _validator().validate_sorts([Sort.parse("title")], [], {}, True, normalizer)

    def test_unconfigured_sorts_ignore_requests(self, normalizer):
        assert _validator().validate_sorts([Sort.parse("title")], [], {}, False, normalizer) == []

    def test_sort_count_limit(self, normalizer):
        effective = _sorts(normalizer, "a", "b")
        with pytest.raises(MaxSortsCountExceeded):
            _validator(limits={"max_sorts_count": 1}).validate_sorts(
                [Sort.parse("a"), Sort.parse("b")], [], effective, True, normalizer
            )

    @pytest.mark.parametrize("configured", [True, False])
    def test_count_limit_applies_without_allowed_sorts(self, normalizer, configured):
        validator = _validator(
            limits={"max_sorts_count": 1}, disable_invalid_sort_query_exception=True
        )
        with pytest.raises(MaxSortsCountExceeded):
            validator.validate_sorts(
                [Sort.parse("a"), Sort.parse("-b")], [], {}, configured, normalizer
            )

    def test_alias_sorts_use_alias_name(self, normalizer):
        effective = resolve_definitions(
            [SortDefinition.count("comments", alias="popularity")], normalizer.normalize_sort
        )
        pairs = _validator().validate_sorts(
            [Sort.parse("-popularity")], [], effective, True, normalizer
        )
        assert pairs[0][0].property == "comments"


class TestIncludes:
    def test_defaults_and_requested(self, normalizer):
        effective = resolve_includes(["author", "comments"], normalizer)
        includes = _validator().validate_includes(
            ["author", "commentsCount"], ["author"], effective, True
        )
        assert [d.name for d in includes] == ["author", "commentsCount"]

    def test_unknown_include_raises(self, normalizer):
        effective = resolve_includes(["author"], normalizer)
        with pytest.raises(IncludesNotAllowed):
            _validator().validate_includes(["secret"], [], effective, True)

    def test_unknown_default_is_skipped(self, normalizer):
        effective = resolve_includes(["author"], normalizer)
        includes = _validator().validate_includes(["tags", "author"], ["tags"], effective, True)
        assert [d.name for d in includes] == ["author"]

    def test_depth_limit_uses_relation_path(self, normalizer):
        effective = resolve_includes(
            [IncludeDefinition.relationship("comments.author.profile", alias="deep")], normalizer
        )
        with pytest.raises(MaxIncludeDepthExceeded) as excinfo:
            _validator(limits={"max_include_depth": 2}).validate_includes(["deep"], [], effective, True)
        assert excinfo.value.depth == 3

    def test_count_limit(self, normalizer):
        effective = resolve_includes(["author", "comments"], normalizer)
        with pytest.raises(MaxIncludesCountExceeded):
            _validator(limits={"max_includes_count": 1}).validate_includes(
                ["author", "comments"], [], effective, True
            )

    def test_unconfigured_includes_ignore_requests(self):
        assert _validator().validate_includes(["author"], [], {}, False) == []

    def test_explicit_empty_allow_list_rejects_requests(self):
        with pytest.raises(IncludesNotAllowed):
            _validator().validate_includes(["author"], [], {}, True)

    @pytest.mark.parametrize("configured", [True, False])
    def test_count_limit_applies_without_allowed_includes(self, configured):
        validator = _validator(
            limits={"max_includes_count": 2}, disable_invalid_include_query_exception=True
        )
        requested = [f"relation{i}" for i in range(50)]
        with pytest.raises(MaxIncludesCountExceeded) as excinfo:
            validator.validate_includes(requested, [], {}, configured)
        assert (excinfo.value.count, excinfo.value.limit) == (50, 2)


class TestFields:
    def test_no_request_means_no_selection(self):
        assert _validator().validate_fields(None, ["title"], True) is None

    def test_wildcard_request_means_no_selection(self):
        assert _validator().validate_fields(["*"], ["title"], True) is None

    def test_wildcard_allow_list_accepts_anything(self):
        assert _validator().validate_fields(["title", "body"], ["*"], True) == ["title", "body"]

    def test_unknown_field_raises(self):
        with pytest.raises(FieldsNotAllowed):
            _validator().validate_fields(["secret"], ["title"], True)

    def test_permissive_mode_keeps_valid_fields(self):
        validator = _validator(disable_invalid_field_query_exception=True)
        assert validator.validate_fields(["secret", "title"], ["title"], True) == ["title"]

    def test_relation_fields_resolve_aliases(self):
        result = _validator().validate_relation_fields(
            {"writer": ["name"]}, ["title", "author.name"], {"writer": "author"}
        )
        assert result == {"author": ["name"]}

    def test_relation_fields_reject_unknown(self):
        with pytest.raises(FieldsNotAllowed):
            _validator().validate_relation_fields(
                {"author": ["email"]}, ["author.name"], {"author": "author"}
            )

    def test_relation_wildcard(self):
        result = _validator().validate_relation_fields(
            {"author": ["*"]}, ["author.*"], {"author": "author"}
        )
        assert result == {"author": ["*"]}


class TestAppends:
    def test_unconfigured_appends_apply_defaults_only(self):
        assert _validator().validate_appends(["excerpt"], ["word_count"], [], False) == ["word_count"]

    def test_configured_appends(self):
        result = _validator().validate_appends(
            ["author.display_name"], ["excerpt"], ["excerpt", "author.*"], True
        )
        assert result == ["excerpt", "author.display_name"]

    def test_unknown_append_raises(self):
        with pytest.raises(AppendsNotAllowed):
            _validator().validate_appends(["secret"], [], ["excerpt"], True)

    def test_disallowed_default_is_dropped(self):
        assert _validator().validate_appends([], ["secret"], ["excerpt"], True) == []

    def test_append_depth_limit(self):
        with pytest.raises(MaxAppendDepthExceeded):
            _validator(limits={"max_append_depth": 2}).validate_appends(
                ["a.b.c"], [], ["*"], True
            )

    def test_append_count_limit(self):
        with pytest.raises(MaxAppendsCountExceeded):
            _validator(limits={"max_appends_count": 1}).validate_appends(
                ["a", "b"], [], ["*"], True
            )
