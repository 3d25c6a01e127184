"""
Integration tests for filter application on Django querysets.
"""

import pytest
from django.db import connection
from django.db.models import Count

from query_wizard.conf import QueryWizardSettings
from query_wizard.definitions import FilterDefinition
from query_wizard.enums import FilterOperator
from query_wizard.exceptions import (
    FiltersNotAllowed,
    InvalidFilterValue,
    MaxFiltersCountExceeded,
)
from tests.helpers import titles

pytestmark = [pytest.mark.integration, pytest.mark.django_db]

ALL_POSTS = ["Async views", "Django tips", "Hidden gems", "Python tricks"]


def _settings(**overrides):
    limits = overrides.pop("limits", None)
    settings = QueryWizardSettings.from_dict(overrides)
    if limits:
        settings = settings.with_overrides(limits=limits)
    return settings


class TestBasicFilters:
    def test_exact_filter(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "draft"}}).allowed_filters("status")
        assert titles(wizard.build()) == ["Python tricks"]

    def test_exact_filter_with_list_value(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"title": "Django tips,Async views"}}).allowed_filters("title")
        assert titles(wizard.build()) == ["Async views", "Django tips"]

    def test_partial_filter_is_case_insensitive(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"title": "TIPS"}}).allowed_filters(
            FilterDefinition.partial("title")
        )
        assert titles(wizard.build()) == ["Django tips"]

    def test_partial_filter_list_values_are_ored(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"title": "tips,tricks"}}).allowed_filters(
            FilterDefinition.partial("title")
        )
        assert titles(wizard.build()) == ["Django tips", "Python tricks"]

    def test_alias_is_the_request_name(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"state": "draft"}}).allowed_filters(
            FilterDefinition.exact("status", alias="state")
        )
        assert titles(wizard.build()) == ["Python tricks"]

    def test_filter_without_request_value_is_skipped(self, blog, make_wizard):
        wizard = make_wizard().allowed_filters("status")
        assert titles(wizard.build()) == ALL_POSTS


class TestOperatorFilters:
    def test_static_operator(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"views": "100"}}).allowed_filters(
            FilterDefinition.operator("views", FilterOperator.GREATER_THAN_OR_EQUAL)
        )
        assert titles(wizard.build()) == ["Django tips", "Hidden gems"]

    def test_not_equal_excludes(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "published"}}).allowed_filters(
            FilterDefinition.operator("status", "!=")
        )
        assert titles(wizard.build()) == ["Python tricks"]

    @pytest.mark.parametrize(
        "value, expected",
        [
            (">=100", ["Django tips", "Hidden gems"]),
            ("<50", ["Python tricks"]),
            ("!=20", ["Async views", "Django tips", "Hidden gems"]),
            ("80", ["Async views"]),
            (">abc", ALL_POSTS),
            (">=", ALL_POSTS),
        ],
    )
    def test_dynamic_operator(self, blog, make_wizard, value, expected):
        wizard = make_wizard({"filter": {"views": value}}).allowed_filters(
            FilterDefinition.operator("views", FilterOperator.DYNAMIC)
        )
        assert titles(wizard.build()) == expected

    def test_list_with_comparison_operator_is_invalid(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"views": "1,2"}}).allowed_filters(
            FilterDefinition.operator("views", ">")
        )
        with pytest.raises(InvalidFilterValue):
            wizard.build()

    def test_list_with_not_equal_excludes_all(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "draft,archived"}}).allowed_filters(
            FilterDefinition.operator("status", "!=")
        )
        assert "Python tricks" not in titles(wizard.build())


class TestRelationFilters:
    def test_forward_relation(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"author.name": "Bob"}}).allowed_filters("author.name")
        assert titles(wizard.build()) == ["Async views", "Hidden gems"]

    def test_nested_request_shape(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"author": {"profile": {"city": "Oran"}}}}).allowed_filters(
            "author.profile.city"
        )
        assert titles(wizard.build()) == ["Django tips", "Python tricks"]

    def test_to_many_relation_does_not_duplicate_rows(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"comments.approved": "true"}}).allowed_filters(
            "comments.approved"
        )
        result = list(wizard.build())
        assert sorted(post.title for post in result) == ["Django tips", "Hidden gems"]

    def test_join_lookup_without_relation_constraint(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"comments.approved": "true"}}).allowed_filters(
            FilterDefinition.exact("comments.approved").with_relation_constraint(False)
        )
        queryset = wizard.build()
        assert queryset.query.distinct
        assert len(list(queryset)) == 2

    def test_many_to_many_relation(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"tags.name": "python"}}).allowed_filters("tags.name")
        assert titles(wizard.build()) == ["Django tips", "Python tricks"]

    def test_depth_limited_request_is_not_applied(self, blog, make_wizard):
        wizard = make_wizard(
            {"filter": {"author": {"profile": {"city": "Oran"}}}},
            settings=_settings(limits={"max_filter_depth": 2}),
        ).allowed_filters("author.profile.city")
        assert titles(wizard.build()) == ALL_POSTS


class TestScopeFilters:
    def test_scope_without_arguments(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"published": "true"}}).allowed_filters(
            FilterDefinition.scope("published")
        )
        assert titles(wizard.build()) == ["Async views", "Django tips", "Hidden gems"]

    def test_scope_with_argument(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"popular": "100"}}).allowed_filters(
            FilterDefinition.scope("popular")
        )
        assert titles(wizard.build()) == ["Django tips", "Hidden gems"]

    def test_scope_resolves_model_arguments(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"written_by": str(blog.ann.pk)}}).allowed_filters(
            FilterDefinition.scope("written_by")
        )
        assert titles(wizard.build()) == ["Django tips", "Python tricks"]

    def test_unknown_model_argument_is_invalid(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"written_by": "999999"}}).allowed_filters(
            FilterDefinition.scope("written_by")
        )
        with pytest.raises(InvalidFilterValue):
            wizard.build()


class TestSpecialFilters:
    def test_trashed_default_hides_deleted_rows(self, blog, make_wizard):
        wizard = make_wizard().allowed_filters(FilterDefinition.trashed().with_default("without"))
        assert "Hidden gems" not in titles(wizard.build())

    @pytest.mark.parametrize(
        "mode, expected",
        [("with", ALL_POSTS), ("only", ["Hidden gems"])],
    )
    def test_trashed_modes(self, blog, make_wizard, mode, expected):
        wizard = make_wizard({"filter": {"trashed": mode}}).allowed_filters(FilterDefinition.trashed())
        assert titles(wizard.build()) == expected

    def test_range_with_mapping(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"views": {"min": "50", "max": "200"}}}).allowed_filters(
            FilterDefinition.range("views")
        )
        assert titles(wizard.build()) == ["Async views", "Django tips"]

    def test_range_with_list(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"views": "50,200"}}).allowed_filters(
            FilterDefinition.range("views")
        )
        assert titles(wizard.build()) == ["Async views", "Django tips"]

    def test_open_range(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"views": {"min": "100"}}}).allowed_filters(
            FilterDefinition.range("views")
        )
        assert titles(wizard.build()) == ["Django tips", "Hidden gems"]

    def test_date_range(self, blog, make_wizard):
        wizard = make_wizard(
            {"filter": {"published_on": {"from": "2024-01-01", "to": "2024-02-15"}}}
        ).allowed_filters(FilterDefinition.date_range("published_on"))
        assert titles(wizard.build()) == ["Async views", "Django tips"]

    def test_date_range_with_format(self, blog, make_wizard):
        wizard = make_wizard(
            {"filter": {"published_on": {"from": "01/02/2024"}}}
        ).allowed_filters(FilterDefinition.date_range("published_on", date_format="%d/%m/%Y"))
        assert titles(wizard.build()) == ["Async views", "Python tricks"]

    def test_date_range_with_bad_format(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"published_on": {"from": "2024-02-01"}}}).allowed_filters(
            FilterDefinition.date_range("published_on", date_format="%d/%m/%Y")
        )
        with pytest.raises(InvalidFilterValue):
            wizard.build()

    def test_null_filter(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"published_on": "true"}}).allowed_filters(
            FilterDefinition.null("published_on")
        )
        assert titles(wizard.build()) == ["Hidden gems"]

    def test_null_filter_inverted(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"dated": "true"}}).allowed_filters(
            FilterDefinition.null("published_on", alias="dated", invert_logic=True)
        )
        assert titles(wizard.build()) == ["Async views", "Django tips", "Python tricks"]

    @pytest.mark.skipif(connection.vendor == "sqlite", reason="JSON containment needs a JSON1-capable backend")
    def test_json_contains(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"metadata": {"topics": ["web"]}}}).allowed_filters(
            FilterDefinition.json_contains("metadata")
        )
        assert titles(wizard.build()) == ["Django tips"]

    def test_callback_filter(self, blog, make_wizard):
        def with_min_comments(queryset, value, prop):
            return queryset.annotate(n=Count("comments")).filter(n__gte=int(value))

        wizard = make_wizard({"filter": {"discussed": "2"}}).allowed_filters(
            FilterDefinition.using("discussed", with_min_comments)
        )
        assert titles(wizard.build()) == ["Django tips"]

    def test_passthrough_filter_is_not_applied(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"search": "anything"}}).allowed_filters(
            FilterDefinition.passthrough("search")
        )
        assert titles(wizard.build()) == ALL_POSTS
        assert wizard.get_passthrough_filters() == {"search": "anything"}


class TestValuesAndDefaults:
    def test_default_value_applies_without_request(self, blog, make_wizard):
        wizard = make_wizard().allowed_filters(FilterDefinition.exact("status").with_default("draft"))
        assert titles(wizard.build()) == ["Python tricks"]

    def test_request_value_wins_over_default(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "published"}}).allowed_filters(
            FilterDefinition.exact("status").with_default("draft")
        )
        assert "Python tricks" not in titles(wizard.build())

    def test_explicit_null_skips_filter_by_default(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": ""}}).allowed_filters(
            FilterDefinition.exact("status").with_default("draft")
        )
        assert titles(wizard.build()) == ALL_POSTS

    def test_explicit_null_uses_default_when_enabled(self, blog, make_wizard):
        wizard = make_wizard(
            {"filter": {"status": ""}},
            settings=_settings(apply_filter_default_on_null=True),
        ).allowed_filters(FilterDefinition.exact("status").with_default("draft"))
        assert titles(wizard.build()) == ["Python tricks"]

    def test_prepare_value(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "DRAFT"}}).allowed_filters(
            FilterDefinition.exact("status").prepare_value_with(str.lower)
        )
        assert titles(wizard.build()) == ["Python tricks"]

    def test_prepare_returning_none_skips_filter(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "draft"}}).allowed_filters(
            FilterDefinition.exact("status").prepare_value_with(lambda value: None)
        )
        assert titles(wizard.build()) == ALL_POSTS


class TestFilterValidation:
    def test_unknown_filter_raises(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"secret": "x"}}).allowed_filters("status")
        with pytest.raises(FiltersNotAllowed):
            wizard.build()

    def test_unknown_filter_dropped_in_permissive_mode(self, blog, make_wizard):
        wizard = make_wizard(
            {"filter": {"secret": "x", "status": "draft"}},
            settings=_settings(disable_invalid_filter_query_exception=True),
        ).allowed_filters("status")
        assert titles(wizard.build()) == ["Python tricks"]

    def test_unconfigured_filters_are_inert(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "draft"}})
        assert titles(wizard.build()) == ALL_POSTS

    def test_explicit_empty_allow_list_rejects(self, blog, make_wizard):
        wizard = make_wizard({"filter": {"status": "draft"}}).allowed_filters()
        with pytest.raises(FiltersNotAllowed):
            wizard.build()

    def test_disallowed_filter_is_not_allowed(self, blog, make_wizard):
        wizard = (
            make_wizard({"filter": {"author.name": "Bob"}})
            .allowed_filters("status", "author.name")
            .disallowed_filters("author")
        )
        with pytest.raises(FiltersNotAllowed):
            wizard.build()

    def test_count_limit(self, blog, make_wizard):
        wizard = make_wizard(
            {"filter": {"status": "draft", "title": "x"}},
            settings=_settings(limits={"max_filters_count": 1}),
        ).allowed_filters("status", "title")
        with pytest.raises(MaxFiltersCountExceeded):
            wizard.build()

    def test_count_limit_is_fatal_in_permissive_mode(self, blog, make_wizard):
        wizard = make_wizard(
            {"filter": {"status": "draft", "title": "x", "views": "20"}},
            settings=_settings(
                disable_invalid_filter_query_exception=True,
                limits={"max_filters_count": 2},
            ),
        ).allowed_filters("status", "title", "views")
        with pytest.raises(MaxFiltersCountExceeded) as excinfo:
            wizard.build()
        assert excinfo.value.count == 3
        assert excinfo.value.limit == 2
