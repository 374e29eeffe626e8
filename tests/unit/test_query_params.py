"""Tests for the QueryParams builder."""

from urllib.parse import parse_qsl

import pytest

from capi.query import QueryParams


class TestQueryParams:
    """Builder semantics and wire rendering."""

    def test_multiple_filter_values_comma_joined(self):
        params = QueryParams().with_filter("names", "a", "b")

        assert params.to_pairs() == [("names", "a,b")]
        assert params.to_wire_query() == "names=a,b"

    def test_page_and_per_page(self):
        params = QueryParams().with_page(2).with_per_page(50)

        assert dict(parse_qsl(params.to_wire_query())) == {
            "page": "2",
            "per_page": "50",
        }

    def test_filters_accumulate_without_duplicates(self):
        params = (
            QueryParams()
            .with_filter("space_guids", "s1")
            .with_filter("space_guids", "s2", "s1")
            .with_filter("names", "web")
        )

        assert params.filter_map == {"space_guids": ["s1", "s2"], "names": ["web"]}

    def test_builder_does_not_modify_receiver(self):
        base = QueryParams().with_per_page(10)

        derived = base.with_page(3).with_filter("names", "a")

        assert base.page is None
        assert base.filters == ()
        assert derived.per_page == 10

    def test_include_and_fields(self):
        params = (
            QueryParams()
            .with_include("space")
            .with_include("space.organization", "space")
            .with_fields("space", "name", "guid")
            .with_fields("space", "name")
        )

        pairs = dict(params.to_pairs())
        assert pairs["include"] == "space,space.organization"
        assert pairs["fields[space]"] == "name"
        assert "fields[space]=name" in params.to_wire_query()

    def test_order_by_and_label_selector(self):
        params = (
            QueryParams()
            .with_order_by("-created_at")
            .with_label_selector("env=prod,tier!=db")
        )

        assert dict(params.to_pairs()) == {
            "order_by": "-created_at",
            "label_selector": "env=prod,tier!=db",
        }

    def test_empty_params_render_nothing(self):
        assert QueryParams().to_wire_query() == ""
        assert not QueryParams()

    def test_values_are_url_encoded(self):
        params = QueryParams().with_filter("names", "my app", "a&b")

        assert params.to_wire_query() == "names=my+app,a%26b"

    @pytest.mark.parametrize("value", [0, -1])
    def test_invalid_page_values(self, value):
        with pytest.raises(ValueError):
            QueryParams().with_page(value)
        with pytest.raises(ValueError):
            QueryParams().with_per_page(value)
