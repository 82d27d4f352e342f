"""Property-based tests for query parameter translation invariants."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from tours_api.core.config import settings
from tours_api.core.exceptions import ValidationError
from tours_api.core.query_features import COMPARISON_OPERATORS, RESERVED_PARAMS, SortKey
from tours_api.schemas.tour import TOUR_FIELDS
from tours_api.services.tour_service import TOUR_REGISTRY, TourService, top_cheap_params

SORTABLE = [name for name in TOUR_FIELDS if TOUR_REGISTRY.is_filterable(name)]

# Strategies for generating query parameters
positive_ints = st.integers(min_value=1, max_value=10**6)
non_positive_ints = st.integers(max_value=0)
sort_keys = st.lists(st.tuples(st.sampled_from(SORTABLE), st.booleans()), min_size=1, max_size=6)
projected_fields = st.lists(st.sampled_from(list(TOUR_FIELDS)), min_size=1, max_size=8)
operators = st.text(alphabet="abcdefghijklmnopqrstuvwxyz", min_size=1, max_size=8).filter(
    lambda op: op not in COMPARISON_OPERATORS
)


@given(page=positive_ints, limit=positive_ints)
def test_limit_never_exceeds_maximum(page, limit):
    """The page size is clamped and the offset follows (page - 1) * limit."""
    directives = TourService.build_directives({"page": str(page), "limit": str(limit)})

    assert 1 <= directives.limit <= settings.max_page_size
    assert directives.limit == min(limit, settings.max_page_size)
    assert directives.skip == (page - 1) * directives.limit


@given(page=non_positive_ints)
def test_non_positive_page_is_rejected(page):
    with pytest.raises(ValidationError):
        TourService.build_directives({"page": str(page)})


@given(keys=sort_keys)
def test_sort_keys_preserve_order_and_direction(keys):
    raw = ",".join(("-" if descending else "") + name for name, descending in keys)

    directives = TourService.build_directives({"sort": raw})

    assert directives.sort == tuple(SortKey(name, descending) for name, descending in keys)


@given(fields=projected_fields)
def test_inclusion_projection_starts_with_id(fields):
    directives = TourService.build_directives({"fields": ",".join(fields)})
    visible = TourService.visible_fields(directives)

    assert visible[0] == "id"
    assert len(visible) == len(set(visible))
    assert set(visible) == set(fields) | {"id"}


@given(fields=projected_fields)
def test_exclusion_projection_never_shows_excluded_or_hidden(fields):
    directives = TourService.build_directives({"fields": ",".join("-" + name for name in fields)})
    visible = set(TourService.visible_fields(directives))

    assert "id" in visible
    assert not visible & (set(fields) - {"id"})
    assert "version" not in visible


@given(operator=operators)
def test_unknown_operators_are_rejected(operator):
    with pytest.raises(ValidationError):
        TourService.build_directives({f"price[{operator}]": "100"})


@given(overrides=st.dictionaries(st.sampled_from(sorted(RESERVED_PARAMS)), st.text(max_size=20)))
def test_top_cheap_controls_cannot_be_overridden(overrides):
    directives = TourService.build_directives(top_cheap_params(overrides))

    assert directives.limit == 5
    assert directives.page == 1
    assert directives.sort == (SortKey("ratingsAverage", descending=True), SortKey("price"))
    assert directives.filters == ()
