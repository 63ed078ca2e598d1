import pytest

from sherpa.layouts import LayoutResolver
from sherpa.navigation import (
    compute_divergence_index,
    format_mounted_header,
    parse_mounted_header,
    plan_navigation,
)


@pytest.mark.parametrize(
    "mounted, target, expected",
    [
        (["root", "A", "a"], ["root", "A", "b"], 2),
        (["root", "A", "a"], ["root", "B", "c"], 1),
        (["X", "a"], ["Y", "b"], 0),
        (["root", "A", "a"], ["root", "A", "a"], 3),
        ([], ["root", "a"], 0),
        (["root", "A", "B", "a"], ["root", "A", "b"], 2),
    ],
)
def test_compute_divergence_index(mounted, target, expected):
    assert compute_divergence_index(mounted, target) == expected


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("  ", None),
        ("RootLayout,UsersLayout,users/detail", ("RootLayout", "UsersLayout", "users/detail")),
        ('["RootLayout", "users/a,b"]', ("RootLayout", "users/a,b")),
        ('["RootLayout", ""]', ("RootLayout", "")),
        ("[not json", None),
        ('["RootLayout", 1]', None),
    ],
)
def test_parse_mounted_header(header, expected):
    assert parse_mounted_header(header) == expected


def test_mounted_header_is_parsed_back():
    chain = ("RootLayout", "UsersLayout", "users/detail")
    assert parse_mounted_header(format_mounted_header(chain)) == chain


def test_plan_without_mounted_chain(resolver: LayoutResolver):
    chain = resolver.resolve_chain("users/detail")

    assert plan_navigation(None, chain).mode == "full"
    assert plan_navigation((), chain).mode == "full"


def test_plan_sibling_page(resolver: LayoutResolver):
    plan = plan_navigation(
        ("RootLayout", "UsersLayout", "users/list"),
        resolver.resolve_chain("users/detail"),
    )

    assert plan.mode == "segment"
    assert plan.divergence_index == 2
    assert plan.render_from == 2
    assert plan.swap_point == "UsersLayout"


def test_plan_different_section(resolver: LayoutResolver):
    plan = plan_navigation(
        ("RootLayout", "UsersLayout", "users/list"),
        resolver.resolve_chain("admin/dashboard"),
    )

    assert plan.mode == "segment"
    assert plan.divergence_index == 1
    assert plan.render_from == 1
    assert plan.swap_point == "RootLayout"


def test_plan_same_page_rerenders_leaf(resolver: LayoutResolver):
    chain = resolver.resolve_chain("users/detail")
    plan = plan_navigation(chain.identifiers, chain)

    assert plan.mode == "segment"
    assert plan.divergence_index == 3
    assert plan.render_from == 2
    assert plan.swap_point == "UsersLayout"


def test_plan_unrelated_root(resolver: LayoutResolver):
    plan = plan_navigation(
        ("OtherRoot", "users/list"), resolver.resolve_chain("users/detail")
    )

    assert plan.mode == "full"
    assert plan.render_from is None
    assert plan.swap_point is None


def test_plan_from_stale_longer_chain(resolver: LayoutResolver):
    # Client still has a deeper section mounted than the target needs
    plan = plan_navigation(
        ("RootLayout", "UsersLayout", "users/detail"), resolver.resolve_chain("")
    )

    assert plan.mode == "segment"
    assert plan.render_from == 1
    assert plan.swap_point == "RootLayout"
