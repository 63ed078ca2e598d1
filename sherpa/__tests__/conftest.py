from html import escape
from warnings import filterwarnings

import pytest

from sherpa.config import unregister_config
from sherpa.context import RenderContext
from sherpa.layouts import LayoutDescriptor, LayoutResolver
from sherpa.registry import ViewRegistry


@pytest.fixture(autouse=True)
def ignore_httpx_deprecation_warnings():
    # Ignore httpx deprecation warnings until fastapi updates its internal test constructor
    filterwarnings("ignore", category=DeprecationWarning, module="httpx.*")


@pytest.fixture(autouse=True)
def clear_config_cache():
    unregister_config()


def root_layout(props, context, children):
    return (
        f"<header>{escape(str(props.get('site', '')))}</header>"
        f"<main class=\"{escape(str(props.get('theme', '')))}\">{children}</main>"
    )


def users_layout(props, context, children):
    return f"<nav>{escape(str(props.get('section', '')))}</nav>{children}"


def admin_layout(props, context, children):
    return f"<aside>{escape(str(props.get('section', '')))}</aside>{children}<footer>admin</footer>"


def home_view(props, context, children=None):
    return "<h1>Home</h1>"


def user_detail_view(props, context, children=None):
    return f"<h1>{escape(str(props['name']))}</h1>"


def user_list_view(props, context, children=None):
    return "<ul>" + "".join(f"<li>{escape(name)}</li>" for name in props.get("names", [])) + "</ul>"


def admin_dashboard_view(props, context, children=None):
    return f"<h1>Dashboard for {escape(str(context.path))}</h1>"


@pytest.fixture
def registry() -> ViewRegistry:
    return ViewRegistry(
        {
            "": home_view,
            "users/detail": user_detail_view,
            "users/list": user_list_view,
            "admin/dashboard": admin_dashboard_view,
        }
    )


@pytest.fixture
def layouts() -> list[LayoutDescriptor]:
    return [
        LayoutDescriptor(
            identifier="RootLayout",
            component=root_layout,
            config={"site": "Sherpa", "theme": "light"},
        ),
        LayoutDescriptor(
            identifier="UsersLayout",
            component=users_layout,
            scope="users",
            config={"section": "Users"},
        ),
        LayoutDescriptor(
            identifier="AdminLayout",
            component=admin_layout,
            scope="admin",
            config={"section": "Admin", "theme": "dark"},
        ),
    ]


@pytest.fixture
def resolver(registry: ViewRegistry, layouts: list[LayoutDescriptor]) -> LayoutResolver:
    return LayoutResolver(registry, layouts)


@pytest.fixture
def render_context() -> RenderContext:
    return RenderContext(url="/users/1", path="/users/1", params={"user_id": "1"})
