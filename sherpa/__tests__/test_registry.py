import sys
from json import loads as json_loads
from pathlib import Path

import pytest

from sherpa.exceptions import DuplicateViewError, ViewNotFoundError
from sherpa.registry import (
    ViewEntry,
    ViewRegistry,
    build_registry_manifest,
    import_reference,
    logical_path_for_module,
    normalize_view_path,
    write_registry_manifest,
)


def view_a(props, context, children=None):
    return "a"


def view_b(props, context, children=None):
    return "b"


@pytest.mark.parametrize(
    "raw_path, expected",
    [
        ("users/detail", "users/detail"),
        ("/users/detail/", "users/detail"),
        ("//users//detail", "users/detail"),
        ("/", ""),
        ("", ""),
    ],
)
def test_normalize_view_path(raw_path: str, expected: str):
    assert normalize_view_path(raw_path) == expected


def test_resolve_registered_view():
    registry = ViewRegistry({"/users/detail": view_a, "users/list": view_b})

    assert registry.resolve("users/detail") is view_a
    assert registry.resolve("/users/list/") is view_b
    assert "users/detail" in registry
    assert "users/missing" not in registry
    assert len(registry) == 2


def test_resolve_unknown_view():
    registry = ViewRegistry({"users/detail": view_a})

    with pytest.raises(ViewNotFoundError) as exc_info:
        registry.resolve("users/missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.view_path == "users/missing"
    assert "users/missing" in exc_info.value.detail


def test_duplicate_paths_after_normalization():
    with pytest.raises(DuplicateViewError, match="users/detail"):
        ViewRegistry(
            [
                ViewEntry(path="users/detail", component=view_a),
                ViewEntry(path="/users/detail/", component=view_b),
            ]
        )


def test_registry_is_not_mutable():
    registry = ViewRegistry({"users/detail": view_a})

    with pytest.raises(TypeError):
        registry._views["users/other"] = view_b  # type: ignore


@pytest.mark.parametrize(
    "relative_path, expected",
    [
        (Path("users/user_detail.py"), "users/user-detail"),
        (Path("users/index.py"), "users"),
        (Path("index.py"), ""),
        (Path("AdminPanel/Overview.py"), "admin-panel/overview"),
    ],
)
def test_logical_path_for_module(relative_path: Path, expected: str):
    assert logical_path_for_module(relative_path) == expected


def test_import_reference_invalid():
    with pytest.raises(ValueError, match="expected 'module:attribute'"):
        import_reference("sherpa.registry")

    with pytest.raises(ValueError, match="has no component"):
        import_reference("sherpa.registry:missing_component")


@pytest.fixture
def view_package(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    package_root = tmp_path / "registry_fixture_app"
    views = package_root / "views"
    (views / "users").mkdir(parents=True)

    (package_root / "__init__.py").write_text("")
    (views / "__init__.py").write_text("")
    (views / "users" / "__init__.py").write_text("")
    (views / "index.py").write_text(
        "def view(props, context, children=None):\n    return '<h1>Home</h1>'\n"
    )
    (views / "users" / "user_detail.py").write_text(
        "def view(props, context, children=None):\n    return '<h1>User</h1>'\n"
    )
    (views / "users" / "helpers.py").write_text("VALUE = 1\n")
    (views / "_private.py").write_text("def view(props, context, children=None):\n    return ''\n")

    monkeypatch.syspath_prepend(str(tmp_path))
    yield views

    for module_name in list(sys.modules):
        if module_name.startswith("registry_fixture_app"):
            del sys.modules[module_name]


def test_build_registry_manifest(view_package: Path, tmp_path: Path):
    views = build_registry_manifest(view_package, "registry_fixture_app.views")

    assert views == {
        "": "registry_fixture_app.views.index:view",
        "users/user-detail": "registry_fixture_app.views.users.user_detail:view",
    }

    manifest_path = tmp_path / "build" / "registry.json"
    write_registry_manifest(views, manifest_path)
    assert json_loads(manifest_path.read_text()) == {"views": views}

    registry = ViewRegistry.from_manifest(manifest_path)
    assert registry.paths == ["", "users/user-detail"]
    assert registry.resolve("users/user-detail")({}, None) == "<h1>User</h1>"
