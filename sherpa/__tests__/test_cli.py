import sys
from json import loads as json_loads
from pathlib import Path

import pytest
from click.testing import CliRunner

from sherpa.cli import main


@pytest.fixture
def view_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    package_root = tmp_path / "cli_fixture_app"
    views = package_root / "views"
    (views / "admin").mkdir(parents=True)

    (package_root / "__init__.py").write_text("")
    (views / "__init__.py").write_text("")
    (views / "admin" / "__init__.py").write_text("")
    (views / "admin" / "dashboard.py").write_text(
        "def view(props, context, children=None):\n    return '<h1>Admin</h1>'\n"
    )

    monkeypatch.syspath_prepend(str(tmp_path))
    yield views

    for module_name in list(sys.modules):
        if module_name.startswith("cli_fixture_app"):
            del sys.modules[module_name]


def test_build_registry(view_root: Path, tmp_path: Path):
    output = tmp_path / "build" / "registry.json"

    result = CliRunner().invoke(
        main,
        [
            "build-registry",
            str(view_root),
            "--package",
            "cli_fixture_app.views",
            "--output",
            str(output),
        ],
    )

    assert result.exit_code == 0, result.output
    assert json_loads(output.read_text()) == {
        "views": {"admin/dashboard": "cli_fixture_app.views.admin.dashboard:view"}
    }


def test_build_registry_requires_package(view_root: Path):
    result = CliRunner().invoke(main, ["build-registry", str(view_root)])

    assert result.exit_code != 0
    assert "--package" in result.output
