from pathlib import Path

from click import Path as ClickPath, argument, group, option, secho
from rich.table import Table

from sherpa.console import CONSOLE
from sherpa.logging import log_time_duration
from sherpa.registry import build_registry_manifest, write_registry_manifest


def handle_build_registry(*, view_root: Path, package: str, output: Path):
    """
    Collect every view module under `view_root` into the registry manifest the
    server loads at startup. Projects usually call this from their own build step:

    ```python
    handle_build_registry(
        view_root=Path("my_website/views"),
        package="my_website.views",
        output=Path("my_website/build/registry.json"),
    )
    ```

    :param view_root: Directory with the view modules
    :param package: Dotted import path of `view_root`
    :param output: Where the manifest is written

    """
    with log_time_duration("Build view registry"):
        views = build_registry_manifest(view_root, package)
    write_registry_manifest(views, output)

    table = Table(title=f"Registered views ({len(views)})")
    table.add_column("View path")
    table.add_column("Component")
    for view_path, reference in sorted(views.items()):
        table.add_row(f"/{view_path}", reference)
    CONSOLE.print(table)

    secho(f"Registry manifest written to {output}", fg="green")
    return views


@group()
def main():
    """
    Build tooling for Sherpa applications.

    """


@main.command("build-registry")
@argument("view_root", type=ClickPath(exists=True, file_okay=False, path_type=Path))
@option("--package", required=True, help="Dotted import path of the view directory.")
@option(
    "--output",
    type=ClickPath(dir_okay=False, path_type=Path),
    default=Path("build/registry.json"),
    show_default=True,
    help="Path of the generated manifest.",
)
def build_registry(view_root: Path, package: str, output: Path):
    """
    Generate the view registry manifest from a directory of view modules.

    """
    handle_build_registry(view_root=view_root, package=package, output=output)
