from dataclasses import dataclass
from importlib import import_module
from json import dumps as json_dumps, loads as json_loads
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from inflection import dasherize, underscore

from sherpa.exceptions import DuplicateViewError, ViewNotFoundError
from sherpa.logging import LOGGER
from sherpa.renderer import Component

# Attribute that view modules export their component under
VIEW_EXPORT = "view"


def normalize_view_path(path: str) -> str:
    """
    Logical view paths are slash delimited with no leading or trailing slash, so
    "/users/detail/" and "users/detail" are the same view. The root view is "".

    """
    return "/".join(segment for segment in path.strip().split("/") if segment)


@dataclass(frozen=True)
class ViewEntry:
    path: str
    component: Component


class ViewRegistry:
    """
    Static lookup from logical view path to component. Built once at startup, or
    loaded from the manifest generated at build time, and never mutated afterwards.
    Reloading means building a new registry and handing it to the LayoutResolver.

    """

    def __init__(self, entries: Mapping[str, Component] | Iterable[ViewEntry]):
        if isinstance(entries, Mapping):
            entries = [
                ViewEntry(path=path, component=component)
                for path, component in entries.items()
            ]

        views: dict[str, ViewEntry] = {}
        for entry in entries:
            path = normalize_view_path(entry.path)
            if path in views:
                raise DuplicateViewError(path)
            views[path] = ViewEntry(path=path, component=entry.component)

        self._views = MappingProxyType(views)
        LOGGER.debug(f"Built view registry with {len(views)} views")

    def resolve(self, path: str) -> Component:
        return self.get_entry(path).component

    def get_entry(self, path: str) -> ViewEntry:
        normalized = normalize_view_path(path)
        try:
            return self._views[normalized]
        except KeyError:
            raise ViewNotFoundError(view_path=normalized) from None

    @property
    def paths(self) -> list[str]:
        return list(self._views.keys())

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalize_view_path(path) in self._views

    def __len__(self) -> int:
        return len(self._views)

    @classmethod
    def from_manifest(cls, manifest_path: Path | str) -> "ViewRegistry":
        """
        Load the registry from the manifest written by `build_registry_manifest`. Each
        entry maps a logical path to an import reference of the form "module:attribute".

        """
        manifest = json_loads(Path(manifest_path).read_text())
        return cls(
            [
                ViewEntry(path=path, component=import_reference(reference))
                for path, reference in manifest["views"].items()
            ]
        )


def import_reference(reference: str) -> Component:
    module_name, _, attribute = reference.partition(":")
    if not module_name or not attribute:
        raise ValueError(
            f"Invalid component reference '{reference}', expected 'module:attribute'"
        )

    module = import_module(module_name)
    try:
        return getattr(module, attribute)
    except AttributeError:
        raise ValueError(
            f"Module {module_name} has no component named '{attribute}'"
        ) from None


def logical_path_for_module(relative_path: Path) -> str:
    """
    Map a view module's location to its logical path. Directory names are kept,
    module names are dasherized and `index` modules stand for their directory:

    - users/user_detail.py -> users/user-detail
    - users/index.py -> users

    """
    parts = [dasherize(underscore(part)) for part in relative_path.parent.parts]
    if relative_path.stem != "index":
        parts.append(dasherize(underscore(relative_path.stem)))
    return normalize_view_path("/".join(parts))


def build_registry_manifest(view_root: Path, package: str) -> dict[str, str]:
    """
    Build step: walk a directory of view modules and collect every module that
    exports a `view` component. Only runs at build time, the request path reads
    the resulting manifest instead of touching the filesystem.

    :param view_root: Directory that contains the view modules
    :param package: Dotted import path that `view_root` corresponds to

    """
    views: dict[str, str] = {}
    for module_path in sorted(view_root.rglob("*.py")):
        relative_path = module_path.relative_to(view_root)
        if relative_path.name == "__init__.py" or relative_path.name.startswith("_"):
            continue

        module_name = ".".join([package, *relative_path.with_suffix("").parts])
        module = import_module(module_name)
        if not hasattr(module, VIEW_EXPORT):
            LOGGER.debug(f"Skipping {module_name}, no '{VIEW_EXPORT}' export")
            continue

        logical_path = logical_path_for_module(relative_path)
        if logical_path in views:
            raise DuplicateViewError(logical_path)
        views[logical_path] = f"{module_name}:{VIEW_EXPORT}"

    return views


def write_registry_manifest(views: Mapping[str, str], output_path: Path):
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json_dumps({"views": dict(views)}, indent=2, sort_keys=True))
