from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from sherpa.exceptions import LayoutConfigurationError
from sherpa.logging import LOGGER
from sherpa.registry import ViewEntry, ViewRegistry, normalize_view_path
from sherpa.renderer import Component

ROOT_IDENTIFIER = "root"


@dataclass(frozen=True)
class LayoutDescriptor:
    """
    Declaration of a layout that wraps every view under `scope`. A layout without a
    component is a pass-through: it renders its children inside its outlet and
    nothing else.

    ```python
    LayoutDescriptor(
        identifier="AdminLayout",
        component=admin_layout,
        scope="admin",
        config={"title": "Admin", "sidebar": True},
    )
    ```

    """

    identifier: str
    component: Component | None
    scope: str = ""
    config: Mapping[str, Any] = field(default_factory=dict)

    @property
    def scope_segments(self) -> tuple[str, ...]:
        normalized = normalize_view_path(self.scope)
        return tuple(normalized.split("/")) if normalized else ()


@dataclass(frozen=True)
class ResolvedLayout:
    descriptor: LayoutDescriptor

    position: int
    """
    Ordinal within the chain, the root layout is always 0.
    """

    config: Mapping[str, Any]
    """
    Configuration after merging every ancestor's declaration and the per-route
    overrides. Shallow: the deepest declaration of a key replaces it entirely.
    """

    @property
    def identifier(self) -> str:
        return self.descriptor.identifier

    @property
    def component(self) -> Component | None:
        return self.descriptor.component


@dataclass(frozen=True)
class LayoutChain:
    layouts: tuple[ResolvedLayout, ...]
    view: ViewEntry

    @property
    def identifiers(self) -> tuple[str, ...]:
        """
        Layout identifiers from root to leaf, followed by the view path. This is
        the sequence the client reports as mounted.

        """
        return (*(layout.identifier for layout in self.layouts), self.view.path)

    @property
    def config(self) -> Mapping[str, Any]:
        """
        Configuration as seen by the innermost layout.

        """
        return self.layouts[-1].config

    def __len__(self) -> int:
        return len(self.layouts) + 1


@dataclass(frozen=True)
class ResolverState:
    """
    Everything the resolver reads, swapped as a single reference on reload so
    concurrent requests never see a new registry paired with an old cache.

    """

    registry: ViewRegistry
    layouts: tuple[LayoutDescriptor, ...]
    overrides: Mapping[str, Mapping[str, Any]]
    cache: dict[str, LayoutChain] = field(default_factory=dict)


class LayoutResolver:
    """
    Computes the ordered chain of layouts that wrap a view. The result is a pure
    function of the view path and the declared layouts, so it's cached per path
    after the first computation. Concurrent first requests for the same path may
    both compute it; they store equal values.

    """

    def __init__(
        self,
        registry: ViewRegistry,
        layouts: Iterable[LayoutDescriptor] = (),
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        self._state = self._build_state(registry, layouts, overrides)

    @property
    def registry(self) -> ViewRegistry:
        return self._state.registry

    @property
    def layouts(self) -> tuple[LayoutDescriptor, ...]:
        return self._state.layouts

    @property
    def overrides(self) -> Mapping[str, Mapping[str, Any]]:
        return self._state.overrides

    def reload(
        self,
        registry: ViewRegistry,
        layouts: Iterable[LayoutDescriptor] | None = None,
        overrides: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        """
        Replace the registry (and optionally the layouts and overrides) in one step.
        The chain cache is discarded wholesale, never entry by entry.

        """
        previous = self._state
        self._state = self._build_state(
            registry,
            previous.layouts if layouts is None else layouts,
            previous.overrides if overrides is None else overrides,
        )
        LOGGER.debug(
            f"Reloaded layout resolver, dropped {len(previous.cache)} cached chains"
        )

    def resolve_chain(self, path: str) -> LayoutChain:
        """
        :raises ViewNotFoundError: If no view is registered at the path

        """
        state = self._state
        normalized = normalize_view_path(path)

        cached = state.cache.get(normalized)
        if cached is not None:
            return cached

        view = state.registry.get_entry(normalized)
        chain = self._compute_chain(state, view)
        state.cache[normalized] = chain
        return chain

    def _compute_chain(self, state: ResolverState, view: ViewEntry) -> LayoutChain:
        view_segments = tuple(view.path.split("/")) if view.path else ()

        # Sorted by scope depth at build time, so filtering keeps root-to-leaf order
        applicable = [
            layout
            for layout in state.layouts
            if view_segments[: len(layout.scope_segments)] == layout.scope_segments
        ]

        overrides = state.overrides.get(view.path, {})
        merged: dict[str, Any] = {}
        resolved: list[ResolvedLayout] = []
        for position, layout in enumerate(applicable):
            merged = {**merged, **layout.config}
            resolved.append(
                ResolvedLayout(
                    descriptor=layout,
                    position=position,
                    config=MappingProxyType({**merged, **overrides}),
                )
            )

        return LayoutChain(layouts=tuple(resolved), view=view)

    def _build_state(
        self,
        registry: ViewRegistry,
        layouts: Iterable[LayoutDescriptor],
        overrides: Mapping[str, Mapping[str, Any]] | None,
    ) -> ResolverState:
        declared = list(layouts)

        if not any(not layout.scope_segments for layout in declared):
            declared.append(
                LayoutDescriptor(identifier=ROOT_IDENTIFIER, component=None, scope="")
            )

        seen_identifiers: set[str] = set()
        seen_scopes: dict[tuple[str, ...], str] = {}
        for layout in declared:
            if layout.identifier in seen_identifiers:
                raise LayoutConfigurationError(
                    f"Layout identifier '{layout.identifier}' is declared more than once"
                )
            if layout.identifier in registry:
                raise LayoutConfigurationError(
                    f"Layout identifier '{layout.identifier}' collides with a view path"
                )
            if layout.scope_segments in seen_scopes:
                raise LayoutConfigurationError(
                    f"Layouts '{seen_scopes[layout.scope_segments]}' and '{layout.identifier}' "
                    f"both wrap scope '/{'/'.join(layout.scope_segments)}'"
                )
            seen_identifiers.add(layout.identifier)
            seen_scopes[layout.scope_segments] = layout.identifier

        normalized_overrides = {
            normalize_view_path(path): MappingProxyType(dict(config))
            for path, config in (overrides or {}).items()
        }

        return ResolverState(
            registry=registry,
            layouts=tuple(sorted(declared, key=lambda layout: len(layout.scope_segments))),
            overrides=MappingProxyType(normalized_overrides),
        )
