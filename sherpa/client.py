import asyncio
import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Mapping

import httpx

from sherpa.context import RenderContext
from sherpa.dom import DocumentSurface, MarkupDocument
from sherpa.exceptions import ComponentNotRegistered, NavigationFailed, RenderError
from sherpa.layouts import LayoutResolver
from sherpa.logging import LOGGER
from sherpa.navigation import (
    MOUNTED_HEADER,
    RESPONSE_KIND_HEADER,
    format_mounted_header,
)
from sherpa.pipeline import DATA_ELEMENT_ID, ComposedLayout, compose_markup
from sherpa.render import HydrationPayload, SegmentResponse
from sherpa.renderer import CallableRenderer, Component, ComponentRenderer

NavigationOutcome = Literal["segment", "document", "reload", "superseded"]

BOOTSTRAP_PATTERN = re.compile(
    rf'<script type="application/json" id="{DATA_ELEMENT_ID}">(?P<payload>.*?)</script>',
    re.DOTALL,
)


class NavigationState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SWAPPING = "swapping"
    HYDRATED = "hydrated"
    ERROR = "error"


@dataclass(frozen=True)
class ClientMountState:
    mounted_chain: tuple[str, ...]

    @property
    def view_path(self) -> str:
        return self.mounted_chain[-1]


@dataclass(frozen=True)
class BootstrapRecord:
    """
    Hydration payload embedded in a full document. Parsed exactly once when the
    client starts; later navigations bring their own payloads.

    """

    payload: HydrationPayload

    @property
    def chain(self) -> tuple[str, ...]:
        return tuple(self.payload.identifiers)

    @classmethod
    def from_html(cls, html: str) -> "BootstrapRecord":
        return read_bootstrap(html)


def read_bootstrap(html: str) -> BootstrapRecord:
    match = BOOTSTRAP_PATTERN.search(html)
    if match is None:
        raise ValueError(f"Document has no #{DATA_ELEMENT_ID} bootstrap element")

    # The payload is escaped to valid JSON unicode escapes, so it parses as-is
    return BootstrapRecord(
        payload=HydrationPayload.model_validate_json(match.group("payload"))
    )


class ClientComponentRegistry:
    """
    Identifier to component lookup on the browser side. Must be built from the
    same registry and layouts as the server, any miss is treated as build skew.

    """

    def __init__(self, components: Mapping[str, Component | None]):
        self._components = dict(components)

    @classmethod
    def from_resolver(cls, resolver: LayoutResolver) -> "ClientComponentRegistry":
        components: dict[str, Component | None] = {
            layout.identifier: layout.component for layout in resolver.layouts
        }
        for path in resolver.registry.paths:
            components[path] = resolver.registry.resolve(path)
        return cls(components)

    def resolve(self, identifier: str) -> Component | None:
        try:
            return self._components[identifier]
        except KeyError:
            raise ComponentNotRegistered(identifier) from None

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._components


class NavigationClient:
    """
    Headless equivalent of the browser runtime. Holds the mounted chain, performs
    segment navigations against the server and grafts the results into a
    DocumentSurface.

    ```python
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app), base_url="http://testserver") as transport:
        first = await transport.get("/users/1")
        document = MarkupDocument(first.text, url="/users/1")
        client = NavigationClient(
            transport,
            document,
            ClientComponentRegistry.from_resolver(resolver),
            BootstrapRecord.from_html(first.text),
        )
        client.start()
        await client.navigate("/users/2")
    ```

    """

    def __init__(
        self,
        transport: httpx.AsyncClient,
        surface: DocumentSurface,
        components: ClientComponentRegistry,
        bootstrap: BootstrapRecord,
        renderer: ComponentRenderer | None = None,
    ):
        self.transport = transport
        self.surface = surface
        self.components = components
        self.bootstrap = bootstrap
        self.renderer = renderer or CallableRenderer()

        self.state = NavigationState.IDLE
        self.mount_state = ClientMountState(mounted_chain=bootstrap.chain)

        # Identifiers hydrated by the most recent swap
        self.hydrated: list[str] = []
        self.hydration_mismatches: list[str] = []

        self._inflight: asyncio.Task[NavigationOutcome] | None = None
        self._inflight_url: str | None = None
        self._generation = 0

    def start(self):
        """
        Hydrate the server rendered document. Every identifier in the bootstrap
        chain is resolved, a miss here means the page can't become interactive.

        """
        payload = self.bootstrap.payload
        self._check_registered(payload)
        self._hydrate(payload, self.surface.root_html())
        self.state = NavigationState.HYDRATED

    async def navigate(self, url: str) -> NavigationOutcome:
        """
        Navigate to `url`. Repeated calls for the target that is already in flight
        share its request. A call for a different target cancels the in-flight one,
        whose callers receive "superseded".

        """
        inflight = self._inflight
        if inflight is not None and not inflight.done():
            if self._inflight_url == url:
                LOGGER.debug(f"Coalescing navigation to {url}")
                return await self._wait(inflight)
            LOGGER.debug(f"Navigation to {url} supersedes {self._inflight_url}")
            inflight.cancel()

        self._generation += 1
        task = asyncio.create_task(self._navigate(url, self._generation))
        self._inflight = task
        self._inflight_url = url
        return await self._wait(task)

    async def _wait(self, task: "asyncio.Task[NavigationOutcome]") -> NavigationOutcome:
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return "superseded"
            raise

    async def _navigate(self, url: str, generation: int) -> NavigationOutcome:
        self.state = NavigationState.REQUESTING
        try:
            response = await self.transport.get(
                url,
                headers={
                    MOUNTED_HEADER: format_mounted_header(self.mount_state.mounted_chain)
                },
            )
            if not response.is_success:
                raise NavigationFailed(url, f"status {response.status_code}")

            # Nothing below awaits, a superseding navigation can't interleave
            # with the swap
            if generation != self._generation:
                return "superseded"

            kind = response.headers.get(RESPONSE_KIND_HEADER)
            if kind == "segment":
                self._apply_segment(url, SegmentResponse.model_validate_json(response.content))
                return "segment"
            elif kind == "document":
                self._apply_document(url, response.text)
                return "document"
            raise NavigationFailed(url, f"unexpected response kind {kind!r}")
        except Exception as e:
            if generation != self._generation:
                return "superseded"

            self.state = NavigationState.ERROR
            LOGGER.warning(
                f"Navigation to {url} failed, reloading: {type(e).__name__}: {e}",
                extra={"url": url},
            )
            self.surface.reload(url)
            self.state = NavigationState.IDLE
            return "reload"

    def _apply_segment(self, url: str, segment: SegmentResponse):
        mounted = self.mount_state.mounted_chain
        if segment.swap_point not in segment.target_chain:
            raise NavigationFailed(url, f"swap point {segment.swap_point} not in target chain")

        retained = segment.target_chain.index(segment.swap_point) + 1
        if tuple(segment.target_chain[:retained]) != mounted[:retained]:
            raise NavigationFailed(
                url, f"segment retains {segment.target_chain[:retained]} but {list(mounted)} is mounted"
            )
        if segment.target_chain[retained:] != segment.chain:
            raise NavigationFailed(url, "segment chain does not complete the target chain")

        # Fail before mutating anything so a skewed build never half-swaps the page
        self._check_registered(segment.payload)
        self.surface.outlet_html(segment.swap_point)

        self.state = NavigationState.SWAPPING
        self.surface.replace_outlet(segment.swap_point, segment.html)
        self.surface.update_head(segment.head)
        self.surface.push_url(url)
        self.mount_state = ClientMountState(mounted_chain=tuple(segment.target_chain))

        self._hydrate(segment.payload, segment.html)
        self.state = NavigationState.HYDRATED

    def _apply_document(self, url: str, html: str):
        record = read_bootstrap(html)
        self._check_registered(record.payload)

        incoming = MarkupDocument(html)
        self.state = NavigationState.SWAPPING
        self.surface.replace_root(incoming.root_html())
        self.surface.replace_head(incoming.head_html())
        self.surface.push_url(url)
        self.mount_state = ClientMountState(mounted_chain=record.chain)

        self._hydrate(record.payload, incoming.root_html())
        self.state = NavigationState.HYDRATED

    def _check_registered(self, payload: HydrationPayload):
        for identifier in payload.identifiers:
            self.components.resolve(identifier)

    def _hydrate(self, payload: HydrationPayload, markup: str):
        layouts = [
            ComposedLayout(
                identifier=layout.identifier,
                component=self.components.resolve(layout.identifier),
                props=layout.props,
            )
            for layout in payload.layouts
        ]
        view_component = self.components.resolve(payload.view_path)
        if view_component is None:
            raise ComponentNotRegistered(payload.view_path)

        try:
            expected = compose_markup(
                self.renderer,
                layouts,
                payload.view_path,
                view_component,
                payload.props,
                RenderContext(**payload.context),
            )
        except RenderError as e:
            LOGGER.warning(f"Client render of {e.identifier} failed during hydration: {e.reason}")
            expected = None

        if expected != markup:
            LOGGER.warning(
                f"Hydration mismatch for {payload.view_path}, server markup differs from client render"
            )
            self.hydration_mismatches.append(payload.view_path)

        self.hydrated = payload.identifiers

