from dataclasses import dataclass
from html import escape
from json import dumps as json_dumps, loads as json_loads
from time import monotonic_ns
from typing import Any, AsyncIterator, Awaitable, Callable, Literal, Mapping, Sequence

from pydantic_core import PydanticSerializationError

from sherpa.assets import AssetManifest
from sherpa.config import ConfigBase, get_config_or_default
from sherpa.context import RenderContext
from sherpa.exceptions import RenderError, SerializationError
from sherpa.layouts import LayoutChain, ResolvedLayout
from sherpa.logging import LOGGER, debug_log_artifact
from sherpa.render import (
    HydrationPayload,
    LayoutPayload,
    Metadata,
    RenderBase,
    SegmentResponse,
)
from sherpa.renderer import Component, ComponentRenderer
from sherpa.reporting import ErrorReporter, LoggingErrorReporter

RenderMode = Literal["string", "stream"]

DATA_ELEMENT_ID = "__sherpa_data__"
ROOT_ELEMENT_ID = "root"
CLOSE = "</div>"

# Characters that could end the surrounding <script> element or confuse
# JavaScript parsers when JSON is embedded inline
SCRIPT_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def layout_open(identifier: str) -> str:
    return f'<div data-layout="{escape(identifier, quote=True)}">'


def outlet_open(identifier: str) -> str:
    return f'<div data-outlet="{escape(identifier, quote=True)}">'


def view_open(view_path: str) -> str:
    return f'<div data-view="{escape(view_path, quote=True)}">'


def escape_json_for_script(payload: str) -> str:
    for character, replacement in SCRIPT_ESCAPES.items():
        payload = payload.replace(character, replacement)
    return payload


def ensure_json(identifier: str, value: Any) -> Any:
    """
    Validate that a value can be shipped to the browser and return its plain JSON
    form. Cycles, NaN and non-JSON types are rejected here rather than on the client.

    """
    try:
        return json_loads(json_dumps(value, allow_nan=False))
    except (TypeError, ValueError, RecursionError) as e:
        raise SerializationError(identifier=identifier, reason=str(e)) from e


def props_to_json(identifier: str, props: RenderBase | Mapping[str, Any] | None):
    if props is None:
        return {}
    if isinstance(props, RenderBase):
        try:
            return props.model_dump(mode="json")
        except PydanticSerializationError as e:
            raise SerializationError(identifier=identifier, reason=str(e)) from e
    return ensure_json(identifier, dict(props))


def context_to_json(context: RenderContext) -> dict[str, Any]:
    try:
        return ensure_json("context", context.model_dump(mode="json"))
    except PydanticSerializationError as e:
        raise SerializationError(identifier="context", reason=str(e)) from e


@dataclass(frozen=True)
class ComposedLayout:
    identifier: str
    component: Component | None
    props: Mapping[str, Any]


@dataclass(frozen=True)
class RenderedOutput:
    mode: RenderMode
    payload: HydrationPayload
    body: str | None = None
    stream: AsyncIterator[str] | None = None


def compose_markup(
    renderer: ComponentRenderer,
    layouts: Sequence[ComposedLayout],
    view_path: str,
    view_component: Component,
    props: Mapping[str, Any],
    context: RenderContext,
) -> str:
    """
    Render the page and wrap it in each layout, innermost first. Every layout receives
    its children inside an outlet element so a later navigation can replace exactly
    that subtree. Shared by the server pipeline and by client hydration checks.

    :raises RenderError: With the identifier of the layout or page that failed

    """
    markup = (
        view_open(view_path)
        + render_component(renderer, view_path, view_component, props, context, None)
        + CLOSE
    )

    for layout in reversed(layouts):
        children = outlet_open(layout.identifier) + markup + CLOSE
        if layout.component is None:
            inner = children
        else:
            inner = render_component(
                renderer,
                layout.identifier,
                layout.component,
                layout.props,
                context,
                children,
            )
        markup = layout_open(layout.identifier) + inner + CLOSE

    return markup


def render_component(
    renderer: ComponentRenderer,
    identifier: str,
    component: Component,
    props: Mapping[str, Any],
    context: RenderContext,
    children: str | None,
) -> str:
    try:
        return renderer.render(component, props, context, children)
    except Exception as e:
        raise RenderError(identifier=identifier, reason=f"{type(e).__name__}: {e}") from e


class RenderPipeline:
    """
    Composes a layout chain and its page into markup, either as one complete document
    or as a stream of chunks split at layout boundaries. Both embed the hydration
    bootstrap after the markup it describes.

    ```python
    pipeline = RenderPipeline(CallableRenderer())
    output = pipeline.render(chain, props, context, "string")
    ```

    """

    def __init__(
        self,
        renderer: ComponentRenderer,
        *,
        config: ConfigBase | None = None,
        assets: AssetManifest | None = None,
        global_metadata: Metadata | None = None,
        error_reporter: ErrorReporter | None = None,
    ):
        self.renderer = renderer
        self.config = config or get_config_or_default()
        self.global_metadata = global_metadata
        self.error_reporter = error_reporter or LoggingErrorReporter()

        if assets is None and self.config.ASSET_MANIFEST:
            assets = AssetManifest.from_path(self.config.ASSET_MANIFEST)
        self.assets = assets

    def render(
        self,
        chain: LayoutChain,
        props: RenderBase | Mapping[str, Any] | None,
        context: RenderContext,
        mode: RenderMode | None = None,
        *,
        metadata: Metadata | None = None,
        layout_props: Mapping[str, Any] | None = None,
        is_disconnected: Callable[[], Awaitable[bool]] | None = None,
    ) -> RenderedOutput:
        """
        Render a full document. Serialization is validated before any markup is
        produced so a bad payload never reaches the client.

        :param layout_props: Per-request values merged over every layout's configuration
        :param is_disconnected: Polled between streamed chunks; production stops once
            it reports the client went away

        """
        mode = mode or self.config.RENDER_MODE
        page_props = props_to_json(chain.view.path, props)
        layouts = self.compose_layouts(chain.layouts, layout_props)
        payload = self.build_payload(chain.view.path, page_props, context, layouts)

        if mode == "stream":
            return RenderedOutput(
                mode=mode,
                payload=payload,
                stream=self._stream_document(
                    chain,
                    layouts,
                    page_props,
                    context,
                    payload,
                    metadata,
                    is_disconnected,
                ),
            )

        start = monotonic_ns()
        markup = compose_markup(
            self.renderer,
            layouts,
            chain.view.path,
            chain.view.component,
            page_props,
            context,
        )
        document = (
            self.document_start(metadata)
            + markup
            + self.document_end(payload)
        )
        self._log_duration(chain.view.path, start, "string")
        debug_log_artifact("document", "html", document)

        return RenderedOutput(mode=mode, payload=payload, body=document)

    def render_segment(
        self,
        chain: LayoutChain,
        start: int,
        props: RenderBase | Mapping[str, Any] | None,
        context: RenderContext,
        *,
        metadata: Metadata | None = None,
        layout_props: Mapping[str, Any] | None = None,
    ) -> SegmentResponse:
        """
        Render only the chain below position `start`. The layouts above it stay
        mounted in the browser, so neither their markup nor their props are sent.

        """
        if not 1 <= start < len(chain):
            raise ValueError(
                f"Segment start {start} is outside of chain with {len(chain)} entries"
            )

        begin = monotonic_ns()
        page_props = props_to_json(chain.view.path, props)
        layouts = self.compose_layouts(chain.layouts[start:], layout_props)
        payload = self.build_payload(chain.view.path, page_props, context, layouts)

        html = compose_markup(
            self.renderer,
            layouts,
            chain.view.path,
            chain.view.component,
            page_props,
            context,
        )
        self._log_duration(chain.view.path, begin, "segment")

        head = self.resolve_metadata(metadata)
        return SegmentResponse(
            swap_point=chain.identifiers[start - 1],
            chain=list(chain.identifiers[start:]),
            target_chain=list(chain.identifiers),
            html=html,
            payload=payload,
            head=head,
        )

    def compose_layouts(
        self,
        layouts: Sequence[ResolvedLayout],
        layout_props: Mapping[str, Any] | None,
    ) -> list[ComposedLayout]:
        return [
            ComposedLayout(
                identifier=layout.identifier,
                component=layout.component,
                props=ensure_json(
                    layout.identifier, {**layout.config, **(layout_props or {})}
                ),
            )
            for layout in layouts
        ]

    def build_payload(
        self,
        view_path: str,
        page_props: dict[str, Any],
        context: RenderContext,
        layouts: Sequence[ComposedLayout],
    ) -> HydrationPayload:
        return HydrationPayload(
            view_path=view_path,
            props=page_props,
            context=context_to_json(context),
            layouts=[
                LayoutPayload(identifier=layout.identifier, props=dict(layout.props))
                for layout in layouts
            ],
        )

    def resolve_metadata(self, metadata: Metadata | None) -> Metadata | None:
        if metadata is None:
            return self.global_metadata
        if not metadata.ignore_global_metadata and self.global_metadata:
            return metadata.merge(self.global_metadata)
        return metadata

    def document_start(self, metadata: Metadata | None) -> str:
        resolved = self.resolve_metadata(metadata)
        if resolved:
            header_str = "\n".join(resolved.build_header(self.assets))
        elif self.assets:
            header_str = "\n".join(Metadata().build_header(self.assets))
        else:
            header_str = ""

        return (
            "<!DOCTYPE html>\n"
            "<html>\n"
            f"<head>\n{header_str}\n</head>\n"
            "<body>\n"
            f'<div id="{ROOT_ELEMENT_ID}">'
        )

    def document_end(self, payload: HydrationPayload) -> str:
        """
        Close the root element and embed the bootstrap data, followed by the client
        entry scripts so the data is present before the runtime executes.

        """
        payload_json = escape_json_for_script(payload.model_dump_json())
        client_scripts = "\n".join(
            f"<script type='module' src='{escape(script, quote=True)}'></script>"
            for script in (self.assets.scripts if self.assets else [])
        )
        return (
            f"{CLOSE}\n"
            f'<script type="application/json" id="{DATA_ELEMENT_ID}">{payload_json}</script>\n'
            f"{client_scripts}\n"
            "</body>\n"
            "</html>\n"
        )

    async def _stream_document(
        self,
        chain: LayoutChain,
        layouts: Sequence[ComposedLayout],
        page_props: dict[str, Any],
        context: RenderContext,
        payload: HydrationPayload,
        metadata: Metadata | None,
        is_disconnected: Callable[[], Awaitable[bool]] | None,
    ) -> AsyncIterator[str]:
        start = monotonic_ns()
        started = False
        current = chain.view.path
        suffixes: list[str] = []
        pending = self.document_start(metadata)

        try:
            # Each layout's opening markup is flushed before anything it wraps is
            # rendered. The first chunk carries the document head with the root shell.
            for layout in layouts:
                current = layout.identifier
                if layout.component is None:
                    prefix, suffix = "", ""
                else:
                    try:
                        prefix, suffix = self.renderer.render_shell(
                            layout.component, layout.props, context
                        )
                    except Exception as e:
                        raise RenderError(
                            identifier=layout.identifier,
                            reason=f"{type(e).__name__}: {e}",
                        ) from e
                suffixes.append(suffix)

                chunk = pending + layout_open(layout.identifier) + prefix
                chunk += outlet_open(layout.identifier)
                pending = ""
                started = True
                yield chunk

                if is_disconnected is not None and await is_disconnected():
                    LOGGER.debug(f"Client disconnected while streaming {current}")
                    return

            current = chain.view.path
            page = (
                view_open(chain.view.path)
                + render_component(
                    self.renderer,
                    chain.view.path,
                    chain.view.component,
                    page_props,
                    context,
                    None,
                )
                + CLOSE
            )
            started = True
            yield pending + page

            for suffix in reversed(suffixes):
                yield CLOSE + suffix + CLOSE

            # Only now is the whole subtree on the wire, so the bootstrap data
            # can't reference markup the client hasn't parsed yet
            yield self.document_end(payload)
            self._log_duration(chain.view.path, start, "stream")
        except RenderError as e:
            if not started:
                raise

            # Headers and earlier chunks are already committed, all we can do is
            # mark the failure and end the document
            self.error_reporter.report(
                e,
                {
                    "view_path": chain.view.path,
                    "identifier": current,
                    "phase": "streaming",
                },
            )
            # Every streamed layout left its layout div, shell and outlet open,
            # inside the root element
            closing = "".join(CLOSE + suffix + CLOSE for suffix in reversed(suffixes))
            yield (
                f'<template data-sherpa-error="{escape(current, quote=True)}"></template>'
                f"{closing}{CLOSE}\n</body>\n</html>\n"
            )

    def _log_duration(self, view_path: str, start: int, mode: str):
        duration = (monotonic_ns() - start) / 1e9
        fields = {"view_path": view_path, "mode": mode, "duration": round(duration, 3)}
        if duration > self.config.SLOW_RENDER_THRESHOLD:
            LOGGER.warning(f"Slow render of {view_path} ({mode}): {duration:.3f}s", extra=fields)
        else:
            LOGGER.debug(f"Rendered {view_path} ({mode}) in {duration:.3f}s", extra=fields)
