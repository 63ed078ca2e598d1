from functools import partial, wraps
from inspect import Parameter, Signature, isawaitable, signature
from time import monotonic_ns
from typing import Any, AsyncIterator, Iterable, Mapping

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response, StreamingResponse

from sherpa.config import ConfigBase, get_config_or_default
from sherpa.context import RenderContextBuilder
from sherpa.controller import ControllerBase
from sherpa.error_pages import render_development_error, render_production_error
from sherpa.exceptions import APIException, ViewNotFoundError
from sherpa.layouts import LayoutDescriptor, LayoutResolver
from sherpa.logging import LOGGER
from sherpa.navigation import (
    MOUNTED_HEADER,
    RESPONSE_KIND_HEADER,
    SEGMENT_CONTENT_TYPE,
    parse_mounted_header,
    plan_navigation,
)
from sherpa.pipeline import RenderPipeline
from sherpa.registry import ViewRegistry
from sherpa.render import Metadata, RenderBase
from sherpa.renderer import CallableRenderer, ComponentRenderer
from sherpa.reporting import ErrorReporter, LoggingErrorReporter

# Injected into every page handler's signature so FastAPI passes the request
# alongside the controller's own parameters
REQUEST_PARAMETER = "sherpa_request"


class AppController:
    """
    Main entrypoint of a Sherpa web application. Owns the FastAPI app, mounts one
    GET route per controller and answers each request with either a full document
    or a segment, depending on what the client reports as mounted.

    ```python
    registry = ViewRegistry({"users/detail": user_detail})
    app_controller = AppController(
        registry=registry,
        layouts=[LayoutDescriptor(identifier="RootLayout", component=root_layout)],
    )
    app_controller.register(UserDetailController())
    app = app_controller.app
    ```

    """

    app: FastAPI
    """
    Internal FastAPI application instance. Exposed to add API-only endpoints
    and middleware.

    """

    resolver: LayoutResolver
    pipeline: RenderPipeline
    context_builder: RenderContextBuilder
    error_reporter: ErrorReporter

    config: ConfigBase
    """
    Application configuration. Falls back to the globally registered config, or
    the defaults when none is registered.

    """

    def __init__(
        self,
        *,
        name: str = "Sherpa Webapp",
        version: str = "0.1.0",
        registry: ViewRegistry | None = None,
        layouts: Iterable[LayoutDescriptor] = (),
        resolver: LayoutResolver | None = None,
        renderer: ComponentRenderer | None = None,
        pipeline: RenderPipeline | None = None,
        context_builder: RenderContextBuilder | None = None,
        error_reporter: ErrorReporter | None = None,
        global_metadata: Metadata | None = None,
        config: ConfigBase | None = None,
        fastapi_args: dict[str, Any] | None = None,
    ):
        self.app = FastAPI(title=name, version=version, **(fastapi_args or {}))
        self.config = config or get_config_or_default()
        self.error_reporter = error_reporter or LoggingErrorReporter()

        if resolver is None:
            if registry is None and self.config.REGISTRY_MANIFEST:
                registry = ViewRegistry.from_manifest(self.config.REGISTRY_MANIFEST)
            if registry is None:
                raise ValueError(
                    "You must provide a registry, a resolver or config.REGISTRY_MANIFEST to the AppController"
                )
            resolver = LayoutResolver(registry, layouts)
        self.resolver = resolver

        self.pipeline = pipeline or RenderPipeline(
            renderer or CallableRenderer(),
            config=self.config,
            global_metadata=global_metadata,
            error_reporter=self.error_reporter,
        )
        self.context_builder = context_builder or RenderContextBuilder(
            allowed_headers=self.config.ALLOWED_HEADERS
        )

        self.controllers: list[ControllerBase] = []

    def register(self, controller: ControllerBase):
        """
        Register a new controller. This will:

        - Check that its view exists in the registry, so a typo fails at startup
        - Mount its render function at `controller.url`
        - Add its `layout_config` to the per-route layout overrides

        :param controller: Controller instance, `super().__init__()` must have been called

        """
        if not hasattr(controller, "initialized"):
            raise ValueError(
                f"You must call super().__init__() on {controller} before it can be registered."
            )
        if not hasattr(controller, "url"):
            raise ValueError(f"Controller {controller} must declare a url")
        if controller.view_path not in self.resolver.registry:
            raise ValueError(
                f"Controller {controller} references unregistered view '{controller.view_path}'"
            )
        if any(existing.url == controller.url for existing in self.controllers):
            raise ValueError(f"A controller is already mounted at {controller.url}")

        if controller.layout_config:
            self.resolver.reload(
                self.resolver.registry,
                overrides={
                    **self.resolver.overrides,
                    controller.view_path: controller.layout_config,
                },
            )

        # Passthrough the API of the render function to the FastAPI router so it's
        # called with the dependency injection kwargs
        generate_controller_html = wraps(controller.render)(
            partial(self._generate_controller_html, controller=controller)
        )
        generate_controller_html.__signature__ = self._handler_signature(  # type: ignore
            signature(controller.render)
        )

        self.app.get(controller.url, response_class=HTMLResponse)(
            generate_controller_html
        )
        self.controllers.append(controller)

        LOGGER.debug(f"Did register controller: {controller}")

    def reload_registry(self, registry: ViewRegistry):
        """
        Swap in a rebuilt registry, for instance after the view manifest changed
        during development. In-flight requests keep the chain they already resolved.

        """
        self.resolver.reload(registry)
        for controller in self.controllers:
            if controller.view_path not in registry:
                LOGGER.warning(
                    f"Controller {controller} references '{controller.view_path}' which is no longer registered"
                )

    async def _generate_controller_html(
        self,
        *args,
        controller: ControllerBase,
        **kwargs,
    ) -> Response:
        start = monotonic_ns()
        request: Request = kwargs.pop(REQUEST_PARAMETER)
        mounted = parse_mounted_header(request.headers.get(MOUNTED_HEADER))

        try:
            chain = self.resolver.resolve_chain(controller.view_path)
            context = await self.context_builder.build(request)

            render_values = self._get_value_mask_for_signature(
                signature(controller.render), kwargs
            )
            props = controller.render(*args, **render_values)
            if isawaitable(props):
                props = await props

            # Controllers can bypass rendering with their own response
            if isinstance(props, Response):
                return props

            metadata: Metadata | None = None
            layout_props: Mapping[str, Any] = {}
            if isinstance(props, RenderBase):
                metadata = props.metadata
                layout_props = props.layout_props
                if metadata and metadata.explicit_response:
                    return metadata.explicit_response

            plan = plan_navigation(mounted, chain)

            LOGGER.debug(
                f"Controller {controller.__class__.__name__} data acquired in {(monotonic_ns() - start) / 1e9}, plan {plan}",
                extra={"view_path": chain.view.path, "plan": plan.mode},
            )

            headers = {"Vary": MOUNTED_HEADER}
            if plan.mode == "segment" and plan.render_from is not None:
                headers[RESPONSE_KIND_HEADER] = "segment"
                segment = self.pipeline.render_segment(
                    chain,
                    plan.render_from,
                    props,
                    context,
                    metadata=metadata,
                    layout_props=layout_props,
                )
                return Response(
                    segment.model_dump_json(),
                    media_type=SEGMENT_CONTENT_TYPE,
                    headers=headers,
                )

            headers[RESPONSE_KIND_HEADER] = "document"
            output = self.pipeline.render(
                chain,
                props,
                context,
                metadata=metadata,
                layout_props=layout_props,
                is_disconnected=request.is_disconnected,
            )
            if output.stream is not None:
                # Pull the shell before committing to a 200, errors up to this
                # point still produce a proper error document
                first_chunk = await anext(output.stream)
                return StreamingResponse(
                    self._prefetched(first_chunk, output.stream),
                    media_type="text/html",
                    headers=headers,
                )

            return HTMLResponse(output.body, headers=headers)
        except HTTPException as e:
            if not isinstance(e, APIException):
                raise
            return self._error_response(e, request, controller, mounted is not None)
        except Exception as e:
            return self._error_response(e, request, controller, mounted is not None)
        finally:
            LOGGER.debug(
                f"Controller {controller.__class__.__name__} load time took {(monotonic_ns() - start) / 1e9}"
            )

    def _error_response(
        self,
        error: Exception,
        request: Request,
        controller: ControllerBase,
        navigation: bool,
    ) -> Response:
        status_code = error.status_code if isinstance(error, APIException) else 500

        if status_code >= 500 or isinstance(error, ViewNotFoundError):
            self.error_reporter.report(
                error,
                {
                    "url": str(request.url),
                    "method": request.method,
                    "view_path": controller.view_path,
                    "controller": controller.__class__.__name__,
                    "navigation": navigation,
                },
            )
        else:
            LOGGER.debug(f"{request.url} answered with {status_code}: {error}")

        # Navigations get a machine readable body, the client reloads on any non-2xx
        if navigation:
            return JSONResponse(
                status_code=status_code,
                content={
                    "kind": "error",
                    "status_code": status_code,
                    "detail": self._public_detail(error, status_code),
                },
                headers={RESPONSE_KIND_HEADER: "error", "Vary": MOUNTED_HEADER},
            )

        if self.config.development_enabled:
            html = render_development_error(error, status_code, controller.view_path)
        else:
            html = render_production_error(status_code)
        return HTMLResponse(
            html,
            status_code=status_code,
            headers={RESPONSE_KIND_HEADER: "document", "Vary": MOUNTED_HEADER},
        )

    def _public_detail(self, error: Exception, status_code: int) -> str:
        if self.config.development_enabled or status_code < 500:
            if isinstance(error, APIException):
                return str(error.detail)
            return f"{type(error).__name__}: {error}"
        return "Something went wrong"

    async def _prefetched(
        self, first_chunk: str, stream: AsyncIterator[str]
    ) -> AsyncIterator[str]:
        yield first_chunk
        async for chunk in stream:
            yield chunk

    def _handler_signature(self, render_signature: Signature) -> Signature:
        """
        Signature of the render function plus the request parameter. The return
        annotation is stripped since the route returns HTML, not a JSON model.

        """
        parameters = [
            parameter
            for parameter in render_signature.parameters.values()
            if parameter.kind != Parameter.VAR_KEYWORD
        ]
        parameters.append(
            Parameter(REQUEST_PARAMETER, Parameter.KEYWORD_ONLY, annotation=Request)
        )
        parameters.extend(
            parameter
            for parameter in render_signature.parameters.values()
            if parameter.kind == Parameter.VAR_KEYWORD
        )
        return render_signature.replace(parameters=parameters, return_annotation=None)

    def _get_value_mask_for_signature(
        self,
        signature: Signature,
        values: dict[str, Any],
    ):
        # Assume the values match the parameters specified in the signature
        passthrough_names = {
            parameter.name for parameter in signature.parameters.values()
        }
        return {
            name: value for name, value in values.items() if name in passthrough_names
        }
