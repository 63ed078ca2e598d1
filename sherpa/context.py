from inspect import isawaitable
from typing import Any, Awaitable, Callable, Iterable, Mapping

from pydantic import BaseModel, Field
from starlette.requests import Request

from sherpa.exceptions import ContextEnrichmentError
from sherpa.logging import LOGGER

# Exposed as first-class fields on every context
SAFE_HEADERS = ("user-agent", "accept-language", "referer")

# Never exposed through the allowlist defaults, only when a host names them
# explicitly in `allowed_headers`
SECRET_HEADERS = frozenset(
    {"cookie", "set-cookie", "authorization", "proxy-authorization"}
)


class RenderContext(BaseModel):
    """
    Read-only request metadata that every layout and page can see, and that is
    shipped to the browser alongside the props. Only safe values belong here: the
    builder strips every header that isn't explicitly allowlisted.

    Applications add their own fields through enrichers; they're accepted as extra
    attributes on the model:

    ```python
    context.user_name  # set by an enricher
    ```

    """

    url: str
    path: str
    query: dict[str, str | list[str]] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict)
    method: str = "GET"

    user_agent: str | None = None
    accept_language: str | None = None
    referer: str | None = None
    locale: str | None = None

    # Allowlisted headers beyond the safe defaults
    headers: dict[str, str] = Field(default_factory=dict)

    model_config = {
        "frozen": True,
        "extra": "allow",
    }


ContextEnricher = Callable[
    [Request, RenderContext], Mapping[str, Any] | Awaitable[Mapping[str, Any]] | None
]


def parse_locale(accept_language: str | None) -> str | None:
    """
    Pick the first language tag from an Accept-Language header. Quality weights are
    ignored since clients already list their preference first.

    """
    if not accept_language:
        return None

    first = accept_language.split(",")[0].split(";")[0].strip()
    if not first or first == "*":
        return None
    return first


class RenderContextBuilder:
    """
    Derives a RenderContext from an incoming request. Building is a pure function of
    the request: the base fields are read from the URL and the safe headers, then
    each enricher runs in order and can add derived fields (resolved user, tenant).

    ```python
    def with_tenant(request: Request, context: RenderContext):
        return {"tenant": request.url.hostname.split(".")[0]}

    builder = RenderContextBuilder(enrichers=[with_tenant])
    ```

    """

    def __init__(
        self,
        enrichers: Iterable[ContextEnricher] = (),
        allowed_headers: Iterable[str] = (),
    ):
        self.enrichers = list(enrichers)
        self.allowed_headers = {header.lower() for header in allowed_headers} - set(
            SAFE_HEADERS
        )

        exposed_secrets = self.allowed_headers & SECRET_HEADERS
        if exposed_secrets:
            LOGGER.warning(
                f"Render context will expose sensitive headers: {sorted(exposed_secrets)}"
            )

    def build_base(self, request: Request) -> RenderContext:
        query: dict[str, str | list[str]] = {}
        for key, value in request.query_params.multi_items():
            existing = query.get(key)
            if existing is None:
                query[key] = value
            elif isinstance(existing, list):
                existing.append(value)
            else:
                query[key] = [existing, value]

        url = request.url.path
        if request.url.query:
            url = f"{url}?{request.url.query}"

        accept_language = request.headers.get("accept-language")

        return RenderContext(
            url=url,
            path=request.url.path,
            query=query,
            params={key: str(value) for key, value in request.path_params.items()},
            method=request.method,
            user_agent=request.headers.get("user-agent"),
            accept_language=accept_language,
            referer=request.headers.get("referer"),
            locale=parse_locale(accept_language),
            headers={
                key: value
                for key, value in request.headers.items()
                if key.lower() in self.allowed_headers
            },
        )

    async def build(self, request: Request) -> RenderContext:
        context = self.build_base(request)

        for enricher in self.enrichers:
            enricher_name = getattr(enricher, "__name__", enricher.__class__.__name__)
            try:
                extra = enricher(request, context)
                if isawaitable(extra):
                    extra = await extra
                if extra:
                    context = RenderContext(**{**context.model_dump(), **extra})
            except Exception as e:
                raise ContextEnrichmentError(
                    enricher=enricher_name,
                    reason=f"{type(e).__name__}: {e}",
                ) from e

        return context
