from abc import ABC
from typing import Any, Coroutine, Generic, Mapping, ParamSpec

from starlette.responses import Response

from sherpa.registry import normalize_view_path
from sherpa.render import RenderBase

RenderInput = ParamSpec("RenderInput")

RenderOutput = RenderBase | Mapping[str, Any] | Response | None


class ControllerBase(ABC, Generic[RenderInput]):
    """
    One controller binds a URL to a registered view. `render` gathers the props for
    that view; the AppController resolves its layouts and renders the document or
    the segment the client asked for.

    ```python {{sticky: True}}
    from sherpa import ControllerBase, RenderBase

    class UserDetailRender(RenderBase):
        name: str

    class UserDetailController(ControllerBase):
        url = "/users/{user_id}"
        view_path = "users/detail"

        async def render(self, user_id: int) -> UserDetailRender:
            return UserDetailRender(name=f"User {user_id}")
    ```

    """

    url: str
    """
    The URL that this controller will be mounted at. Path parameters such as
    `/users/{user_id}` are passed to `render` as keyword arguments.

    """

    view_path: str
    """
    Logical path of the view in the ViewRegistry, e.g. `users/detail`.

    """

    layout_config: Mapping[str, Any] | None = None
    """
    Per-route configuration merged over every layout in this view's chain. Takes
    precedence over anything the layouts declare themselves.

    """

    def __init__(self):
        self.view_path = normalize_view_path(self.view_path)
        self.initialized = True

    def render(
        self, *args: RenderInput.args, **kwargs: RenderInput.kwargs
    ) -> RenderOutput | Coroutine[Any, Any, RenderOutput]:
        """
        Render provides the props for the page. Return a RenderBase instance, a plain
        mapping, or None when the page needs no data. Returning a Response skips
        rendering entirely (redirects, downloads).

        Render functions accept any arguments that FastAPI can inject: path
        parameters, query parameters, and dependencies.

        ```python
        class MyController(ControllerBase):
            url = "/search"
            view_path = "search"

            def render(self, query: str, page: int = 1) -> SearchRender:
                ...
        ```

        """
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(url={getattr(self, 'url', None)!r}, view_path={self.view_path!r})"
