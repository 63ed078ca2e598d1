from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping
from uuid import uuid4

from sherpa.context import RenderContext

Component = Callable[..., str]
"""
Opaque reference to something the active renderer knows how to turn into markup.
For the bundled CallableRenderer this is a plain function:

```python
def UserDetail(props, context, children=None) -> str:
    return f"<h1>{escape(props['name'])}</h1>"
```

"""


def component_name(component: Any) -> str:
    """
    Human readable name of a component, used in logs and error pages. Components
    can set a `display_name` attribute to override their function name.

    """
    return (
        getattr(component, "display_name", None)
        or getattr(component, "__name__", None)
        or component.__class__.__name__
    )


class ComponentRenderer(ABC):
    """
    Capability that turns a component and its props into markup. Everything about
    how markup is produced lives behind this interface; the pipeline only composes
    the results. Swap in another implementation to render with a different
    component system.

    """

    @abstractmethod
    def render(
        self,
        component: Component,
        props: Mapping[str, Any],
        context: RenderContext,
        children: str | None = None,
    ) -> str:
        pass

    def render_shell(
        self,
        component: Component,
        props: Mapping[str, Any],
        context: RenderContext,
    ) -> tuple[str, str]:
        """
        Render a layout around a placeholder and split it into the markup that comes
        before and after its children. Used by the streaming pipeline to flush each
        layout's opening markup before the content it wraps has been rendered.

        """
        placeholder = f"<!--sherpa-children-{uuid4().hex}-->"
        markup = self.render(component, props, context, children=placeholder)

        if markup.count(placeholder) != 1:
            raise ValueError(
                f"Layout {component_name(component)} must render its children exactly once"
            )

        prefix, suffix = markup.split(placeholder)
        return prefix, suffix


class CallableRenderer(ComponentRenderer):
    """
    Default renderer where components are Python callables returning markup.

    """

    def render(
        self,
        component: Component,
        props: Mapping[str, Any],
        context: RenderContext,
        children: str | None = None,
    ) -> str:
        markup = component(props, context, children)
        if not isinstance(markup, str):
            raise TypeError(
                f"Component {component_name(component)} returned {type(markup).__name__}, expected markup"
            )
        return markup
