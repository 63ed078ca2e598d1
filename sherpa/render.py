from hashlib import sha256
from html import escape
from json import dumps as json_dumps
from typing import Any, Literal, Mapping, TypeVar

from fastapi import Response
from pydantic import BaseModel, Field, model_validator

from sherpa.assets import AssetManifest

T = TypeVar("T")


class HashableAttribute(BaseModel):
    """
    Even with frozen=True, we can't hash our attributes because they include dictionary field types.
    Instead provide a mixin to calculate the hash of the current state of the attributes.

    """

    def __hash__(self):
        model_json = json_dumps(self.model_dump(), sort_keys=True)
        hash_object = sha256(model_json.encode())
        # __hash__ must return an integer
        return int(hash_object.hexdigest(), 16)


class MetaAttribute(HashableAttribute, BaseModel):
    """
    Represents a meta tag that can be included in the head of an HTML document.

    ```python {{ sticky: True }}
    MetaAttribute(
        name="description",
        content="This is a description of the page.",
        optional_attributes={"lang": "en"},
    )
    ```

    """

    name: str | None = None
    content: str | None = None
    optional_attributes: dict[str, str] = {}

    def build_tag(self) -> str:
        meta_attributes = {
            "name": self.name,
            "content": self.content,
            **self.optional_attributes,
        }
        return f"<meta {format_optional_keys(meta_attributes)} />"


class ThemeColorMeta(MetaAttribute):
    """
    Customizes the default color that is attached to the page.

    """

    color: str
    media: str | None = None

    @model_validator(mode="after")
    def create_attribute(self):
        self.name = "theme-color"
        self.content = self.color
        if self.media:
            self.optional_attributes = {"media": self.media}
        return self


class LinkAttribute(HashableAttribute, BaseModel):
    """
    Inject a generic <link> tag into the <head> of the current page.

    ```python {{ sticky: True }}
    LinkAttribute(rel="canonical", href="https://example.com/users/1")
    ```

    """

    rel: str
    href: str
    optional_attributes: dict[str, str] = {}


class ScriptAttribute(HashableAttribute, BaseModel):
    """
    Inject a generic <script> tag into the <head> of the current page.

    """

    src: str
    asynchronous: bool = False
    defer: bool = False
    optional_attributes: dict[str, str] = {}


def format_optional_keys(payload: Mapping[str, str | bool | None]) -> str:
    attributes: list[str] = []
    for key, value in payload.items():
        if value is None:
            continue
        elif isinstance(value, bool):
            # Boolean attributes can just be represented by just their key
            if value:
                attributes.append(key)
            else:
                continue
        else:
            attributes.append(f'{key}="{escape(value, quote=True)}"')
    return " ".join(attributes)


class Metadata(BaseModel):
    """
    Head data for the current page. Pages return it as part of their render payload
    and it's merged with the application wide metadata. On full renders it's written
    into the <head>, on segment navigations it's sent along so the client can update
    the title.

    ```python {{ sticky: True }}
    Metadata(
        title="My Page",
        metas=[MetaAttribute(name="description", content="Users")],
        links=[LinkAttribute(rel="stylesheet", href="/static/app.css")],
    )
    ```

    """

    title: str | None = None

    # Specify dynamic injection of tags into the <head>
    metas: list[MetaAttribute] = []
    links: list[LinkAttribute] = []
    scripts: list[ScriptAttribute] = []

    # Allows the page to short-circuit rendering with a different response,
    # useful for redirects
    explicit_response: Response | None = Field(default=None, exclude=True)

    # If enabled, we won't attempt to use the global metadata for this route
    ignore_global_metadata: bool = False

    model_config = {
        "extra": "forbid",
        "arbitrary_types_allowed": True,
    }

    def merge(self, parent: "Metadata") -> "Metadata":
        def merge_item(a: list[T], b: list[T]):
            # Keeps the original ordering while avoiding duplicates
            merged = list(a)
            for item in b:
                if item not in merged:
                    merged.append(item)
            return merged

        return Metadata(
            title=self.title or parent.title,
            metas=merge_item(self.metas, parent.metas),
            links=merge_item(self.links, parent.links),
            scripts=merge_item(self.scripts, parent.scripts),
            explicit_response=self.explicit_response,
            ignore_global_metadata=self.ignore_global_metadata,
        )

    def build_page_tags(self) -> list[str]:
        """
        Title and meta tags. These differ from page to page and are rewritten by
        the client after a segment navigation, scripts and links stay in place.

        """
        tags: list[str] = []
        if self.title:
            tags.append(f"<title>{escape(self.title)}</title>")
        tags.extend(meta_definition.build_tag() for meta_definition in self.metas)
        return tags

    def build_header(self, assets: AssetManifest | None = None) -> list[str]:
        """
        Builds the list of tags that will be injected into the <head> tag of the
        rendered page. Stylesheets from the bundler's asset manifest come last.

        """
        tags: list[str] = []

        tags.extend(self.build_page_tags())

        for script_definition in self.scripts:
            script_attributes: dict[str, str | bool] = {
                "src": script_definition.src,
                "async": script_definition.asynchronous,
                "defer": script_definition.defer,
                **script_definition.optional_attributes,
            }
            tags.append(f"<script {format_optional_keys(script_attributes)}></script>")

        for link_definition in self.links:
            link_attributes = {
                "rel": link_definition.rel,
                "href": link_definition.href,
                **link_definition.optional_attributes,
            }
            tags.append(f"<link {format_optional_keys(link_attributes)} />")

        if assets:
            for stylesheet in assets.stylesheets:
                tags.append(
                    f"<link {format_optional_keys({'rel': 'stylesheet', 'href': stylesheet})} />"
                )

        return tags


class RenderBase(BaseModel):
    """
    Base class for page props. Subclass this model when defining the data a page
    receives; every non-excluded field is sent to the browser for hydration.

    ```python {{sticky: True}}
    class UserDetailRender(RenderBase):
        name: str
        email: str
    ```

    """

    metadata: Metadata | None = Field(default=None, exclude=True)

    layout_props: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """
    Per-request values handed to every layout in the chain. They take precedence
    over the layouts' static configuration.
    """

    model_config = {
        "frozen": True,
    }


class LayoutPayload(BaseModel):
    identifier: str
    props: dict[str, Any]


class HydrationPayload(BaseModel):
    """
    Everything the client needs to attach interactivity to server rendered markup.
    Only the layouts that were actually transmitted are listed.

    """

    view_path: str
    props: dict[str, Any]
    context: dict[str, Any]
    layouts: list[LayoutPayload] = []

    @property
    def identifiers(self) -> list[str]:
        return [layout.identifier for layout in self.layouts] + [self.view_path]


class SegmentResponse(BaseModel):
    """
    Body of a partial navigation response. `html` is the markup that belongs inside
    the outlet of `swap_point`; `chain` lists the identifiers it contains.

    """

    kind: Literal["segment"] = "segment"
    swap_point: str
    chain: list[str]
    target_chain: list[str]
    html: str
    payload: HydrationPayload
    head: Metadata | None = None

