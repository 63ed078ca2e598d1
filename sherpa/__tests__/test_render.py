import pytest
from fastapi.responses import RedirectResponse

from sherpa.assets import AssetManifest
from sherpa.render import (
    HydrationPayload,
    LayoutPayload,
    LinkAttribute,
    MetaAttribute,
    Metadata,
    RenderBase,
    ScriptAttribute,
    ThemeColorMeta,
)


@pytest.mark.parametrize(
    "metadata, expected_tags",
    [
        (
            Metadata(title="MyTitle"),
            ["<title>MyTitle</title>"],
        ),
        (
            Metadata(title="Users & <Admins>"),
            ["<title>Users &amp; &lt;Admins&gt;</title>"],
        ),
        (
            Metadata(
                links=[
                    LinkAttribute(rel="stylesheet", href="/stylesheet1.css"),
                    LinkAttribute(rel="stylesheet", href="/stylesheet2.css"),
                ],
            ),
            [
                '<link rel="stylesheet" href="/stylesheet1.css" />',
                '<link rel="stylesheet" href="/stylesheet2.css" />',
            ],
        ),
        (
            Metadata(
                metas=[
                    ThemeColorMeta(color="#000000"),
                    MetaAttribute(name="description", content='Say "hi"'),
                ]
            ),
            [
                '<meta name="theme-color" content="#000000" />',
                '<meta name="description" content="Say &quot;hi&quot;" />',
            ],
        ),
        (
            Metadata(
                scripts=[
                    ScriptAttribute(src="/script1.js"),
                    ScriptAttribute(src="/script2.js", asynchronous=True),
                    ScriptAttribute(src="/script3.js", defer=True),
                    ScriptAttribute(
                        src="/script4.js",
                        optional_attributes={"test-attr": "test-value"},
                    ),
                ],
            ),
            [
                '<script src="/script1.js"></script>',
                '<script src="/script2.js" async></script>',
                '<script src="/script3.js" defer></script>',
                '<script src="/script4.js" test-attr="test-value"></script>',
            ],
        ),
    ],
)
def test_build_header(metadata: Metadata, expected_tags: list[str]):
    assert metadata.build_header() == expected_tags


def test_build_header_with_assets():
    tags = Metadata(title="Home").build_header(
        AssetManifest(scripts=["/static/entry.js"], stylesheets=["/static/app.css"])
    )

    assert tags == [
        "<title>Home</title>",
        '<link rel="stylesheet" href="/static/app.css" />',
    ]


def test_merge_metadata():
    parent = Metadata(
        title="Sherpa",
        links=[LinkAttribute(rel="stylesheet", href="/global.css")],
    )
    child = Metadata(
        links=[
            LinkAttribute(rel="stylesheet", href="/page.css"),
            LinkAttribute(rel="stylesheet", href="/global.css"),
        ],
    )

    merged = child.merge(parent)
    assert merged.title == "Sherpa"
    assert [link.href for link in merged.links] == ["/page.css", "/global.css"]


def test_render_base_excludes_transport_fields():
    class UserRender(RenderBase):
        name: str

    render = UserRender(
        name="Ada",
        metadata=Metadata(title="Ada", explicit_response=RedirectResponse("/")),
        layout_props={"section": "Users"},
    )

    assert render.model_dump(mode="json") == {"name": "Ada"}
    assert render.layout_props == {"section": "Users"}


def test_hydration_payload_identifiers():
    payload = HydrationPayload(
        view_path="users/detail",
        props={"name": "Ada"},
        context={"url": "/users/1", "path": "/users/1"},
        layouts=[
            LayoutPayload(identifier="RootLayout", props={}),
            LayoutPayload(identifier="UsersLayout", props={"section": "Users"}),
        ],
    )

    assert payload.identifiers == ["RootLayout", "UsersLayout", "users/detail"]
