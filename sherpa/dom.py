import re
from html import escape
from typing import Protocol

from sherpa.pipeline import ROOT_ELEMENT_ID, outlet_open
from sherpa.render import Metadata

DIV_TAG = re.compile(r"<div\b[^>]*>|</div\s*>", re.IGNORECASE)
HEAD_ELEMENT = re.compile(r"(<head>)(.*?)(</head>)", re.IGNORECASE | re.DOTALL)
PAGE_HEAD_TAG = re.compile(r"<title>.*?</title>|<meta\b[^>]*>", re.IGNORECASE | re.DOTALL)


class DocumentSurface(Protocol):
    """
    The slice of the browser document the navigation client touches: outlets, the
    root element, the page tags in the head and the location.

    """

    def outlet_html(self, identifier: str) -> str: ...

    def replace_outlet(self, identifier: str, html: str) -> None: ...

    def root_html(self) -> str: ...

    def replace_root(self, html: str) -> None: ...

    def head_html(self) -> str: ...

    def replace_head(self, html: str) -> None: ...

    def update_head(self, metadata: Metadata | None) -> None: ...

    def push_url(self, url: str) -> None: ...

    def reload(self, url: str) -> None: ...


class OutletNotFound(LookupError):
    def __init__(self, identifier: str):
        super().__init__(f"No outlet for '{identifier}' in the current document")
        self.identifier = identifier


class MarkupDocument:
    """
    In-memory document backed by the server rendered HTML. Elements are located by
    their opening tag and closed by balancing nested divs, which is sufficient for
    the markup the pipeline emits around outlets.

    """

    def __init__(self, html: str, url: str = "/"):
        self.html = html
        self.url = url
        self.reloads: list[str] = []
        self.history: list[str] = [url]

    def outlet_html(self, identifier: str) -> str:
        start, end = self._inner_bounds(outlet_open(identifier), identifier)
        return self.html[start:end]

    def replace_outlet(self, identifier: str, html: str) -> None:
        start, end = self._inner_bounds(outlet_open(identifier), identifier)
        self.html = self.html[:start] + html + self.html[end:]

    def root_html(self) -> str:
        start, end = self._inner_bounds(self._root_open, ROOT_ELEMENT_ID)
        return self.html[start:end]

    def replace_root(self, html: str) -> None:
        start, end = self._inner_bounds(self._root_open, ROOT_ELEMENT_ID)
        self.html = self.html[:start] + html + self.html[end:]

    def head_html(self) -> str:
        match = HEAD_ELEMENT.search(self.html)
        return match.group(2) if match else ""

    def replace_head(self, html: str) -> None:
        match = HEAD_ELEMENT.search(self.html)
        if match is None:
            return
        self.html = self.html[: match.start(2)] + html + self.html[match.end(2) :]

    def update_head(self, metadata: Metadata | None) -> None:
        """
        Swap the title and meta tags for the ones of the new page. Scripts and
        stylesheets were loaded with the document and are kept as they are. Page
        tags lead the head, matching the order of a server render.

        """
        kept = [
            line
            for line in PAGE_HEAD_TAG.sub("", self.head_html()).split("\n")
            if line.strip()
        ]
        tags = metadata.build_page_tags() if metadata else []
        self.replace_head("\n" + "\n".join(tags + kept) + "\n")

    def push_url(self, url: str) -> None:
        self.history.append(url)
        self.url = url

    def reload(self, url: str) -> None:
        self.reloads.append(url)
        self.url = url

    @property
    def _root_open(self) -> str:
        return f'<div id="{escape(ROOT_ELEMENT_ID, quote=True)}">'

    def _inner_bounds(self, opening: str, identifier: str) -> tuple[int, int]:
        position = self.html.find(opening)
        if position == -1:
            raise OutletNotFound(identifier)

        start = position + len(opening)
        depth = 1
        for match in DIV_TAG.finditer(self.html, start):
            if match.group(0).startswith("</"):
                depth -= 1
                if depth == 0:
                    return start, match.start()
            else:
                depth += 1

        raise OutletNotFound(identifier)
