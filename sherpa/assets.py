from pathlib import Path

from pydantic import BaseModel


class AssetManifest(BaseModel):
    """
    Client build output written by the bundler: the entry scripts that boot the
    hydration runtime and the stylesheets they depend on. Paths are public URLs.

    ```json
    {"scripts": ["/static/entry-client-3f2a.js"], "stylesheets": ["/static/app-91bc.css"]}
    ```

    """

    scripts: list[str] = []
    stylesheets: list[str] = []

    @classmethod
    def from_path(cls, path: Path | str) -> "AssetManifest":
        return cls.model_validate_json(Path(path).read_text())
