import linecache
import traceback
from html import escape
from pathlib import Path

from pydantic import BaseModel
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import PythonLexer


class ExceptionFrame(BaseModel):
    file_name: str
    line_number: int
    function_name: str
    code_context: str
    start_line_number: int
    end_line_number: int


class ParsedException(BaseModel):
    exc_type: str
    exc_value: str
    frames: list[ExceptionFrame]


class ExceptionParser:
    def __init__(self):
        self.formatter = HtmlFormatter(style="github-dark")
        self.python_lexer = PythonLexer()

    def _get_context(
        self, filename: str, lineno: int, context_lines: int = 5
    ) -> tuple[str, int, int]:
        """
        Get the highlighted code context and line range around an error location.

        :param filename: Path to the source file
        :param lineno: Line number where the error occurred
        :param context_lines: Number of lines to show before and after the error

        """
        start_line = max(lineno - context_lines, 1)  # Don't go below line 1
        end_line = lineno + context_lines + 1

        lines = []
        for i in range(start_line, end_line):
            line = linecache.getline(filename, i)
            if line:
                lines.append(line)
        code = "".join(lines)

        highlighted = highlight(code, self.python_lexer, self.formatter)
        return highlighted, start_line, end_line

    def parse_exception(self, exc: BaseException) -> ParsedException:
        frames = []
        for frame_summary in traceback.extract_tb(exc.__traceback__):
            lineno = frame_summary.lineno or -1
            code_context, start_line, end_line = self._get_context(
                frame_summary.filename, lineno
            )
            frames.append(
                ExceptionFrame(
                    file_name=self.get_package_path(frame_summary.filename),
                    line_number=lineno,
                    function_name=frame_summary.name,
                    code_context=code_context,
                    start_line_number=start_line,
                    end_line_number=end_line,
                )
            )

        return ParsedException(
            exc_type=exc.__class__.__name__, exc_value=str(exc), frames=frames
        )

    def get_style_defs(self) -> str:
        """Get CSS style definitions for syntax highlighting"""
        return self.formatter.get_style_defs()  # type: ignore

    def get_package_path(self, filepath: str) -> str:
        """
        Shorten a full system path to the path relative to its closest parent package.

        """
        path = Path(filepath)

        # Find closest parent directory with __init__.py
        current = path.parent
        package_root = None

        while True:
            if (current / "__init__.py").exists():
                package_root = current
                current = current.parent
            else:
                break

        if package_root is None:
            # No package found, use filename only
            return path.name

        try:
            return str(path.relative_to(package_root.parent))
        except ValueError:
            return path.name


def render_production_error(status_code: int) -> str:
    """
    Generic error document. Never includes exception details since they can leak
    internals to the browser.

    """
    message = "Page not found" if status_code == 404 else "Something went wrong"
    return (
        "<!DOCTYPE html>\n"
        f"<html><head><title>{status_code}</title></head>"
        f'<body><main data-sherpa-error="{status_code}"><h1>{status_code}</h1>'
        f"<p>{message}</p></main></body></html>"
    )


def render_development_error(
    exc: BaseException, status_code: int, view_path: str | None
) -> str:
    """
    Detailed error document for local development: the exception message and
    every stack frame with highlighted source.

    """
    parser = ExceptionParser()
    parsed = parser.parse_exception(exc)

    # Show the most specific frame first
    frames_html = "".join(
        f"<section><h3>{escape(frame.file_name)}:{frame.line_number} "
        f"in {escape(frame.function_name)}</h3>{frame.code_context}</section>"
        for frame in reversed(parsed.frames)
    )
    view_label = f"<p>View: {escape(view_path)}</p>" if view_path else ""

    return (
        "<!DOCTYPE html>\n"
        f"<html><head><title>{escape(parsed.exc_type)}</title>"
        f"<style>{parser.get_style_defs()}</style></head>"
        f'<body><main data-sherpa-error="{status_code}">'
        f"<h1>{escape(parsed.exc_type)}: {escape(parsed.exc_value)}</h1>"
        f"{view_label}{frames_html}</main></body></html>"
    )
