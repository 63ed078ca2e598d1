from dataclasses import dataclass
from json import JSONDecodeError, dumps as json_dumps, loads as json_loads
from typing import Literal, Sequence

from sherpa.layouts import LayoutChain
from sherpa.logging import LOGGER

# Request header the client uses to report the identifiers it has mounted,
# root first and the current view path last
MOUNTED_HEADER = "X-Sherpa-Mounted"

# Response header that tells the client which kind of body it received
RESPONSE_KIND_HEADER = "X-Sherpa-Response"

SEGMENT_CONTENT_TYPE = "application/vnd.sherpa.segment+json"


def parse_mounted_header(value: str | None) -> tuple[str, ...] | None:
    """
    Accepts either a JSON array of identifiers or a comma separated list. A missing
    header means the client has nothing mounted (first load, plain link) and
    returns None. Malformed values are treated the same way since a full document
    is always a safe answer.

    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    if value.startswith("["):
        try:
            parsed = json_loads(value)
        except JSONDecodeError:
            LOGGER.debug(f"Ignoring malformed {MOUNTED_HEADER} header: {value!r}")
            return None
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            LOGGER.debug(f"Ignoring malformed {MOUNTED_HEADER} header: {value!r}")
            return None
        return tuple(parsed)

    return tuple(item.strip() for item in value.split(","))


def format_mounted_header(identifiers: Sequence[str]) -> str:
    """
    View paths can contain commas in principle, so the client always sends JSON.

    """
    return json_dumps(list(identifiers), separators=(",", ":"))


def compute_divergence_index(mounted: Sequence[str], target: Sequence[str]) -> int:
    """
    Length of the longest common prefix of the two chains. Everything before this
    index is already mounted and can stay, everything from it onwards differs.

    - [root, A, a], [root, A, b] -> 2
    - [root, A, a], [root, B, c] -> 1
    - [X, a], [Y, b] -> 0

    """
    index = 0
    for mounted_id, target_id in zip(mounted, target):
        if mounted_id != target_id:
            break
        index += 1
    return index


@dataclass(frozen=True)
class NavigationPlan:
    mode: Literal["full", "segment"]

    divergence_index: int
    """
    Longest common prefix of the mounted and target chains.
    """

    render_from: int | None = None
    """
    First chain position the server renders. The page itself is always rendered so
    this is at most the leaf position, even when the chains are identical.
    """

    swap_point: str | None = None
    """
    Identifier of the deepest retained layout, whose outlet receives the new markup.
    """


def plan_navigation(mounted: Sequence[str] | None, chain: LayoutChain) -> NavigationPlan:
    """
    Decide between a full document and a segment for the target chain. A full
    document is sent when the client didn't report a chain or when nothing is shared,
    so the root never has to be swapped in place.

    """
    target = chain.identifiers
    if not mounted:
        return NavigationPlan(mode="full", divergence_index=0)

    divergence = compute_divergence_index(mounted, target)
    if divergence == 0:
        return NavigationPlan(mode="full", divergence_index=0)

    # Re-navigating to the mounted view still refreshes the page props
    render_from = min(divergence, len(target) - 1)
    return NavigationPlan(
        mode="segment",
        divergence_index=divergence,
        render_from=render_from,
        swap_point=target[render_from - 1],
    )
