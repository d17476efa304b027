"""
Splice inline image figures into article HTML.

All insertion points are computed against the unmodified string, then
applied from the highest offset down so earlier offsets stay valid.
"""
import html as html_lib
import re
from typing import Iterable, List, NamedTuple, Tuple

from .parsers import html_to_plain_text

_H2_PATTERN = re.compile(r"<h2[^>]*>(.*?)</h2>", re.IGNORECASE | re.DOTALL)


class HeadingSlot(NamedTuple):
    index: int
    start: int
    end: int    # offset just past </h2>
    text: str


def find_h2_slots(html: str) -> List[HeadingSlot]:
    return [
        HeadingSlot(index=i, start=m.start(), end=m.end(), text=html_to_plain_text(m.group(1)))
        for i, m in enumerate(_H2_PATTERN.finditer(html or ""))
    ]


def build_figure(url: str, alt: str) -> str:
    return (
        '<figure class="inline-image my-6">'
        f'<img src="{html_lib.escape(url, quote=True)}" alt="{html_lib.escape(alt, quote=True)}" '
        'class="w-full rounded-lg shadow-md" />'
        "</figure>"
    )


def insert_fragments(html: str, fragments: Iterable[Tuple[int, str]]) -> str:
    """
    Insert (offset, fragment) pairs into html.

    Offsets refer to the original string. Equal offsets keep their given
    order in the output.
    """
    indexed = list(enumerate(fragments))
    for _, (offset, _fragment) in indexed:
        if offset < 0 or offset > len(html):
            raise ValueError(f"Insertion offset {offset} outside document of length {len(html)}")

    result = html
    for _, (offset, fragment) in sorted(indexed, key=lambda item: (item[1][0], item[0]), reverse=True):
        result = result[:offset] + fragment + result[offset:]
    return result
