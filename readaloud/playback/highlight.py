"""
Highlight Renderer

Annotates document text with the sentence currently being read.

Rendering uses each sentence's precomputed offsets and never searches the
text, so repeated sentences are highlighted at the right occurrence. The
output always contains every character of the source text exactly once.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from rich.text import Text

from readaloud.playback.sentence_splitter import Sentence

# Private-use code points. Any of them already in the document are
# escaped with HIGHLIGHT_ESCAPE, so markup always strips back to the text.
HIGHLIGHT_START = "\ue000"
HIGHLIGHT_END = "\ue001"
HIGHLIGHT_ESCAPE = "\ue002"

_RESERVED_RE = re.compile("[\ue000-\ue002]")
_MARKUP_RE = re.compile("\ue002([\ue000-\ue002])|[\ue000\ue001]")

NO_HIGHLIGHT = -1


@dataclass(frozen=True)
class TextSpan:
    """A piece of the rendered document."""

    text: str
    sentence_index: Optional[int] = None  # None for text between sentences
    highlighted: bool = False


def render_spans(
    text: str,
    sentences: Sequence[Sentence],
    highlight_index: int = NO_HIGHLIGHT,
) -> List[TextSpan]:
    """
    Split the document into gap and sentence spans.

    Every sentence becomes its own span carrying its index, so a
    presentation layer can turn a click on a sentence into a jump.

    Args:
        text: Document text the sentences were split from
        sentences: Sentence list of the document
        highlight_index: Sentence to highlight, or -1 for none

    Returns:
        Spans whose texts concatenate to the original text
    """
    spans = []
    position = 0

    for sentence in sentences:
        if sentence.start_offset > position:
            spans.append(TextSpan(text[position:sentence.start_offset]))
        spans.append(TextSpan(
            text=text[sentence.start_offset:sentence.end_offset],
            sentence_index=sentence.index,
            highlighted=sentence.index == highlight_index,
        ))
        position = sentence.end_offset

    if position < len(text):
        spans.append(TextSpan(text[position:]))

    return spans


def _escape(text: str) -> str:
    return _RESERVED_RE.sub(lambda m: HIGHLIGHT_ESCAPE + m.group(), text)


def render_markup(
    text: str,
    sentences: Sequence[Sentence],
    highlight_index: int = NO_HIGHLIGHT,
) -> str:
    """
    Return the text with highlight markers around one sentence.

    Out-of-range indexes, including -1, add no markers. Marker code points
    that are part of the text itself are escaped, so strip_markers() on the
    result always gives back the original text.
    """
    if not 0 <= highlight_index < len(sentences):
        return _escape(text)

    sentence = sentences[highlight_index]
    return "".join((
        _escape(text[:sentence.start_offset]),
        HIGHLIGHT_START,
        _escape(text[sentence.start_offset:sentence.end_offset]),
        HIGHLIGHT_END,
        _escape(text[sentence.end_offset:]),
    ))


def strip_markers(markup: str) -> str:
    """Remove highlight markers from rendered markup and undo escaping."""
    return _MARKUP_RE.sub(lambda m: m.group(1) or "", markup)


def to_rich_text(spans: Sequence[TextSpan], style: str = "highlight") -> Text:
    """Build a rich Text for terminal display, styling the highlighted span."""
    rendered = Text()
    for span in spans:
        rendered.append(span.text, style=style if span.highlighted else None)
    return rendered
