"""
Sentence Splitter Module

Splits document text into sentences for sentence-level speech playback.
Every sentence keeps the exact offsets of its span in the source text, so
highlighting and seeking never have to search the text again.

Policy:
- A sentence ends at a run of terminators (. ! ?), optionally followed by
  closing quotes or brackets, when whitespace or the end of text follows.
- A paragraph break (blank line) also ends a sentence.
- Text without any terminator is one sentence per paragraph.
- Abbreviations such as "Mr." are NOT special-cased. "Mr. Smith" splits
  after "Mr."; this is a known limitation of the heuristic.
- Whitespace-only runs are never emitted. Empty text gives no sentences.

The text is scanned as whitespace-delimited tokens, so sentences always
start and end on a token boundary and every character is looked at a
bounded number of times, whatever the whitespace runs look like.
"""

import re
from dataclasses import dataclass
from typing import Generator, List

_TOKEN_RE = re.compile(r"\S+")
_PARAGRAPH_BREAK_RE = re.compile(r"\n[^\S\n]*\n")

_TERMINATORS = (".", "!", "?")
_CLOSERS = "'\"’”)]"


def _ends_sentence(token: str) -> bool:
    return token.rstrip(_CLOSERS).endswith(_TERMINATORS)


@dataclass(frozen=True)
class Sentence:
    """A single sentence with its position in the source text."""

    index: int  # Position in the sentence list
    text: str  # Sentence text, never empty or padded with whitespace
    start_offset: int  # Start of the span in the source text
    end_offset: int  # End of the span (exclusive)
    paragraph: int = 0  # Paragraph number, 0-based

    @property
    def length(self) -> int:
        return len(self.text)


class SentenceSplitter:
    """
    Deterministic, offset-preserving sentence splitter.

    Splitting is total: any string, including empty, whitespace-only,
    terminator-only or unterminated text, yields a (possibly empty) list of
    non-overlapping sentences in increasing offset order.
    """

    def split(self, text: str) -> List[Sentence]:
        """
        Split text into sentences.

        Args:
            text: Full document text

        Returns:
            List of Sentence objects
        """
        return list(self.split_iter(text))

    def split_iter(self, text: str) -> Generator[Sentence, None, None]:
        """
        Generator version of split.

        Yields sentences one at a time.
        """
        index = 0
        paragraph = 0
        start = None  # start of the sentence being collected
        end = 0  # end of the last token seen
        previous_end = 0  # end of the last sentence yielded

        for token in _TOKEN_RE.finditer(text):
            # Each gap is searched at most twice: here and for the paragraph count
            if start is not None and _PARAGRAPH_BREAK_RE.search(text, end, token.start()):
                yield Sentence(index, text[start:end], start, end, paragraph)
                index += 1
                previous_end = end
                start = None

            if start is None:
                start = token.start()
                if index and _PARAGRAPH_BREAK_RE.search(text, previous_end, start):
                    paragraph += 1

            end = token.end()
            if _ends_sentence(token.group()):
                yield Sentence(index, text[start:end], start, end, paragraph)
                index += 1
                previous_end = end
                start = None

        if start is not None:
            yield Sentence(index, text[start:end], start, end, paragraph)


def split_into_sentences(text: str) -> List[Sentence]:
    """
    Convenience function to split text into sentences.

    Args:
        text: Text to split

    Returns:
        List of Sentence objects
    """
    return SentenceSplitter().split(text)


def sentence_gaps(text: str, sentences: List[Sentence]) -> List[str]:
    """
    Return the text between consecutive sentences.

    The result has len(sentences) + 1 entries: the gap before the first
    sentence, between each pair, and after the last one. Interleaving gaps
    and sentence spans rebuilds the text exactly.
    """
    gaps = []
    position = 0
    for sentence in sentences:
        gaps.append(text[position:sentence.start_offset])
        position = sentence.end_offset
    gaps.append(text[position:])
    return gaps
