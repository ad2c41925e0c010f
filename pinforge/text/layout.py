"""Word-wrap text layout and measurement with Pillow.

Auto-fit measures with the same wrap policy the renderer paints with, so a
size chosen by the search is the size that fits when drawn.
"""

from dataclasses import dataclass, field
from typing import Callable

from PIL import Image, ImageDraw, ImageFont

DEFAULT_LINE_HEIGHT = 1.2

# one scratch surface for textlength() calls
_SCRATCH = ImageDraw.Draw(Image.new("L", (1, 1)))


@dataclass
class TextMetrics:
    width: float
    height: float
    line_count: int
    lines: list[str] = field(default_factory=list)


def char_spacing_px(letter_spacing: float | None, font_size: float) -> float:
    """Pixels between glyphs. Canvas char spacing is letter_spacing * 10, in 1/1000 em."""
    if not letter_spacing:
        return 0.0
    return letter_spacing * 10 / 1000 * font_size


def line_width(text: str, font: ImageFont.ImageFont, spacing: float = 0.0) -> float:
    """Advance width of one line, letter spacing included."""
    if not text:
        return 0.0
    width = _SCRATCH.textlength(text, font=font)
    if spacing:
        width += spacing * (len(text) - 1)
    return width


def wrap_words(text: str, max_width: float, width_of: Callable[[str], float]) -> list[str]:
    """
    Greedy word wrap. Breaks only between words; a word wider than the box
    stays whole on its own line. Explicit newlines always break.
    """
    lines: list[str] = []
    for paragraph in text.split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            test = f"{current} {word}" if current else word
            if width_of(test) <= max_width or not current:
                current = test
            else:
                lines.append(current)
                current = word
        lines.append(current)
    return lines


class PillowTextMeasurer:
    """Measure wrapped text for a font loader `size -> ImageFont`."""

    def __init__(
        self,
        font_loader: Callable[[int], ImageFont.ImageFont],
        line_height: float | None = None,
        letter_spacing: float | None = None,
    ):
        self.font_loader = font_loader
        self.line_height = line_height or DEFAULT_LINE_HEIGHT
        self.letter_spacing = letter_spacing

    def layout(self, text: str, font_size: float, max_width: float) -> TextMetrics:
        size = max(1, int(round(font_size)))
        font = self.font_loader(size)
        spacing = char_spacing_px(self.letter_spacing, size)
        lines = wrap_words(text, max_width, lambda s: line_width(s, font, spacing))
        width = max((line_width(line, font, spacing) for line in lines), default=0.0)
        height = len(lines) * size * self.line_height
        return TextMetrics(width=width, height=height, line_count=len(lines), lines=lines)

    def __call__(self, text: str, font_size: float, max_width: float) -> TextMetrics:
        return self.layout(text, font_size, max_width)
