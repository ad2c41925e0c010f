from pinforge.models import CharacterStyle, ImageElement, TextElement
from pinforge.text import (
    FitCache,
    FitConstraints,
    TextMetrics,
    apply_text_transform,
    best_fit_font_size,
    extract_dynamic_fields,
    resolve_element,
    resolve_image_url,
    resolve_text,
    wrap_words,
)
from pinforge.text.character_styles import (
    adjust_styles_after_text_change,
    apply_style_to_range,
    normalize_styles,
    style_runs,
)


def block_measure(line_height: float = 1.0):
    """Every character is one font-size wide; words wrap greedily."""
    calls = []

    def measure(text: str, size: float, max_width: float) -> TextMetrics:
        calls.append(size)
        lines = wrap_words(text, max_width, lambda s: len(s) * size)
        return TextMetrics(
            width=max(len(line) for line in lines) * size,
            height=len(lines) * size * line_height,
            line_count=len(lines),
            lines=lines,
        )

    measure.calls = calls
    return measure


# ---------------------------------------------------------------------------
# Field substitution


def test_resolve_text_replaces_mapped_fields_and_transforms():
    text = resolve_text("Hello {{name}}!", {"first_name": "world"}, {"name": "first_name"}, "uppercase")
    assert text == "HELLO WORLD!"


def test_resolve_text_falls_back_to_column_with_field_name():
    assert resolve_text("{{city}} deals", {"city": "Oslo"}, {}) == "Oslo deals"


def test_missing_field_becomes_empty_string():
    assert resolve_text("Price: {{price}}", {}, {}) == "Price: "


def test_capitalize_uppercases_each_word_start():
    assert apply_text_transform("summer sale - up to 50% off", "capitalize") == "Summer Sale - Up To 50% Off"


def test_unknown_transform_leaves_text():
    assert apply_text_transform("MiXeD", "small-caps") == "MiXeD"


def test_dynamic_image_uses_mapped_column_when_it_looks_like_url():
    element = ImageElement(id="img", image_url="https://static/fallback.png", is_dynamic=True, dynamic_source="photo")
    row = {"Photo URL": "https://cdn.example.com/a.jpg"}
    assert resolve_image_url(element, row, {"photo": "Photo URL"}) == "https://cdn.example.com/a.jpg"


def test_dynamic_image_ignores_non_url_value():
    element = ImageElement(id="img", image_url="https://static/fallback.png", is_dynamic=True, dynamic_source="photo")
    assert resolve_image_url(element, {"photo": "not a url"}, {}) == "https://static/fallback.png"


def test_static_image_url_tokens_are_substituted():
    element = ImageElement(id="img", image_url="https://cdn.example.com/{{sku}}.png")
    assert resolve_image_url(element, {"sku": "A-1"}, {}) == "https://cdn.example.com/A-1.png"


def test_resolve_element_returns_copy():
    element = TextElement(id="t", text="{{title}}", text_transform="uppercase")
    resolved = resolve_element(element, {"title": "hello"}, {})
    assert resolved.text == "HELLO"
    assert element.text == "{{title}}"
    assert element.text_transform == "uppercase"


def test_extract_dynamic_fields_is_ordered_and_unique():
    elements = [
        TextElement(id="a", text="{{title}} by {{author}}"),
        ImageElement(id="b", is_dynamic=True, dynamic_source="photo"),
        TextElement(id="c", text="{{ title }}"),
    ]
    assert extract_dynamic_fields(elements) == ["title", "author", "photo"]


# ---------------------------------------------------------------------------
# Auto-fit


def test_best_fit_stays_within_bounds():
    constraints = FitConstraints(min_font_size=8, max_font_size=48)
    size = best_fit_font_size("Hi", 500, 500, constraints, block_measure())
    assert size == 48

    size = best_fit_font_size("A very long headline " * 20, 60, 40, constraints, block_measure())
    assert size == 8


def test_best_fit_returns_min_for_empty_text():
    assert best_fit_font_size("   ", 300, 300, FitConstraints(), block_measure()) == 8


def test_best_fit_never_grows_as_box_shrinks():
    text = "Fresh picks for your autumn table"
    constraints = FitConstraints()
    sizes = [best_fit_font_size(text, width, 300, constraints, block_measure()) for width in (600, 400, 250, 150)]
    assert sizes == sorted(sizes, reverse=True)


def test_max_lines_is_a_soft_limit():
    text = "one two three four"
    # every size wraps to at least two lines in this box
    narrow = FitConstraints(min_font_size=8, max_font_size=20, padding=0, safety_margin=0, max_lines=1)
    size = best_fit_font_size(text, 50, 400, narrow, block_measure())
    assert 8 <= size <= 20


def test_fit_cache_reuses_result():
    cache = FitCache()
    measure = block_measure()
    constraints = FitConstraints()
    first = cache.get_or_compute("Sale", 300, 200, constraints, measure)
    calls = len(measure.calls)
    second = cache.get_or_compute("Sale", 300, 200, constraints, measure)
    assert first == second
    assert len(measure.calls) == calls
    assert len(cache) == 1


def test_wrap_words_keeps_long_word_whole():
    lines = wrap_words("tiny supercalifragilistic word", 10, len)
    assert lines == ["tiny", "supercalifragilistic", "word"]


# ---------------------------------------------------------------------------
# Character styles


def test_normalize_merges_adjacent_identical_ranges():
    styles = [
        CharacterStyle(start=0, end=2, fill="red"),
        CharacterStyle(start=3, end=5, fill="red"),
    ]
    merged = normalize_styles(styles, 10)
    assert [(s.start, s.end, s.fill) for s in merged] == [(0, 5, "red")]


def test_normalize_clamps_and_drops_empty_ranges():
    styles = [
        CharacterStyle(start=4, end=40, fill="blue"),
        CharacterStyle(start=6, end=2, fill="red"),
        CharacterStyle(start=0, end=1),
    ]
    merged = normalize_styles(styles, 8)
    assert [(s.start, s.end) for s in merged] == [(4, 7)]


def test_apply_style_splits_overlaps():
    styles = [CharacterStyle(start=0, end=10, fill="red")]
    result = apply_style_to_range(styles, 5, 15, text_length=16, font_weight=700)
    spans = [(s.start, s.end, s.fill, s.font_weight) for s in result]
    assert spans == [(0, 4, "red", None), (5, 10, "red", 700), (11, 15, None, 700)]


def test_styles_follow_inserted_text():
    styles = [CharacterStyle(start=5, end=8, fill="red")]
    shifted = adjust_styles_after_text_change(styles, 0, 3)
    assert (shifted[0].start, shifted[0].end) == (8, 11)


def test_style_runs_split_on_property_change():
    styles = [CharacterStyle(start=2, end=3, fill="red")]
    assert style_runs("abcdef", styles) == [("ab", {}), ("cd", {"fill": "red"}), ("ef", {})]
