import pytest

from pinforge.clients.images import ImageFetcher, decode_data_uri, unwrap_proxy_url
from pinforge.errors import RowRenderError
from pinforge.fonts import generic_family
from pinforge.models import ImageElement, ShapeElement, Template, TextElement
from pinforge.render import HeadlessRenderer, encode_jpeg, fit_geometry, parse_color
from pinforge.render.parity import background_chip_box, text_paint_style


def pixel(image, x, y):
    return image.convert("RGBA").getpixel((x, y))


# ---------------------------------------------------------------------------
# Shared parity rules


def test_fit_geometry_fill_stretches_each_axis():
    geometry = fit_geometry("fill", 100, 100, (0, 0, 200, 50))
    assert (geometry.scale_x, geometry.scale_y) == (2, 0.5)
    assert (geometry.left, geometry.top) == (0, 0)


def test_fit_geometry_contain_centers_inside_box():
    geometry = fit_geometry("contain", 100, 100, (0, 0, 200, 50))
    assert geometry.scale_x == geometry.scale_y == 0.5
    assert (geometry.left, geometry.top) == (75, 0)
    assert geometry.clip is None


def test_fit_geometry_cover_fills_and_clips():
    geometry = fit_geometry("cover", 100, 100, (10, 20, 200, 50))
    assert geometry.scale_x == 2
    assert geometry.draw_height == 200
    assert geometry.clip == (10, 20, 200, 50)
    assert geometry.top == 20 - 75


def test_fit_geometry_rejects_empty_image():
    with pytest.raises(ValueError):
        fit_geometry("contain", 0, 10, (0, 0, 10, 10))


def test_parse_color_formats():
    assert parse_color("#f00") == (255, 0, 0, 255)
    assert parse_color("rgba(0, 0, 255, 0.5)") == (0, 0, 255, 128)
    assert parse_color("transparent") is None
    assert parse_color("nonsense", (1, 2, 3, 255)) == (1, 2, 3, 255)


def test_hollow_text_has_no_fill():
    element = TextElement(id="t", hollow_text=True, fill="#ff0000", stroke="#000000", stroke_width=2)
    style = text_paint_style(element)
    assert style.fill is None
    assert style.stroke == "#000000"


def test_background_chip_padding():
    element = TextElement(id="t", x=10, y=20, width=100, height=40, background_enabled=True, background_padding=5)
    chip = background_chip_box(element)
    assert (chip.left, chip.top, chip.width, chip.height) == (-5, -5, 110, 50)


def test_generic_family():
    assert generic_family("Playfair Display") == "serif"
    assert generic_family("Open Sans") == "sans-serif"
    assert generic_family("Fira Code") == "monospace"
    assert generic_family("Dancing Script") == "cursive"


def test_image_source_helpers():
    assert unwrap_proxy_url("/api/proxy-image?url=https%3A%2F%2Fx.com%2Fa.png") == "https://x.com/a.png"
    assert unwrap_proxy_url("https://x.com/a.png") == "https://x.com/a.png"
    assert decode_data_uri("data:text/plain,hi%20there") == b"hi there"


# ---------------------------------------------------------------------------
# Headless renderer


def test_renders_shape_on_background(renderer, square_template):
    image = renderer.render(square_template)
    assert image.size == (100, 100)
    r, g, b, _ = pixel(image, 35, 35)
    assert r > 200 and g < 50 and b < 50
    assert pixel(image, 90, 90)[:3] == (255, 255, 255)


def test_hidden_elements_are_not_painted(renderer):
    template = Template(id="t", width=50, height=50, elements=[
        ShapeElement(id="s", width=50, height=50, fill="#000000", visible=False),
    ])
    assert pixel(renderer.render(template), 25, 25)[:3] == (255, 255, 255)


def test_higher_z_index_paints_on_top(renderer):
    template = Template(id="t", width=50, height=50, elements=[
        ShapeElement(id="red", width=50, height=50, fill="#ff0000", z_index=2),
        ShapeElement(id="blue", width=50, height=50, fill="#0000ff", z_index=1),
    ])
    r, g, b, _ = pixel(renderer.render(template), 25, 25)
    assert r > 200 and b < 50


def test_image_from_data_uri_fills_box(renderer, png_data_uri):
    template = Template(id="t", width=60, height=60, elements=[
        ImageElement(id="img", x=0, y=0, width=60, height=60, image_url=png_data_uri((0, 200, 0, 255))),
    ])
    r, g, b, _ = pixel(renderer.render(template), 30, 30)
    assert g > 150 and r < 50 and b < 50


class UnreachableFetcher(ImageFetcher):
    def _download(self, src: str) -> bytes:
        raise OSError(f"connection refused for {src}")


def test_failed_image_becomes_placeholder(offline_fonts):
    renderer = HeadlessRenderer(font_registry=offline_fonts, image_fetcher=UnreachableFetcher())
    template = Template(id="t", width=60, height=60, elements=[
        ImageElement(id="img", width=60, height=60, image_url="https://cdn.example.com/missing.png"),
    ])
    output = renderer.render_row(template, {}, {}, row_index=4)
    assert output.image_failures == 1
    assert any("img" in warning for warning in output.warnings)
    assert output.image.size == (60, 60)


def test_failed_image_can_fail_the_row(offline_fonts):
    renderer = HeadlessRenderer(
        font_registry=offline_fonts, image_fetcher=UnreachableFetcher(), image_failure_fails_row=True
    )
    template = Template(id="t", width=60, height=60, elements=[
        ImageElement(id="img", width=60, height=60, image_url="https://cdn.example.com/missing.png"),
    ])
    with pytest.raises(RowRenderError) as exc:
        renderer.render_row(template, {}, {}, row_index=4)
    assert exc.value.row_index == 4


def test_text_is_painted_from_row(renderer):
    template = Template(id="t", width=200, height=80, elements=[
        TextElement(id="title", x=0, y=0, width=200, height=80, text="{{title}}", font_size=32, fill="#000000"),
    ])
    image = renderer.render(template, {"title": "HELLO"})
    dark = [p for p in image.convert("L").getdata() if p < 128]
    assert dark

    blank = renderer.render(template, {})
    assert not [p for p in blank.convert("L").getdata() if p < 128]


def test_rendering_does_not_mutate_template(renderer):
    element = TextElement(id="title", width=200, height=80, text="{{title}}", auto_fit_text=True)
    template = Template(id="t", width=200, height=80, elements=[element])
    renderer.render(template, {"title": "Changed"})
    assert element.text == "{{title}}"
    assert element.font_size == 24


def test_encode_jpeg(renderer, square_template):
    data = renderer.render_jpeg(square_template, quality=80)
    assert data[:2] == b"\xff\xd8"
    assert encode_jpeg(renderer.render(square_template))[:2] == b"\xff\xd8"
