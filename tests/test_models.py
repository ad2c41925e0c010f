import pytest

from pinforge.errors import ConfigurationError
from pinforge.models import (
    Campaign,
    CampaignStatus,
    DistributionMode,
    ImageElement,
    ProgressRecord,
    ShapeElement,
    Template,
    TextElement,
    clone_element,
    element_from_dict,
)
from pinforge.models.element import camel_to_snake, snake_to_camel


def test_case_conversion():
    assert camel_to_snake("shadowOffsetX") == "shadow_offset_x"
    assert snake_to_camel("auto_fit_text") == "autoFitText"


def test_element_from_dict_picks_variant_and_keeps_unknown_keys():
    element = element_from_dict({
        "id": "title",
        "type": "text",
        "text": "{{headline}}",
        "fontFamily": "Playfair Display",
        "zIndex": 3,
        "autoFitText": True,
        "characterStyles": [{"start": 0, "end": 3, "fill": "#ff0000"}],
        "editorHint": {"pinned": True},
    })
    assert isinstance(element, TextElement)
    assert element.font_family == "Playfair Display"
    assert element.z_index == 3
    assert element.auto_fit_text is True
    assert element.character_styles[0].fill == "#ff0000"
    assert element.extra == {"editorHint": {"pinned": True}}

    data = element.to_dict()
    assert data["type"] == "text"
    assert data["zIndex"] == 3
    assert data["editorHint"] == {"pinned": True}
    assert data["characterStyles"] == [{"start": 0, "end": 3, "fill": "#ff0000"}]


def test_explicit_nulls_survive_round_trip():
    data = {"id": "t", "type": "text", "text": "Hi", "fontUrl": None, "maxLines": None}
    element = element_from_dict(data)
    assert element.font_url is None

    out = element.to_dict()
    assert "fontUrl" in out and out["fontUrl"] is None
    assert out["maxLines"] is None
    # fields that were simply absent stay absent
    assert "verticalAlign" not in out
    assert element_from_dict(out) == element


def test_unknown_element_type_is_rejected():
    with pytest.raises(ConfigurationError):
        element_from_dict({"id": "x", "type": "video"})


def test_clone_is_independent():
    shape = ShapeElement(id="s", points=[0, 0, 10, 10])
    copy = clone_element(shape)
    copy.points.append(20)
    assert shape.points == [0, 0, 10, 10]


def test_image_fit_mode_defaults():
    assert ImageElement(id="a").effective_fit_mode == "fill"
    assert ImageElement(id="b", is_dynamic=True).effective_fit_mode == "contain"
    assert ImageElement(id="c", fit_mode="cover", is_dynamic=True).effective_fit_mode == "cover"


def test_template_round_trip():
    data = {
        "id": "t1",
        "name": "Recipe card",
        "canvas_size": {"width": 1000, "height": 1500},
        "background_color": "#fafafa",
        "short_id": "rc",
        "elements": [
            {"id": "bg", "type": "shape", "shapeType": "rect", "width": 1000, "height": 1500},
            {"id": "photo", "type": "image", "imageUrl": "https://cdn.example.com/a.jpg", "zIndex": 1},
        ],
    }
    template = Template.from_dict(data)
    assert template.width == 1000
    assert [e.type for e in template.elements] == ["shape", "image"]
    assert Template.from_dict(template.to_dict()).to_dict() == template.to_dict()


def test_paint_order_sorts_by_z_and_skips_hidden():
    template = Template(id="t", elements=[
        ShapeElement(id="top", z_index=5),
        ShapeElement(id="hidden", z_index=1, visible=False),
        ShapeElement(id="bottom", z_index=0),
        ShapeElement(id="also-bottom", z_index=0),
    ])
    assert [e.id for e in template.paint_order()] == ["bottom", "also-bottom", "top"]


def test_campaign_from_record():
    record = {
        "id": "c9",
        "user_id": "u1",
        "name": "Autumn",
        "csv_data": [{"title": "a"}, {"title": "b"}],
        "field_mapping": {"headline": "title"},
        "distribution_mode": "equal",
        "status": "processing",
    }
    campaign = Campaign.from_record(record, [Template(id="t")])
    assert campaign.total == 2
    assert campaign.distribution_mode is DistributionMode.EQUAL
    assert campaign.status is CampaignStatus.PROCESSING
    assert not campaign.status.is_terminal


def test_progress_record_percentage_and_done():
    record = ProgressRecord(campaign_id="c", total=8, completed=5, failed=1)
    assert record.processed == 6
    assert record.percentage == 75
    assert not record.is_done
    record.completed = 7
    assert record.is_done
    assert record.to_dict()["campaignId"] == "c"
