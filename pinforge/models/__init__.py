"""Data models."""

from .campaign import Campaign, CampaignStatus, DistributionMode
from .element import (
    AnyElement,
    CharacterStyle,
    Element,
    FrameElement,
    ImageElement,
    ShapeElement,
    TextElement,
    clone_element,
    element_from_dict,
    elements_from_list,
)
from .progress import ProgressRecord
from .result import RenderResult
from .template import Template

__all__ = [
    "AnyElement",
    "Campaign",
    "CampaignStatus",
    "CharacterStyle",
    "DistributionMode",
    "Element",
    "FrameElement",
    "ImageElement",
    "ProgressRecord",
    "RenderResult",
    "ShapeElement",
    "Template",
    "TextElement",
    "clone_element",
    "element_from_dict",
    "elements_from_list",
]
