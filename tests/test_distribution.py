from collections import Counter

import pytest

from pinforge.errors import ConfigurationError
from pinforge.models import DistributionMode, Template
from pinforge.pipeline import SeededRandom, TemplateDistributor


@pytest.fixture
def templates():
    return [
        Template(id="t-a", name="Bold Recipe", short_id="br"),
        Template(id="t-b", name="Minimal Quote", short_id="mq"),
        Template(id="t-c", name="Photo Grid", short_id="pg"),
    ]


def test_seeded_random_is_reproducible():
    first, second = SeededRandom(42), SeededRandom(42)
    values = [first() for _ in range(5)]
    assert values == [second() for _ in range(5)]
    assert all(0 <= v < 1 for v in values)
    assert values != [SeededRandom(43)() for _ in range(5)]


def test_sequential_round_robin(templates):
    distributor = TemplateDistributor(templates, DistributionMode.SEQUENTIAL, 7)
    assert [distributor.assign(i).template.id for i in range(5)] == ["t-a", "t-b", "t-c", "t-a", "t-b"]


def test_equal_uses_consecutive_chunks(templates):
    distributor = TemplateDistributor(templates, DistributionMode.EQUAL, 10)
    ids = [distributor.assign(i).template.id for i in range(10)]
    # chunk size ceil(10 / 3) = 4, the last template gets the remainder
    assert ids == ["t-a"] * 4 + ["t-b"] * 4 + ["t-c"] * 2
    assert distributor.expected_counts() == {"t-a": 4, "t-b": 4, "t-c": 2}


def test_random_with_seed_is_stable(templates):
    first = TemplateDistributor(templates, DistributionMode.RANDOM, 50, seed=7)
    second = TemplateDistributor(templates, DistributionMode.RANDOM, 50, seed=7)
    picks = [first.assign(i).template_index for i in range(50)]
    assert picks == [second.assign(i).template_index for i in range(50)]
    assert set(Counter(picks)) <= {0, 1, 2}


def test_csv_column_matching(templates):
    distributor = TemplateDistributor(templates, DistributionMode.CSV_COLUMN, 4)
    assert distributor.assign(0, {"template": "MQ"}).template.id == "t-b"
    assert distributor.assign(1, {"Template": "photo grid"}).template.id == "t-c"
    assert distributor.assign(2, {"template": "recipe"}).template.id == "t-a"


def test_csv_column_falls_back_with_warning(templates):
    distributor = TemplateDistributor(templates, DistributionMode.CSV_COLUMN, 2)
    missing = distributor.assign(0, {"title": "no column"})
    unknown = distributor.assign(1, {"template": "does-not-exist"})
    assert missing.template.id == unknown.template.id == "t-a"
    assert missing.warning and unknown.warning
    assert distributor.expected_counts() == {"t-a": -1, "t-b": -1, "t-c": -1}


def test_single_template_always_wins(templates):
    distributor = TemplateDistributor(templates[:1], DistributionMode.CSV_COLUMN, 3)
    assignment = distributor.assign(0, {"template": "Minimal Quote"})
    assert assignment.template.id == "t-a"
    assert assignment.warning is None


def test_preview_does_not_consume_live_sequence(templates):
    live = TemplateDistributor(templates, DistributionMode.RANDOM, 20, seed=99)
    reference = TemplateDistributor(templates, DistributionMode.RANDOM, 20, seed=99)
    preview = live.preview(sample_size=5)
    assert [p["row_index"] for p in preview] == [0, 1, 2, 3, 4]
    assert preview == live.preview(sample_size=5)
    assert live.assign(0).template_index == reference.assign(0).template_index


def test_sequential_expected_counts(templates):
    distributor = TemplateDistributor(templates, DistributionMode.SEQUENTIAL, 7)
    assert distributor.expected_counts() == {"t-a": 3, "t-b": 2, "t-c": 2}


def test_no_templates_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        TemplateDistributor([], DistributionMode.SEQUENTIAL, 3)
