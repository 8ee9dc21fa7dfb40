import pytest

from sideview_builder.elements import ElementCounts, ElementKind, ElementTag, tag_universe


def test_default_counts_total_31_vetoes():
    counts = ElementCounts()
    assert counts.total_vetoes == 31
    assert counts.total == 40
    assert counts.count(ElementKind.BAR) == 9
    assert counts.count(ElementKind.VETO) == 31


def test_negative_counts_rejected():
    with pytest.raises(ValueError):
        ElementCounts(bars=-1)


def test_tag_universe_order():
    tags = tag_universe(ElementCounts())
    assert len(tags) == 40
    assert tags[:9] == [f"b{i}" for i in range(1, 10)]
    assert tags[9:] == [f"v{i}" for i in range(1, 32)]
    # position 26 (1-based) is the 17th veto
    assert tags[25] == "v17"


def test_tag_universe_quad_crystal():
    tags = tag_universe(ElementCounts(crystal_vetoes=4))
    assert len(tags) == 43
    assert tags[-1] == "v34"


def test_tag_parse_and_str():
    tag = ElementTag.parse("v17")
    assert tag == ElementTag(ElementKind.VETO, 17)
    assert str(tag) == "v17"
    assert str(ElementTag.parse(" b3 ")) == "b3"


@pytest.mark.parametrize("text", ["", "b", "x3", "b0", "v-1", "b1.5", "3"])
def test_tag_parse_rejects_garbage(text):
    with pytest.raises(ValueError):
        ElementTag.parse(text)
