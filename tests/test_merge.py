"""Tests for merging extraction results and manual input"""
from intake.merge import apply_manual, merge_extraction, merge_fields
from intake.models import ExtractedFormData


def _prior():
    return ExtractedFormData(
        name="Widget",
        description="Blue widget",
        quantity=2,
        tags=["widget"],
        specifications={"Color": "blue"},
    )


def test_fresh_field_overwrites_only_that_field():
    prior = _prior()

    merged = merge_extraction(prior, ExtractedFormData(location="Bin 4"))

    expected = prior.model_dump()
    expected["location"] = "Bin 4"
    assert merged.model_dump() == expected


def test_absent_and_blank_fresh_fields_never_clobber():
    prior = _prior()

    merged = merge_extraction(prior, ExtractedFormData(name="", description=None))

    assert merged.model_dump() == prior.model_dump()


def test_merge_does_not_mutate_inputs():
    prior = _prior()
    fresh = ExtractedFormData(tags=["new"])

    merged = merge_extraction(prior, fresh)
    merged.tags.append("changed")

    assert prior.tags == ["widget"]
    assert fresh.tags == ["new"]


def test_reapplying_same_fresh_is_noop():
    prior = _prior()
    fresh = ExtractedFormData(quantity=5, purchase_price=9.99)

    once = merge_extraction(prior, fresh)
    twice = merge_extraction(once, fresh)

    assert twice.model_dump() == once.model_dump()


def test_sequential_merges_equal_merge_of_union():
    prior = _prior()
    a = ExtractedFormData(quantity=5, location="Shelf A", purchase_price=1.0)
    b = ExtractedFormData(location="Shelf B", purchase_url="http://shop/x")

    sequential = merge_extraction(merge_extraction(prior, a), b)
    combined = merge_extraction(prior, merge_fields(a, b))

    assert sequential.model_dump() == combined.model_dump()
    assert combined.location == "Shelf B"


def test_supplemental_merge_example():
    merged = merge_extraction(
        ExtractedFormData(name="Widget"),
        ExtractedFormData(quantity=5, purchase_price=9.99),
    )

    assert merged.model_dump(exclude_none=True) == {
        "name": "Widget",
        "quantity": 5,
        "purchase_price": 9.99,
    }


def test_manual_blank_never_overwrites():
    data = ExtractedFormData(name="Arduino Uno")

    assert apply_manual(data, {"name": ""}).name == "Arduino Uno"
    assert apply_manual(data, {"name": "   "}).name == "Arduino Uno"
    assert apply_manual(data, {"name": None}).name == "Arduino Uno"


def test_manual_fills_missing_fields():
    data = ExtractedFormData(name="Arduino Uno")

    merged = apply_manual(data, {"quantity": 3, "purchase_url": "http://shop/x"})

    assert merged.model_dump(exclude_none=True) == {
        "name": "Arduino Uno",
        "quantity": 3,
        "purchase_url": "http://shop/x",
    }


def test_manual_ignores_non_required_fields():
    merged = apply_manual(ExtractedFormData(), {"notes": "typed by hand"})

    assert merged.notes is None


def test_manual_and_supplemental_commute_on_disjoint_fields():
    prior = ExtractedFormData(name="Widget")
    fresh = ExtractedFormData(purchase_price=9.99)
    manual = {"quantity": 4}

    one = apply_manual(merge_extraction(prior, fresh), manual)
    other = merge_extraction(apply_manual(prior, manual), fresh)

    assert one.model_dump() == other.model_dump()
