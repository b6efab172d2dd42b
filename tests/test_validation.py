"""Tests for required-field validation"""
import pytest
from intake.models import ExtractedFormData
from intake.validation import REQUIRED_FIELDS, validate


def test_validate_empty_reports_all_in_fixed_order():
    result = validate({})

    assert list(result.missing_required) == ["name", "quantity", "purchase_price", "purchase_url"]
    assert list(result.missing_labels) == ["Name", "Quantity", "Purchase price", "Purchase URL"]
    assert result.is_complete is False


def test_validate_none_is_total():
    assert validate(None).missing_required == REQUIRED_FIELDS


def test_zero_values_are_not_missing():
    result = validate({"name": "x", "quantity": 0, "purchase_price": 0, "purchase_url": "http://a"})

    assert result.is_complete is True
    assert result.missing_required == ()


@pytest.mark.parametrize("field", REQUIRED_FIELDS)
@pytest.mark.parametrize("blank", ["", None, "absent"])
def test_blank_values_are_missing(field, blank):
    data = {"name": "x", "quantity": 2, "purchase_price": 1.5, "purchase_url": "http://a"}
    if blank == "absent":
        del data[field]
    else:
        data[field] = blank

    assert validate(data).missing_required == (field,)


def test_order_ignores_input_order():
    result = validate({"purchase_url": "", "name": None})

    assert list(result.missing_required) == ["name", "quantity", "purchase_price", "purchase_url"]


def test_validate_model():
    data = ExtractedFormData(name="Arduino Uno", quantity=3)

    result = validate(data)
    assert list(result.missing_required) == ["purchase_price", "purchase_url"]
    assert result.as_dict() == {
        "missing_required": ["purchase_price", "purchase_url"],
        "missing_labels": ["Purchase price", "Purchase URL"],
        "is_complete": False,
    }
