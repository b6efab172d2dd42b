"""Field-level merging of extraction results and manual input.

A field set in the overriding source replaces the prior value; a blank field
(None or empty string) never does. Inputs are never mutated.
"""
import copy
from typing import Any, Mapping, Union

from .models import ExtractedFormData
from .validation import REQUIRED_FIELDS, is_blank


FieldSource = Union[ExtractedFormData, Mapping[str, Any]]


def _present(source: FieldSource) -> dict:
    if isinstance(source, ExtractedFormData):
        return source.present()
    return {key: value for key, value in source.items() if not is_blank(value)}


def merge_fields(a: FieldSource, b: FieldSource) -> dict:
    """Union of the present fields of ``a`` and ``b``; ``b`` wins on overlap"""
    merged = _present(a)
    merged.update(_present(b))
    return merged


def merge_extraction(prior: ExtractedFormData, fresh: FieldSource) -> ExtractedFormData:
    """Overlay the present fields of a newer extraction onto ``prior``"""
    update = copy.deepcopy(_present(fresh))
    return prior.model_copy(update=update, deep=True)


def apply_manual(data: ExtractedFormData, manual_inputs: Mapping[str, Any]) -> ExtractedFormData:
    """Overlay user-typed values for required fields; blanks are dropped"""
    values = {
        key: value
        for key, value in manual_inputs.items()
        if key in REQUIRED_FIELDS and not (isinstance(value, str) and not value.strip())
    }
    return merge_extraction(data, values)
