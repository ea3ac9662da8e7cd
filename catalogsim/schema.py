import math
from typing import Any, Dict, List, Sequence, Tuple

# Keep in sync with pipelines.feature_similarity.features.FeatureType
FEATURE_TYPES = ("categorical", "ordinal", "numeric", "set", "text", "spatial", "temporal")
MULTI_FIELD_TYPES = {"spatial": 4, "temporal": 2}


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_record(data: Any, id_field: str) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Only the identifier is required; feature fields may be absent (missing
    features are left out of a pair).
    """
    if not isinstance(data, dict):
        return ["Record must be a JSON object"]

    errors: List[str] = []
    if id_field not in data:
        errors.append(f"Missing required field: {id_field}")
    elif not _is_non_empty_str(data[id_field]):
        errors.append(f"Field '{id_field}' must be a non-empty string")
    return errors


def validate_records(docs: Sequence[Any], id_field: str) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Validate a batch of raw records.

    Returns:
        Tuple of (valid records, error messages). Records with a duplicate
        identifier after the first occurrence are rejected.
    """
    valid: List[Dict[str, Any]] = []
    errors: List[str] = []
    seen = set()
    for position, doc in enumerate(docs):
        problems = validate_record(doc, id_field)
        if problems:
            errors.extend(f"Record #{position}: {p}" for p in problems)
            continue
        record_id = doc[id_field].strip()
        if record_id in seen:
            errors.append(f"Record #{position}: duplicate {id_field} '{record_id}'")
            continue
        seen.add(record_id)
        valid.append(doc)
    return valid, errors


def validate_model_definition(data: Any) -> List[str]:
    """
    Validate a feature model definition loaded from JSON.

    Expected shape:
        {"name": "...", "features": [{"name": ..., "type": ..., "weight": ...,
          "fields": [...], "params": {...}}, ...]}
    """
    if not isinstance(data, dict):
        return ["Model definition must be a JSON object"]

    errors: List[str] = []
    if not _is_non_empty_str(data.get("name")):
        errors.append("Field 'name' must be a non-empty string")

    features = data.get("features")
    if not isinstance(features, list):
        errors.append("Field 'features' must be a list")
        return errors

    names = set()
    for position, feature in enumerate(features):
        where = f"features[{position}]"
        if not isinstance(feature, dict):
            errors.append(f"{where} must be an object")
            continue

        name = feature.get("name")
        if not _is_non_empty_str(name):
            errors.append(f"{where}.name must be a non-empty string")
        elif name in names:
            errors.append(f"{where}.name '{name}' is declared twice")
        else:
            names.add(name)

        ftype = feature.get("type")
        if ftype not in FEATURE_TYPES:
            errors.append(f"{where}.type must be one of: {', '.join(FEATURE_TYPES)}")

        weight = feature.get("weight")
        if isinstance(weight, bool) or not isinstance(weight, (int, float)):
            errors.append(f"{where}.weight must be a number")
        elif math.isnan(weight) or math.isinf(weight) or weight < 0:
            errors.append(f"{where}.weight must be finite and non-negative")

        fields = feature.get("fields")
        if fields is not None:
            if not isinstance(fields, list) or not all(_is_non_empty_str(f) for f in fields):
                errors.append(f"{where}.fields must be a list of field names")
            elif ftype in MULTI_FIELD_TYPES and len(fields) != MULTI_FIELD_TYPES[ftype]:
                errors.append(
                    f"{where}.fields must name {MULTI_FIELD_TYPES[ftype]} fields for a {ftype} feature"
                )
        elif ftype in MULTI_FIELD_TYPES:
            errors.append(f"{where}.fields is required for a {ftype} feature")

        params = feature.get("params")
        if params is not None and not isinstance(params, dict):
            errors.append(f"{where}.params must be an object")

    return errors
