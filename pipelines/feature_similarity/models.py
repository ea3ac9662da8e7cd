"""
Feature Models.

Responsibilities:
- Declare, per catalog, which features are compared, their types and weights.
- Extract a feature's value from a record, applying the missing-value policy.
- Select a model by name, or load one from a JSON definition file.

Non-Responsibilities:
- No similarity math (see features.py).
- No catalog access.

Invariant:
A FeatureModel is immutable once built. Every weighted feature has a type,
weights are finite and non-negative, and feature names are unique.
"""

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from catalogsim.errors import ConfigurationError
from catalogsim.normalize import is_missing
from catalogsim.schema import validate_model_definition

from .features import FeatureSimilarity, FeatureType, similarity_for

FILE_SELECTOR_PREFIX = "file:"


@dataclass(frozen=True)
class FeatureSpec:
    """One declared feature of a catalog."""

    name: str
    type: FeatureType
    weight: float
    function: FeatureSimilarity
    fields: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.fields:
            object.__setattr__(self, "fields", (self.name,))
        if self.function.feature_type != self.type:
            raise ConfigurationError(
                f"Feature '{self.name}' is declared {self.type.value} but uses a "
                f"{self.function.feature_type.value} similarity function"
            )

    def value(self, values: Mapping[str, Any]) -> Optional[Any]:
        """Return the feature value of a record, or None when it is missing."""
        if len(self.fields) == 1:
            raw = values.get(self.fields[0])
            return None if is_missing(raw) else raw
        parts = tuple(values.get(f) for f in self.fields)
        if any(is_missing(p) for p in parts):
            return None
        return parts


@dataclass(frozen=True)
class FeatureModel:
    name: str
    features: Tuple[FeatureSpec, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "features", tuple(self.features))
        seen = set()
        for spec in self.features:
            if spec.name in seen:
                raise ConfigurationError(f"Feature '{spec.name}' is declared twice in model '{self.name}'")
            seen.add(spec.name)
            if isinstance(spec.weight, bool) or not isinstance(spec.weight, (int, float)):
                raise ConfigurationError(f"Weight of '{spec.name}' must be a number")
            if math.isnan(spec.weight) or math.isinf(spec.weight) or spec.weight < 0:
                raise ConfigurationError(f"Weight of '{spec.name}' must be finite and non-negative")

    @property
    def types(self) -> Mapping[str, FeatureType]:
        return MappingProxyType({spec.name: spec.type for spec in self.features})

    @property
    def weights(self) -> Mapping[str, float]:
        return MappingProxyType({spec.name: float(spec.weight) for spec in self.features})

    @property
    def total_weight(self) -> float:
        return sum(float(spec.weight) for spec in self.features)

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": spec.name,
                "type": spec.type.value,
                "weight": spec.weight,
                "fields": list(spec.fields),
                "symmetric": spec.function.symmetric,
            }
            for spec in self.features
        ]


def _spec(name: str, ftype: FeatureType, weight: float, fields: Tuple[str, ...] = (), **params) -> FeatureSpec:
    return FeatureSpec(name, ftype, weight, similarity_for(ftype, **params), fields)


PROCESSING_LEVELS = ("0", "1", "1A", "1B", "1C", "2", "2P", "3", "4")


def podaac_model() -> FeatureModel:
    """Physical oceanography dataset metadata (PO.DAAC style field names)."""
    return FeatureModel(
        name="podaac",
        features=(
            _spec("DatasetParameter-Term", FeatureType.SET, 5),
            _spec("DatasetParameter-Variable", FeatureType.SET, 5),
            _spec("DatasetParameter-Topic", FeatureType.SET, 3),
            _spec("DatasetParameter-Category", FeatureType.SET, 1),
            _spec("DatasetSource-Sensor-ShortName", FeatureType.SET, 3),
            _spec("DatasetSource-Source-ShortName", FeatureType.SET, 3),
            _spec("DatasetRegion-Region", FeatureType.SET, 2),
            _spec("Dataset-ProcessingLevel", FeatureType.ORDINAL, 2, levels=PROCESSING_LEVELS),
            _spec("Dataset-TemporalResolution", FeatureType.CATEGORICAL, 1),
            _spec("Dataset-AcrossTrackResolution", FeatureType.NUMERIC, 1, scale=100000.0),
            _spec("DatasetPolicy-DataFormat", FeatureType.CATEGORICAL, 1),
            _spec("Dataset-ProjectionType", FeatureType.CATEGORICAL, 1),
            _spec(
                "DatasetCoverage-Extent",
                FeatureType.SPATIAL,
                2,
                (
                    "DatasetCoverage-WestLon",
                    "DatasetCoverage-SouthLat",
                    "DatasetCoverage-EastLon",
                    "DatasetCoverage-NorthLat",
                ),
            ),
            _spec(
                "DatasetCoverage-Period",
                FeatureType.TEMPORAL,
                1,
                ("DatasetCoverage-StartTimeLong", "DatasetCoverage-StopTimeLong"),
            ),
            _spec("Dataset-Description", FeatureType.TEXT, 1),
        ),
    )


def media_model() -> FeatureModel:
    """Media asset catalog (files with size, category, tags and a title)."""
    return FeatureModel(
        name="media",
        features=(
            _spec("sizeMB", FeatureType.NUMERIC, 2),
            _spec("category", FeatureType.CATEGORICAL, 1),
            _spec("tags", FeatureType.SET, 2),
            _spec("language", FeatureType.CATEGORICAL, 1),
            _spec("title", FeatureType.TEXT, 1),
        ),
    )


FEATURE_MODELS: Dict[str, Callable[[], FeatureModel]] = {
    "podaac": podaac_model,
    "media": media_model,
}


def available_models() -> List[str]:
    return sorted(FEATURE_MODELS)


def model_from_definition(data: Dict[str, Any]) -> FeatureModel:
    """Build a FeatureModel from a parsed JSON definition."""
    errors = validate_model_definition(data)
    if errors:
        raise ConfigurationError("Invalid feature model definition: " + "; ".join(errors))

    specs = []
    for feature in data["features"]:
        ftype = FeatureType(feature["type"])
        try:
            function = similarity_for(ftype, **(feature.get("params") or {}))
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Feature '{feature['name']}': invalid params: {e}")
        specs.append(
            FeatureSpec(
                name=feature["name"],
                type=ftype,
                weight=feature["weight"],
                function=function,
                fields=tuple(feature.get("fields") or ()),
            )
        )
    return FeatureModel(name=data["name"], features=tuple(specs))


def load_model_file(path: Path) -> FeatureModel:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read feature model file {path}: {e}")
    return model_from_definition(data)


def load_feature_model(selector: str) -> FeatureModel:
    """
    Resolve a model selector.

    Args:
        selector: A registered model name, or "file:<path>" for a JSON definition

    Raises:
        ConfigurationError: Unknown name, unreadable file or invalid definition
    """
    if not selector or not selector.strip():
        raise ConfigurationError("No feature model selected")
    selector = selector.strip()
    if selector.startswith(FILE_SELECTOR_PREFIX):
        return load_model_file(Path(selector[len(FILE_SELECTOR_PREFIX):]))
    factory = FEATURE_MODELS.get(selector.lower())
    if factory is None:
        raise ConfigurationError(
            f"Unknown feature model '{selector}'. Available: {', '.join(available_models())}"
        )
    return factory()
