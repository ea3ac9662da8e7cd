"""
Per-Feature Similarity Functions.

Responsibilities:
- Compute a similarity score in [0, 1] between two values of one feature type.
- Coerce raw catalog values (strings, lists, epoch millis) to the declared type.

Non-Responsibilities:
- No missing-value handling (callers omit features a record does not supply).
- No weighting logic.
- No persistence.

Invariant:
Every function is deterministic and total for values of its type.
Symmetric functions return exactly 1.0 for identical values.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Type

from catalogsim.normalize import normalize_text, split_values, to_float, to_timestamp, tokenize


class FeatureType(str, Enum):
    CATEGORICAL = "categorical"
    ORDINAL = "ordinal"
    NUMERIC = "numeric"
    SET = "set"
    TEXT = "text"
    SPATIAL = "spatial"
    TEMPORAL = "temporal"


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class FeatureSimilarity(ABC):
    """Similarity between two values of one feature type."""

    feature_type: FeatureType
    symmetric: bool = True

    @abstractmethod
    def similarity(self, a: Any, b: Any) -> float:
        """Return a score in [0, 1]. Raises ValueError/TypeError on malformed values."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CategoricalSimilarity(FeatureSimilarity):
    """Exact match after case and whitespace folding."""

    feature_type = FeatureType.CATEGORICAL

    def similarity(self, a: Any, b: Any) -> float:
        if isinstance(a, str) and isinstance(b, str):
            return 1.0 if normalize_text(a) == normalize_text(b) else 0.0
        return 1.0 if a == b else 0.0


class OrdinalSimilarity(FeatureSimilarity):
    """Distance between positions on an ordered scale of levels."""

    feature_type = FeatureType.ORDINAL

    def __init__(self, levels: Sequence[Any]):
        if len(levels) < 2:
            raise ValueError("An ordinal scale needs at least two levels")
        self.levels = tuple(levels)
        self._ranks = {self._key(level): rank for rank, level in enumerate(self.levels)}
        if len(self._ranks) != len(self.levels):
            raise ValueError("Ordinal levels must be distinct")

    @staticmethod
    def _key(value: Any) -> str:
        return normalize_text(str(value))

    def rank(self, value: Any) -> int:
        try:
            return self._ranks[self._key(value)]
        except KeyError:
            raise ValueError(f"Unknown ordinal level {value!r}; expected one of {list(self.levels)}")

    def similarity(self, a: Any, b: Any) -> float:
        distance = abs(self.rank(a) - self.rank(b))
        return 1.0 - distance / (len(self.levels) - 1)

    def __repr__(self) -> str:
        return f"OrdinalSimilarity(levels={list(self.levels)})"


class NumericSimilarity(FeatureSimilarity):
    """
    Closeness of two numbers.

    With a scale, the difference is measured against it and saturates at 0.
    Without one, the difference is relative to the larger magnitude.
    """

    feature_type = FeatureType.NUMERIC

    def __init__(self, scale: Optional[float] = None):
        if scale is not None and scale <= 0:
            raise ValueError("Numeric scale must be positive")
        self.scale = scale

    def similarity(self, a: Any, b: Any) -> float:
        x, y = to_float(a), to_float(b)
        if x == y:
            return 1.0
        diff = abs(x - y)
        if self.scale is not None:
            return 1.0 - min(diff / self.scale, 1.0)
        return _clamp(1.0 - diff / max(abs(x), abs(y)))

    def __repr__(self) -> str:
        return f"NumericSimilarity(scale={self.scale})"


class SetSimilarity(FeatureSimilarity):
    """Jaccard index over multi-valued members."""

    feature_type = FeatureType.SET

    def similarity(self, a: Any, b: Any) -> float:
        set_a, set_b = set(split_values(a)), set(split_values(b))
        union = set_a | set_b
        if not union:
            return 1.0
        return len(set_a & set_b) / len(union)


class TextOverlapSimilarity(FeatureSimilarity):
    """Share of A's word tokens that also appear in B (directional)."""

    feature_type = FeatureType.TEXT
    symmetric = False

    def similarity(self, a: Any, b: Any) -> float:
        tokens_a, tokens_b = tokenize(a), tokenize(b)
        if not tokens_a:
            return 1.0 if not tokens_b else 0.0
        return len(tokens_a & tokens_b) / len(tokens_a)


def _bounding_box(value: Any) -> Tuple[float, float, float, float]:
    west, south, east, north = (to_float(v) for v in value)
    if south > north:
        raise ValueError(f"Malformed bounding box (west, south, east, north): {tuple(value)!r}")
    # A west edge past the east edge means the box crosses the antimeridian
    if west > east:
        east += 360.0
    return west, south, east, north


def _longitude_overlap(a_west: float, a_east: float, b_west: float, b_east: float) -> Optional[float]:
    """Degrees of A's longitude span covered by B, or None when they do not meet."""
    widths = [
        min(a_east, b_east + shift) - max(a_west, b_west + shift)
        for shift in (-360.0, 0.0, 360.0)
    ]
    touching = [w for w in widths if w >= 0]
    if not touching:
        return None
    return min(sum(touching), a_east - a_west)


def _interval(value: Any) -> Tuple[float, float]:
    start, stop = (to_timestamp(v) for v in value)
    if start > stop:
        raise ValueError(f"Interval starts after it stops: {tuple(value)!r}")
    return start, stop


class SpatialOverlapSimilarity(FeatureSimilarity):
    """Fraction of A's bounding box covered by B's (directional)."""

    feature_type = FeatureType.SPATIAL
    symmetric = False

    def similarity(self, a: Any, b: Any) -> float:
        aw, as_, ae, an = _bounding_box(a)
        bw, bs, be, bn = _bounding_box(b)
        width = _longitude_overlap(aw, ae, bw, be)
        height = min(an, bn) - max(as_, bs)
        area_a = (ae - aw) * (an - as_)
        if area_a == 0:
            return 1.0 if width is not None and height >= 0 else 0.0
        if width is None or width <= 0 or height <= 0:
            return 0.0
        return _clamp(width * height / area_a)


class TemporalOverlapSimilarity(FeatureSimilarity):
    """Fraction of A's time interval covered by B's (directional)."""

    feature_type = FeatureType.TEMPORAL
    symmetric = False

    def similarity(self, a: Any, b: Any) -> float:
        a_start, a_stop = _interval(a)
        b_start, b_stop = _interval(b)
        overlap = min(a_stop, b_stop) - max(a_start, b_start)
        length = a_stop - a_start
        if length == 0:
            return 1.0 if overlap >= 0 else 0.0
        if overlap <= 0:
            return 0.0
        return _clamp(overlap / length)


SIMILARITY_CLASSES: Dict[FeatureType, Type[FeatureSimilarity]] = {
    FeatureType.CATEGORICAL: CategoricalSimilarity,
    FeatureType.ORDINAL: OrdinalSimilarity,
    FeatureType.NUMERIC: NumericSimilarity,
    FeatureType.SET: SetSimilarity,
    FeatureType.TEXT: TextOverlapSimilarity,
    FeatureType.SPATIAL: SpatialOverlapSimilarity,
    FeatureType.TEMPORAL: TemporalOverlapSimilarity,
}


def similarity_for(feature_type: FeatureType, **params: Any) -> FeatureSimilarity:
    """Build the similarity function for a feature type.

    Raises TypeError/ValueError when params do not fit the type.
    """
    return SIMILARITY_CLASSES[FeatureType(feature_type)](**params)
