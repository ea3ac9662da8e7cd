"""Feature-based similarity between catalog records."""

from .computer import ComputeSummary, PairwiseSimilarityComputer, build_pair
from .features import FeatureSimilarity, FeatureType, similarity_for
from .models import FeatureModel, FeatureSpec, available_models, load_feature_model
from .normalizer import WeightNormalizer
from .records import MetadataRecord, SimilarityPair
from .runner import FeatureSimilarityRun, RunReport, RunState, build_run

__all__ = [
    "ComputeSummary",
    "FeatureModel",
    "FeatureSimilarity",
    "FeatureSimilarityRun",
    "FeatureSpec",
    "FeatureType",
    "MetadataRecord",
    "PairwiseSimilarityComputer",
    "RunReport",
    "RunState",
    "SimilarityPair",
    "WeightNormalizer",
    "available_models",
    "build_pair",
    "build_run",
    "load_feature_model",
    "similarity_for",
]
