"""
Pytest configuration and shared fixtures.
"""

import pytest
from pathlib import Path
from typing import Any, Dict, List

from catalogsim.config import Settings
from catalogsim.gateways.sql import SqlCatalogGateway
from catalogsim.logger import get_logger, reset_logger
from pipelines.feature_similarity.features import (
    CategoricalSimilarity,
    FeatureSimilarity,
    FeatureType,
    NumericSimilarity,
)
from pipelines.feature_similarity.models import FeatureModel, FeatureSpec


@pytest.fixture(autouse=True)
def test_logger(tmp_path):
    """Global logger writing only to a temporary directory."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    reset_logger()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for a SQLite catalog with small pages and batches."""
    return Settings(
        backend="sql",
        db_path=tmp_path / "catalog.db",
        index="catalog",
        record_type="RecomMetadata",
        output_type="MetadataFeatureSim",
        id_field="id",
        feature_model="media",
        batch_size=3,
        page_size=2,
        log_dir=tmp_path / "logs",
    )


@pytest.fixture
def sql_gateway(settings):
    """Gateway over a fresh SQLite catalog."""
    gateway = SqlCatalogGateway(settings.db_path)
    yield gateway
    gateway.close()


@pytest.fixture
def size_category_model() -> FeatureModel:
    """sizeMB weighted 2, category weighted 1."""
    return FeatureModel(
        name="size-category",
        features=(
            FeatureSpec("sizeMB", FeatureType.NUMERIC, 2, NumericSimilarity()),
            FeatureSpec("category", FeatureType.CATEGORICAL, 1, CategoricalSimilarity()),
        ),
    )


class ExplodingSimilarity(FeatureSimilarity):
    """Categorical similarity that fails on the value 'boom'."""

    feature_type = FeatureType.CATEGORICAL

    def similarity(self, a, b):
        if "boom" in (a, b):
            raise ValueError("malformed value")
        return 1.0 if a == b else 0.0


@pytest.fixture
def exploding_model() -> FeatureModel:
    return FeatureModel(
        name="exploding",
        features=(
            FeatureSpec("kind", FeatureType.CATEGORICAL, 1, ExplodingSimilarity()),
        ),
    )


@pytest.fixture
def media_records() -> List[Dict[str, Any]]:
    """Raw media catalog documents."""
    return [
        {
            "id": "clip-a",
            "sizeMB": 100,
            "category": "Documentary",
            "tags": "ocean, whales, arctic",
            "language": "en",
            "title": "Whales of the Arctic Ocean",
        },
        {
            "id": "clip-b",
            "sizeMB": 80,
            "category": "documentary",
            "tags": ["ocean", "sharks"],
            "language": "en",
            "title": "Sharks of the Pacific Ocean",
        },
        {
            "id": "clip-c",
            "sizeMB": 20,
            "category": "Comedy",
            "tags": "standup",
            "title": "<b>Live</b> at the Apollo",
        },
    ]


@pytest.fixture
def loaded_catalog(sql_gateway, settings, media_records):
    """SQLite catalog seeded with the media records."""
    sql_gateway.load_records(settings.index, settings.record_type, media_records)
    return sql_gateway


@pytest.fixture
def model_file(tmp_path) -> Path:
    """JSON feature model definition."""
    path = tmp_path / "model.json"
    path.write_text(
        """
        {
          "name": "files",
          "features": [
            {"name": "sizeMB", "type": "numeric", "weight": 2, "params": {"scale": 50}},
            {"name": "category", "type": "categorical", "weight": 1},
            {"name": "extent", "type": "spatial", "weight": 1,
             "fields": ["west", "south", "east", "north"]}
          ]
        }
        """
    )
    return path
