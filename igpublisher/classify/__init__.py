"""Resource type classification."""

from igpublisher.classify.classifier import (
    Classification,
    ClassificationStatus,
    TypeClassifier,
    determine_type,
)

__all__ = [
    "Classification",
    "ClassificationStatus",
    "TypeClassifier",
    "determine_type",
]
