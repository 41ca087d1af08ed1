"""Feature instance and project lifecycle."""

from hatchery.lifecycle.feature import FeatureInstance, create_feature_instance
from hatchery.lifecycle.outcome import CleanupReport, Outcome, capture
from hatchery.lifecycle.teardown import (
    clean_feature_instance,
    destroy_project,
    ensure_no_instances,
    find_feature_instance,
    forget_instance,
)

__all__ = [
    "CleanupReport",
    "FeatureInstance",
    "Outcome",
    "capture",
    "clean_feature_instance",
    "create_feature_instance",
    "destroy_project",
    "ensure_no_instances",
    "find_feature_instance",
    "forget_instance",
]
