"""Provisioning of new projects across all providers."""

from hatchery.provisioning.output import render_pipeline_result
from hatchery.provisioning.pipeline import PipelineResult, generate_next_steps, provision_project
from hatchery.provisioning.prerequisites import check_prerequisites
from hatchery.provisioning.register import register_existing_project

__all__ = [
    "PipelineResult",
    "check_prerequisites",
    "generate_next_steps",
    "provision_project",
    "register_existing_project",
    "render_pipeline_result",
]
