"""Rendering of pipeline results for the CLI."""

from __future__ import annotations

import json

from hatchery.provisioning.pipeline import PipelineResult


def render_pipeline_result(result: PipelineResult, as_json: bool = False) -> str:
    if as_json:
        return json.dumps(result.to_dict(), indent=2)

    lines: list[str] = []
    if result.success:
        lines.append("Project created successfully!")
    else:
        lines.append(f"Setup failed at step '{result.failed_step}': {result.error}")

    if result.project:
        lines += ["", "Project:", f"  Name: {result.project.name}", f"  Path: {result.project.path}"]
    if result.repository:
        lines += ["", "Repository:", f"  URL: {result.repository.url}"]
        if result.repository.was_renamed:
            lines.append(f"  Renamed from: {result.repository.original_name}")
    if result.backend:
        lines += [
            "",
            "Backend:",
            f"  URL: {result.backend.deployment_url}",
            f"  Project: {result.backend.project_slug}",
        ]
    if result.hosting:
        lines += [
            "",
            "Hosting:",
            f"  URL: {result.hosting.url}",
            f"  Project: {result.hosting.project_name}",
        ]

    if not result.success and (result.repository or result.backend or result.hosting):
        lines += ["", "Resources created before the failure were left in place."]

    if result.next_steps:
        lines += ["", "Next steps:"]
        lines += [f"  - {step}" for step in result.next_steps]

    return "\n".join(lines)
