"""Feature instance cleanup, project destruction and record removal."""

from __future__ import annotations

from hatchery.config import Settings
from hatchery.errors import LifecycleError, RecordNotFoundError
from hatchery.lifecycle.outcome import CleanupReport, Outcome, capture
from hatchery.logging_config import get_logger
from hatchery.providers import Providers
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore
from hatchery.store.models import FeatureBackend

logger = get_logger(__name__)


async def find_feature_instance(
    instances: InstanceStore, project_name: str, feature: str
) -> InstanceRecord:
    record = await instances.get_by_feature(project_name, feature)
    if record is None:
        raise RecordNotFoundError(
            "Feature instance",
            f"{project_name}/{feature}",
            hint=(
                f"Run `hatchery list --project {project_name}` to see tracked instances. "
                "Instances created elsewhere must be deleted on the compute host directly."
            ),
        )
    return record


async def _delete_feature_backend(providers: Providers, feature_backend: FeatureBackend) -> None:
    if feature_backend.project_id:
        await providers.backend.delete_project(feature_backend.project_id)
    else:
        await providers.backend.delete_project_by_slug(feature_backend.name)


async def clean_feature_instance(
    project_name: str,
    feature: str,
    settings: Settings,
    providers: Providers,
    projects: ProjectStore,
    instances: InstanceStore,
) -> CleanupReport:
    """Tear down everything a feature instance owns, then forget it."""
    project = await projects.require(project_name)
    record = await find_feature_instance(instances, project_name, feature)
    report = CleanupReport(subject=f"feature {feature} ({record.name})")

    for feature_backend in record.backend_branches:
        report.add(
            await capture(
                f"backend project {feature_backend.name}",
                _delete_feature_backend(providers, feature_backend),
                manual=f"Delete project {feature_backend.name} from {settings.backend.dashboard_url}",
            )
        )

    if record.repository_branch:
        report.add(
            await capture(
                f"git branch {record.repository_branch}",
                providers.repository.delete_branch(
                    project.repository.owner, project.repository.repo, record.repository_branch
                ),
                manual=f"git push origin --delete {record.repository_branch}",
            )
        )

    report.add(
        await capture(
            f"instance {record.name}",
            providers.compute.delete_instance(record.name),
            manual=providers.compute.manual_delete_command(record.name),
        )
    )

    await instances.remove(record.name)
    report.add(Outcome.success("local instance record"))
    return report


async def ensure_no_instances(project: ProjectRecord, instances: InstanceStore) -> None:
    """Refuse while any tracked instance still belongs to the project."""
    active = await instances.list_by_project(project.name)
    if active:
        raise LifecycleError(
            f"Project {project.name} still has {len(active)} feature instance(s)",
            remediation=[_clean_command(project, record) for record in active],
        )


async def destroy_project(
    project_name: str,
    settings: Settings,
    providers: Providers,
    projects: ProjectStore,
    instances: InstanceStore,
) -> CleanupReport:
    """Delete a project's backend and hosting projects. The repository is kept."""
    project = await projects.require(project_name)
    await ensure_no_instances(project, instances)

    report = CleanupReport(subject=f"project {project_name}")
    slug = project.backend.project_slug

    report.add(
        await capture(
            f"backend project {slug}",
            providers.backend.delete_project_by_slug(slug),
            manual=f"Delete project {slug} from {settings.backend.dashboard_url}",
        )
    )
    report.add(
        await capture(
            f"hosting project {project.hosting.project_name}",
            providers.hosting.delete_project(project.hosting.project_id),
            manual=f"{settings.hosting.cli} project rm {project.hosting.project_name}",
        )
    )
    report.add(await capture("local project record", projects.delete(project_name)))

    report.manual_steps.append(
        f"gh repo delete {project.repository.owner}/{project.repository.repo} --yes"
    )
    return report


def _clean_command(project: ProjectRecord, record: InstanceRecord) -> str:
    if record.feature:
        return f"hatchery clean {record.feature} --project {project.name}"
    return f"hatchery clean {record.name} --project {project.name} --forget"


async def forget_instance(instances: InstanceStore, name: str) -> InstanceRecord:
    """Drop a record without touching any remote resource."""
    record = await instances.get(name)
    if record is None:
        raise RecordNotFoundError("Instance", name)
    await instances.remove(name)
    logger.warning("Instance record removed without remote teardown", instance=name)
    return record
