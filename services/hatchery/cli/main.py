"""
Hatchery command line.

    hatchery create <name> [--path DIR] [--conflict-strategy fail|suffix] [--json]
    hatchery add <name> [--repo URL] [--backend NAME] [--hosting NAME] [--json]
    hatchery feature <name> --project <p>
    hatchery connect <feature> --project <p> [--json]
    hatchery clean <feature> --project <p> [--force|--dry-run|--confirm T] [--forget]
    hatchery destroy <project> [--force|--dry-run|--confirm T]
    hatchery harden [--project <p>] [--branch main] [--strict] [--force|--dry-run|--confirm T]
    hatchery status [--project <p>] [--json]
    hatchery list [--projects | --remote | --review] [--project <p>] [--json]

Exit status is 0 on success and when the user cancels, 1 on any error.
Command output goes to stdout; logs go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from hatchery.config import ConflictStrategy, Settings, get_settings
from hatchery.confirmation import ConfirmationResult, ConfirmationStore, require_confirmation
from hatchery.errors import (
    AuthorizationRequiredError,
    ConfigurationError,
    HatcheryError,
    LifecycleError,
    ProvisioningError,
    RecordNotFoundError,
)
from hatchery.harden import apply_hardening, plan_hardening
from hatchery.lifecycle import (
    CleanupReport,
    clean_feature_instance,
    create_feature_instance,
    destroy_project,
    ensure_no_instances,
    find_feature_instance,
    forget_instance,
)
from hatchery.logging_config import configure_logging, get_logger
from hatchery.providers import Providers, build_providers
from hatchery.provisioning import (
    provision_project,
    register_existing_project,
    render_pipeline_result,
)
from hatchery.status import collect_status, render_status
from hatchery.store import InstanceRecord, InstanceStore, ProjectRecord, ProjectStore, build_stores

logger = get_logger(__name__)


def console(text: str = "") -> None:
    """User-facing output."""
    sys.stdout.write(text + "\n")
    sys.stdout.flush()


class Context:
    """Everything a command handler needs, built once per invocation."""

    def __init__(
        self,
        settings: Settings,
        providers: Providers | None = None,
        stores: tuple[ProjectStore, InstanceStore] | None = None,
        confirmations: ConfirmationStore | None = None,
    ) -> None:
        self.settings = settings
        self._providers = providers
        self.projects, self.instances = stores or build_stores(settings)
        self.confirmations = confirmations or ConfirmationStore(
            settings.store.confirmations_path,
            ttl_seconds=settings.confirmation.ttl_seconds,
            min_age_seconds=settings.confirmation.min_age_seconds,
        )

    @property
    def providers(self) -> Providers:
        if self._providers is None:
            self._providers = build_providers(self.settings)
        return self._providers


def _add_gate_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--force", action="store_true", help="Skip confirmation (interactive terminals only)")
    group.add_argument("--dry-run", action="store_true", help="Show what would happen and issue a confirmation token")
    group.add_argument("--confirm", metavar="TOKEN", help="Confirmation token from a previous --dry-run")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hatchery", description="Provision and manage project environments")
    parser.add_argument("--log-level", help="Override the configured log level")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create", help="Provision repository, backend and hosting for a project")
    create.add_argument("name")
    create.add_argument("--path", default=".", help="Local, already-initialized working copy")
    create.add_argument("--conflict-strategy", choices=[s.value for s in ConflictStrategy])
    create.add_argument("--json", action="store_true")
    create.set_defaults(handler=cmd_create)

    add = sub.add_parser("add", help="Track a project that already exists on every provider")
    add.add_argument("name")
    add.add_argument("--repo", help="Repository URL (default: <org or user>/<name>)")
    add.add_argument("--backend", help="Backend project name (default: <name>)")
    add.add_argument("--hosting", help="Hosting project name (default: the repository name)")
    add.add_argument("--json", action="store_true")
    add.set_defaults(handler=cmd_add)

    feature = sub.add_parser("feature", help="Create a compute instance for a feature branch")
    feature.add_argument("name")
    feature.add_argument("--project", required=True)
    feature.add_argument("--json", action="store_true")
    feature.set_defaults(handler=cmd_feature)

    connect = sub.add_parser("connect", help="Show how to reach a feature instance")
    connect.add_argument("feature")
    connect.add_argument("--project", required=True)
    connect.add_argument("--json", action="store_true")
    connect.set_defaults(handler=cmd_connect)

    clean = sub.add_parser("clean", help="Tear down a feature instance and its branches")
    clean.add_argument("feature")
    clean.add_argument("--project", required=True)
    clean.add_argument("--forget", action="store_true", help="Only remove the local record")
    clean.add_argument("--json", action="store_true")
    _add_gate_flags(clean)
    clean.set_defaults(handler=cmd_clean)

    destroy = sub.add_parser("destroy", help="Delete a project's backend and hosting projects")
    destroy.add_argument("project")
    destroy.add_argument("--json", action="store_true")
    _add_gate_flags(destroy)
    destroy.set_defaults(handler=cmd_destroy)

    harden = sub.add_parser("harden", help="Apply branch protection from harness.json")
    harden.add_argument("--project")
    harden.add_argument("--branch", default="main")
    harden.add_argument("--strict", action="store_true", help="Enforce on admins too")
    harden.add_argument("--path", default=".", help="Project root containing harness.json")
    _add_gate_flags(harden)
    harden.set_defaults(handler=cmd_harden)

    status = sub.add_parser("status", help="Live status of tracked instances")
    status.add_argument("--project")
    status.add_argument("--json", action="store_true")
    status.set_defaults(handler=cmd_status)

    list_ = sub.add_parser("list", help="List tracked instances or projects")
    list_.add_argument("--projects", action="store_true")
    list_.add_argument("--remote", action="store_true", help="Instances on the compute host, tracked or not")
    list_.add_argument("--review", action="store_true", help="Instances whose task finished and awaits review")
    list_.add_argument("--project")
    list_.add_argument("--json", action="store_true")
    list_.set_defaults(handler=cmd_list)

    return parser


async def _gate(
    ctx: Context,
    args: argparse.Namespace,
    command: str,
    gate_args: dict[str, str],
    summary: str,
    details: str,
    positional: tuple[str, ...] = (),
    flags: tuple[str, ...] = (),
) -> ConfirmationResult:
    result = await require_confirmation(
        command,
        gate_args,
        summary,
        store=ctx.confirmations,
        dry_run=args.dry_run,
        confirm_token=args.confirm,
        force=args.force,
        details=lambda: console(details),
        positional=positional,
        flags=flags,
    )
    if not result.proceed:
        console()
        console(f"Confirmation token: {result.token} (expires in {ctx.settings.confirmation.ttl_seconds // 60} minutes)")
        console("To confirm, run:")
        console(f"  {result.follow_up}")
    return result


def _print_report(report: CleanupReport, as_json: bool) -> int:
    console(json.dumps(report.to_dict(), indent=2) if as_json else report.render())
    return 0 if report.ok else 1


# --- Handlers ---


async def cmd_create(args: argparse.Namespace, ctx: Context) -> int:
    settings = ctx.settings
    if args.conflict_strategy:
        pipeline = settings.pipeline.model_copy(
            update={"conflict_strategy": ConflictStrategy(args.conflict_strategy)}
        )
        settings = settings.model_copy(update={"pipeline": pipeline})

    result = await provision_project(
        args.name, Path(args.path), settings, ctx.providers, ctx.projects
    )
    console(render_pipeline_result(result, as_json=args.json))
    return 0 if result.success else 1


async def cmd_add(args: argparse.Namespace, ctx: Context) -> int:
    record = await register_existing_project(
        args.name,
        ctx.settings,
        ctx.providers,
        ctx.projects,
        repo_url=args.repo,
        backend_name=args.backend,
        hosting_name=args.hosting,
    )
    if args.json:
        console(json.dumps(record.model_dump(mode="json"), indent=2))
        return 0

    console(f"Project {record.name} is now tracked.")
    console()
    console(f"  Repository: {record.repository.url}")
    console(f"  Backend:    {record.backend.project_slug} ({record.backend.deployment_url})")
    console(f"  Hosting:    {record.hosting.project_name} ({record.hosting.url})")
    console()
    console(f"Next: hatchery feature <name> --project {record.name}")
    return 0


def _connection_info(ctx: Context, project: ProjectRecord, record: InstanceRecord) -> dict:
    repo_dir = f"{ctx.settings.compute.remote_home}/{project.repository.repo}"
    return {
        "ssh": f"ssh {record.remote_host}",
        "vscode": f"code --remote ssh-remote+{record.remote_host} {repo_dir}",
        "web": ctx.providers.compute.instance_url(record.name),
        "repo_dir": repo_dir,
    }


def _print_instance(ctx: Context, project: ProjectRecord, record: InstanceRecord) -> None:
    info = _connection_info(ctx, project, record)
    backends = ", ".join(b.name for b in record.backend_branches) or "-"
    console(f"  Instance:        {record.name}")
    console(f"  Project:         {record.project}")
    console(f"  Created:         {record.created_at}")
    console(f"  Git branch:      {record.repository_branch or '-'}")
    console(f"  Backend project: {backends}")
    console()
    console("Connect:")
    console(f"  SSH:     {info['ssh']}")
    console(f"  VS Code: {info['vscode']}")
    console(f"  Web:     {info['web']} (once the app listens on port {ctx.settings.compute.web_port})")
    console()
    console("To start working:")
    console(f"  {info['ssh']}")
    console(f"  cd {info['repo_dir']}")


async def cmd_feature(args: argparse.Namespace, ctx: Context) -> int:
    created = await create_feature_instance(
        args.project, args.name, ctx.settings, ctx.providers, ctx.projects, ctx.instances
    )
    record = created.record
    if args.json:
        console(json.dumps({**record.model_dump(mode="json"), "url": created.url, "notes": created.notes}, indent=2))
        return 0

    project = await ctx.projects.require(args.project)
    console("Feature instance created.")
    console()
    _print_instance(ctx, project, record)
    if created.notes:
        console()
        console("Finish by hand:")
        for note in created.notes:
            console(f"  {note}")
    console()
    console(f"When done: hatchery clean {args.name} --project {args.project}")
    return 0


async def cmd_connect(args: argparse.Namespace, ctx: Context) -> int:
    project = await ctx.projects.require(args.project)
    record = await find_feature_instance(ctx.instances, args.project, args.feature)
    if args.json:
        info = _connection_info(ctx, project, record)
        console(json.dumps({**record.model_dump(mode="json"), "connect": info}, indent=2))
        return 0

    console(f"Feature: {args.feature}")
    console()
    _print_instance(ctx, project, record)
    console()
    console(f"When done: hatchery clean {args.feature} --project {args.project}")
    return 0


async def cmd_clean(args: argparse.Namespace, ctx: Context) -> int:
    await ctx.projects.require(args.project)
    record = await ctx.instances.get_by_feature(args.project, args.feature)
    if record is None and args.forget:
        # --forget also accepts an instance name
        record = await ctx.instances.get(args.feature)
    if record is None:
        record = await find_feature_instance(ctx.instances, args.project, args.feature)

    gate_args = {"feature": args.feature, "project": args.project}
    flags: tuple[str, ...] = ()
    if args.forget:
        gate_args["forget"] = "true"
        flags = ("forget",)

    lines = [
        f"Instance:         {record.name} ({record.remote_host})",
        f"Git branch:       {record.repository_branch or '-'}",
        f"Backend projects: {', '.join(b.name for b in record.backend_branches) or '-'}",
    ]
    if args.forget:
        lines.append("Only the local record will be removed; remote resources are left alone.")
    gate = await _gate(
        ctx,
        args,
        "clean",
        gate_args,
        f"Clean feature {args.feature} of {args.project}",
        "\n".join(lines),
        positional=("feature",),
        flags=flags,
    )
    if not gate.proceed:
        return 0

    if args.forget:
        forgotten = await forget_instance(ctx.instances, record.name)
        console(f"Removed local record for {forgotten.name}.")
        console(f"Remote instance, if any: {ctx.providers.compute.manual_delete_command(forgotten.name)}")
        return 0

    report = await clean_feature_instance(
        args.project, args.feature, ctx.settings, ctx.providers, ctx.projects, ctx.instances
    )
    return _print_report(report, args.json)


async def cmd_destroy(args: argparse.Namespace, ctx: Context) -> int:
    project = await ctx.projects.require(args.project)
    await ensure_no_instances(project, ctx.instances)

    details = "\n".join(
        [
            f"Backend project:  {project.backend.project_slug}",
            f"Hosting project:  {project.hosting.project_name}",
            f"Repository:       {project.repository.url} (kept)",
        ]
    )
    gate = await _gate(
        ctx,
        args,
        "destroy",
        {"project": args.project},
        f"Destroy project {args.project}",
        details,
        positional=("project",),
    )
    if not gate.proceed:
        return 0

    report = await destroy_project(
        args.project, ctx.settings, ctx.providers, ctx.projects, ctx.instances
    )
    return _print_report(report, args.json)


async def cmd_harden(args: argparse.Namespace, ctx: Context) -> int:
    plan = await plan_hardening(
        Path(args.path), args.branch, args.strict, ctx.projects, project=args.project
    )
    gate_args = {"branch": args.branch}
    if args.project:
        gate_args["project"] = args.project
    else:
        gate_args["path"] = str(Path(args.path).resolve())
    flags: tuple[str, ...] = ()
    if args.strict:
        gate_args["strict"] = "true"
        flags = ("strict",)

    gate = await _gate(
        ctx,
        args,
        "harden",
        gate_args,
        f"Protect {plan.branch} of {plan.owner}/{plan.repo}",
        plan.describe(),
        flags=flags,
    )
    if not gate.proceed:
        return 0

    await apply_hardening(plan, ctx.providers.repository)
    console(f"Branch protection applied to {plan.owner}/{plan.repo} ({plan.branch}).")
    return 0


async def cmd_status(args: argparse.Namespace, ctx: Context) -> int:
    statuses = await collect_status(ctx.providers, ctx.projects, ctx.instances, project=args.project)
    console(render_status(statuses, as_json=args.json, project=args.project))
    return 0


async def cmd_list(args: argparse.Namespace, ctx: Context) -> int:
    if args.remote:
        return await _list_remote(args, ctx)
    if args.review:
        return await _list_review(args, ctx)
    if args.projects:
        projects = await ctx.projects.list()
        if args.json:
            console(json.dumps([p.model_dump(mode="json") for p in projects], indent=2))
        elif not projects:
            console("No projects found.")
        else:
            for p in projects:
                console(f"{p.name}  {p.hosting.url}  {p.repository.url}")
        return 0

    instances = await (ctx.instances.list_by_project(args.project) if args.project else ctx.instances.list())
    if args.json:
        console(json.dumps([i.model_dump(mode="json") for i in instances], indent=2))
    elif not instances:
        console("No instances found.")
    else:
        for i in instances:
            task = f"  task: {i.task_status}" if i.task_status else ""
            console(f"{i.name}  {i.project}/{i.feature or '-'}  {i.remote_host}{task}")
    return 0


async def _list_review(args: argparse.Namespace, ctx: Context) -> int:
    done = await ctx.instances.tasks_awaiting_review(args.project)
    if args.json:
        console(json.dumps([i.model_dump(mode="json") for i in done], indent=2))
    elif not done:
        console("No tasks awaiting review.")
    else:
        for i in done:
            result = f"  {i.result_url}" if i.result_url else ""
            console(f"{i.name}  {i.project}/{i.feature or '-'}{result}")
            console(f"  hatchery connect {i.feature or i.name} --project {i.project}")
    return 0


async def _list_remote(args: argparse.Namespace, ctx: Context) -> int:
    listings = await ctx.providers.compute.list_instances()
    tracked = {i.name: i for i in await ctx.instances.list()}
    if args.json:
        console(
            json.dumps(
                [
                    {
                        "name": listing.name,
                        "status": listing.status,
                        "project": tracked[listing.name].project if listing.name in tracked else None,
                    }
                    for listing in listings
                ],
                indent=2,
            )
        )
        return 0
    if not listings:
        console("No instances on the compute host.")
    for listing in listings:
        record = tracked.get(listing.name)
        owner = f"{record.project}/{record.feature or '-'}" if record else "untracked"
        console(f"{listing.name}  {listing.status}  {owner}")
    return 0


# --- Entry point ---


def _report_error(error: HatcheryError) -> None:
    console(f"Error: {error}")
    if isinstance(error, AuthorizationRequiredError) and error.remediation:
        console(error.remediation)
    elif isinstance(error, LifecycleError):
        for command in error.remediation:
            console(f"  {command}")
    elif isinstance(error, RecordNotFoundError) and error.hint:
        console(error.hint)
    elif isinstance(error, ConfigurationError):
        for item in error.missing:
            console(f"  missing: {item}")
    elif isinstance(error, ProvisioningError):
        console(f"Completed before the failure: {', '.join(error.partial) or 'nothing'}")


def main(argv: list[str] | None = None, context: Context | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = context.settings if context else get_settings()
    configure_logging(json_logs=settings.json_logs, log_level=args.log_level or settings.log_level)
    ctx = context or Context(settings)

    try:
        return asyncio.run(args.handler(args, ctx))
    except KeyboardInterrupt:
        console()
        console("Operation cancelled.")
        return 0
    except HatcheryError as e:
        logger.debug("Command failed", command=args.command, error_type=type(e).__name__)
        _report_error(e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
