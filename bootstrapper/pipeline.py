"""
Runs the deployment steps as a dependency graph.

    insertion-verifiers --\
                           +--> lookup-tables --\
    deletion-verifiers ---/                      +--> identity-managers --> router
    semaphore-verifier --------------------------/

Every selected stage is started at once and parks on the dependency map until
its predecessors have published their outputs, so independent stages run
concurrently. The report is checkpointed each time a stage finishes.
"""

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple

from bootstrapper.config import DeploymentConfig
from bootstrapper.constants import CACHE_DIRNAME
from bootstrapper.context import DeploymentContext
from bootstrapper.errors import ConfigError, MissingDependency, RunAborted
from bootstrapper.mtb import MtbGenerator, VerifierGenerator
from bootstrapper.report import (
    DeletionVerifiers,
    IdentityManagers,
    InsertionVerifiers,
    LookupTables,
    Report,
    RouterDeployment,
    SemaphoreVerifierDeployment,
)
from bootstrapper.steps.identity_managers import deploy_identity_managers
from bootstrapper.steps.lookup_tables import deploy_lookup_tables
from bootstrapper.steps.router import deploy_router
from bootstrapper.steps.semaphore_verifier import deploy_semaphore_verifier
from bootstrapper.steps.verifiers import deploy_deletion_verifiers, deploy_insertion_verifiers
from bootstrapper.transactor import Deployer
from bootstrapper.utils import RootHasher

INSERTION_VERIFIERS = "insertion-verifiers"
DELETION_VERIFIERS = "deletion-verifiers"
LOOKUP_TABLES = "lookup-tables"
SEMAPHORE_VERIFIER = "semaphore-verifier"
IDENTITY_MANAGERS = "identity-managers"
ROUTER = "router"


def _complete_semaphore_verifier(report: Report) -> Optional[SemaphoreVerifierDeployment]:
    section = report.semaphore_verifier
    return section if section is not None and section.complete else None


class Stage(NamedTuple):
    name: str
    output: type
    predecessors: Tuple[str, ...]
    run: Callable[..., Awaitable[Any]]
    recorded: Callable[[Report], Optional[Any]]


STAGES = (
    Stage(
        name=INSERTION_VERIFIERS,
        output=InsertionVerifiers,
        predecessors=(),
        run=deploy_insertion_verifiers,
        recorded=lambda report: report.insertion_verifiers,
    ),
    Stage(
        name=DELETION_VERIFIERS,
        output=DeletionVerifiers,
        predecessors=(),
        run=deploy_deletion_verifiers,
        recorded=lambda report: report.deletion_verifiers,
    ),
    Stage(
        name=LOOKUP_TABLES,
        output=LookupTables,
        predecessors=(INSERTION_VERIFIERS, DELETION_VERIFIERS),
        run=deploy_lookup_tables,
        recorded=lambda report: report.lookup_tables,
    ),
    Stage(
        name=SEMAPHORE_VERIFIER,
        output=SemaphoreVerifierDeployment,
        predecessors=(),
        run=deploy_semaphore_verifier,
        recorded=_complete_semaphore_verifier,
    ),
    Stage(
        name=IDENTITY_MANAGERS,
        output=IdentityManagers,
        predecessors=(LOOKUP_TABLES, SEMAPHORE_VERIFIER),
        run=deploy_identity_managers,
        recorded=lambda report: report.identity_managers,
    ),
    Stage(
        name=ROUTER,
        output=RouterDeployment,
        predecessors=(IDENTITY_MANAGERS,),
        run=deploy_router,
        recorded=lambda report: report.world_id_router,
    ),
)

STAGES_BY_NAME = {stage.name: stage for stage in STAGES}
STAGE_NAMES = [stage.name for stage in STAGES]


def _check_stage_name(name: str) -> None:
    if name not in STAGES_BY_NAME:
        raise ConfigError(f"Unknown stage '{name}'; expected one of {', '.join(STAGE_NAMES)}.")


def select_stages(
    only: Optional[Iterable[str]] = None, through: Optional[str] = None
) -> List[Stage]:
    """
    Picks the stages to run, in pipeline order. ``only`` names an exact set of
    stages; ``through`` runs everything up to and including the named stage.
    """
    only = list(only or ())
    if only and through:
        raise ConfigError("Select stages with either 'only' or 'through', not both.")
    if only:
        for name in only:
            _check_stage_name(name)
        return [stage for stage in STAGES if stage.name in only]
    if through:
        _check_stage_name(through)
        return list(STAGES[: STAGE_NAMES.index(through) + 1])
    return list(STAGES)


class Pipeline:
    def __init__(self, context: DeploymentContext, stages: Iterable[Stage]):
        self.context = context
        self.stages = list(stages)

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def seeded_stages(self) -> List[Stage]:
        """Predecessors that are not selected and must be read from the report."""
        selected = set(self.stage_names)
        names = {p for stage in self.stages for p in stage.predecessors if p not in selected}
        return [stage for stage in STAGES if stage.name in names]

    def describe(self) -> str:
        lines = [f"Stages: {', '.join(self.stage_names)}"]
        seeded = self.seeded_stages()
        if seeded:
            lines.append(f"From report: {', '.join(stage.name for stage in seeded)}")
        lines.append(f"Next nonce: {self.context.nonces.peek()}")
        return "\n".join(lines)

    async def seed(self) -> None:
        """Publishes recorded outputs of unselected predecessors, or fails before any work."""
        selected = set(self.stage_names)
        for stage in self.stages:
            for name in stage.predecessors:
                if name in selected:
                    continue
                output = STAGES_BY_NAME[name].recorded(self.context.report)
                if output is None:
                    raise MissingDependency(
                        f"Stage '{stage.name}' needs the output of '{name}', which is not "
                        f"in the report and is not selected; run that stage first."
                    )
                await self.context.dep_map.set(output)

    async def run_stage(self, stage: Stage) -> Any:
        inputs = list()
        for name in stage.predecessors:
            inputs.append(await self.context.dep_map.get(STAGES_BY_NAME[name].output))
        print(f"\n(i) Running stage {stage.name}")
        try:
            output = await stage.run(self.context, *inputs)
        except Exception:
            # raised in the failing task itself, before any other stage can take a nonce
            self.context.abort()
            raise
        await self.context.dep_map.set(output)
        return output

    async def run(self) -> Report:
        """
        Runs all selected stages concurrently, checkpointing the report as each one
        finishes. The first failure aborts the whole run: no further nonce is issued,
        every pending stage is cancelled, the report is checkpointed and the error
        is raised. Completed checkpoints are where the next run resumes.
        """
        await self.seed()

        tasks: Dict[asyncio.Task, Stage] = dict()
        for stage in self.stages:
            tasks[asyncio.create_task(self.run_stage(stage), name=stage.name)] = stage

        errors = list()
        pending = set(tasks)
        try:
            while pending and not errors:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    stage = tasks[task]
                    error = task.exception()
                    if error is None:
                        filepath = self.context.checkpoint()
                        print(f"(i) Stage {stage.name} complete; report saved to {filepath}")
                    else:
                        print(f"WARNING: Stage {stage.name} failed: {error}")
                        errors.append(error)
        finally:
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if errors:
            if pending:
                cancelled = ", ".join(tasks[task].name for task in pending)
                print(f"WARNING: Cancelled stages: {cancelled}")
            filepath = self.context.checkpoint()
            print(f"(i) Progress saved to {filepath}")
            # a stage refused by the abort is never the cause
            raise next((e for e in errors if not isinstance(e, RunAborted)), errors[0])
        return self.context.report


async def run_deployment(
    config_filepath: Path,
    deployment_dir: Path,
    deployer: Deployer,
    generator: Optional[VerifierGenerator] = None,
    only: Optional[Iterable[str]] = None,
    through: Optional[str] = None,
    root_hasher: Optional[RootHasher] = None,
    confirm: Optional[Callable[[], None]] = None,
    dry_run: bool = False,
) -> Report:
    """
    Loads the config and report, then runs the selected stages against ``deployer``.
    With ``dry_run`` only the plan is printed and the loaded report is returned untouched.
    """
    config = DeploymentConfig.from_yaml(config_filepath)
    stages = select_stages(only=only, through=through)
    if generator is None:
        generator = MtbGenerator(deployment_dir / CACHE_DIRNAME)

    context = await DeploymentContext.create(
        config=config,
        deployment_dir=deployment_dir,
        deployer=deployer,
        generator=generator,
        root_hasher=root_hasher,
    )
    pipeline = Pipeline(context, stages)
    print(pipeline.describe())
    if dry_run:
        print("(i) Dry run; nothing was deployed.")
        return context.report
    if confirm is not None:
        confirm()

    report = await pipeline.run()
    print(f"\n(i) Deployment complete; report saved to {context.report_filepath}")
    return report
