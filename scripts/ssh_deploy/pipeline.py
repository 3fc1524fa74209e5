"""Ordered deployment pipeline.

Each stage is a single pass/fail gate. The pipeline runs them strictly in order
and stops at the first failure; nothing is retried. Rollback of completed stages
is opt-in (DeployConfig.rollback_on_failure).
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence, runtime_checkable

from scripts.ssh_deploy.command_runner import CommandRunner
from scripts.ssh_deploy.deploy_hooks import DeployHooks
from scripts.ssh_deploy.inputs import DeployConfig
from scripts.ssh_deploy.run_log import StepLog, logger


class StageError(RuntimeError):
    """Raised by a stage to abort the run with a diagnostic message."""


@dataclass
class StageResult:
    name: str
    ok: bool
    message: str = ""
    warnings: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, name: str, message: str = "", **kwargs: Any) -> "StageResult":
        return cls(name=name, ok=True, message=message, **kwargs)

    @classmethod
    def failure(cls, name: str, message: str, **kwargs: Any) -> "StageResult":
        return cls(name=name, ok=False, message=message, **kwargs)


@dataclass
class DeployContext:
    """Context passed to stages and hooks. `config` is immutable."""

    config: DeployConfig
    runner: CommandRunner
    log: StepLog


@runtime_checkable
class Stage(Protocol):
    name: str
    title: str
    icon: str

    def run(self, ctx: DeployContext) -> StageResult: ...


@dataclass
class PipelineReport:
    results: list[StageResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results)

    @property
    def failed(self) -> StageResult | None:
        for r in self.results:
            if not r.ok:
                return r
        return None

    @property
    def warnings(self) -> list[str]:
        out: list[str] = []
        for r in self.results:
            out.extend(r.warnings)
        return out


class DeployPipeline:
    def __init__(self, stages: Sequence[Stage], *, hooks: DeployHooks | None = None):
        self.stages = list(stages)
        self.hooks = hooks or DeployHooks(None)

    def _run_stage(self, stage: Stage, ctx: DeployContext) -> StageResult:
        try:
            result = stage.run(ctx)
        except StageError as exc:
            return StageResult.failure(stage.name, str(exc))
        except subprocess.CalledProcessError as exc:
            return StageResult.failure(
                stage.name,
                f"Command failed with exit code {exc.returncode}",
                details={"cmd": exc.cmd},
            )
        except OSError as exc:
            # Typically a missing local tool (git, ssh, rsync).
            return StageResult.failure(stage.name, f"Could not run command: {exc}")
        except Exception as exc:
            logger.exception(f"Unexpected error in stage '{stage.name}'")
            return StageResult.failure(stage.name, f"Unexpected error: {exc}")
        if result is None:
            return StageResult.success(stage.name)
        return result

    def run(self, ctx: DeployContext) -> PipelineReport:
        report = PipelineReport()
        completed: list[Stage] = []

        for stage in self.stages:
            ctx.log.step(stage.title, icon=stage.icon)
            self.hooks.call("pre_stage", ctx, stage.name)

            result = self._run_stage(stage, ctx)
            report.results.append(result)

            for warning in result.warnings:
                ctx.log.warning(warning)

            if not result.ok:
                ctx.log.error(result.message or f"Stage '{stage.name}' failed")
                self.hooks.call("on_error", ctx, result)
                if ctx.config.rollback_on_failure:
                    self._rollback(completed + [stage], ctx)
                return report

            if result.message:
                ctx.log.success(result.message)
            self.hooks.call("post_stage", ctx, result)
            completed.append(stage)

        self.hooks.call("post_deploy", ctx, report)
        return report

    def _rollback(self, stages: Sequence[Stage], ctx: DeployContext) -> None:
        for stage in reversed(stages):
            rollback = getattr(stage, "rollback", None)
            if rollback is None:
                continue
            ctx.log.info(f"Rolling back stage '{stage.name}'", icon="↩️")
            try:
                rollback(ctx)
            except (StageError, subprocess.CalledProcessError) as exc:
                # Keep unwinding the remaining stages; the run is already failing.
                logger.warning(f"  rollback of '{stage.name}' failed: {exc}")
