"""
Provisioning Orchestrator

Turns an OS profile and a user request into a running VM:

    Idle -> Validating -> Planning -> Executing{step} -> Succeeded | Failed

Validation and planning are pure. Execution drives the external
collaborators strictly in sequence and stops at the first failing step.
Nothing is retried or rolled back; files left by earlier steps stay in place
so the same plan can be run again.
"""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..constants import StepName
from ..errors import (
    ConfigurationError,
    ExternalToolFailure,
    ProvisionError,
    StepTimeout,
    ToolError,
    ToolTimeout,
)
from ..utils import KeyedLock, missing_tools
from .collaborators import Collaborators, NetworkConfig
from .os_profile import OSProfile
from .plan import ProvisionPlan, build_plan
from .request import ProvisionRequest, ResourceSpec, validate_request

logger = logging.getLogger(__name__)

# Shared by every orchestrator in the process
_session_locks = KeyedLock()


class SessionState(Enum):
    """Lifecycle of one provisioning session."""

    IDLE = "idle"
    VALIDATING = "validating"
    PLANNING = "planning"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ProvisionOutcome:
    """Result of one provisioning session."""

    profile: OSProfile
    state: SessionState = SessionState.IDLE
    current_step: Optional[str] = None
    plan: Optional[ProvisionPlan] = None
    error: Optional[ProvisionError] = None
    completed_steps: List[str] = field(default_factory=list)
    history: List[Tuple[SessionState, Optional[str]]] = field(
        default_factory=lambda: [(SessionState.IDLE, None)]
    )

    @property
    def succeeded(self) -> bool:
        return self.state is SessionState.SUCCEEDED

    @property
    def failed_state(self) -> Optional[SessionState]:
        """The state the session was in when it failed."""
        if self.state is not SessionState.FAILED or len(self.history) < 2:
            return None
        return self.history[-2][0]

    def visited(self, state: SessionState) -> bool:
        return any(entry[0] is state for entry in self.history)

    def transition(self, state: SessionState, step: Optional[str] = None) -> None:
        self.state = state
        self.current_step = step
        self.history.append((state, step))


class ProvisioningOrchestrator:
    """Validates requests, builds plans and drives the collaborators."""

    def __init__(
        self,
        collaborators: Collaborators,
        vm_dir,
        driver_iso: Optional[str] = None,
        network: Optional[NetworkConfig] = None,
        check_tools: bool = True,
        progress_callback: Optional[Callable[[str, int], None]] = None,
    ):
        self.collaborators = collaborators
        self.vm_dir = Path(vm_dir)
        self.driver_iso = driver_iso
        self.network = network or NetworkConfig()
        self.check_tools = check_tools
        self.progress_callback = progress_callback

    def _report(self, stage: str, percent: int) -> None:
        if self.progress_callback:
            self.progress_callback(stage, percent)

    def validate(self, request: ProvisionRequest) -> ResourceSpec:
        return validate_request(request)

    def plan(self, profile: OSProfile, spec: ResourceSpec) -> ProvisionPlan:
        return build_plan(profile, spec, self.vm_dir, self.driver_iso)

    def prepare(self, profile: OSProfile, request: ProvisionRequest) -> ProvisionPlan:
        """Validate and plan without side effects."""
        return self.plan(profile, self.validate(request))

    def preflight(self, plan: ProvisionPlan) -> None:
        """
        Check the host before the first step runs.

        Raises:
            ConfigurationError: If the storage directory is unusable or a tool is missing
        """
        try:
            plan.vm_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(f"Cannot create VM directory {plan.vm_dir}: {e}") from e
        if not os.access(plan.vm_dir, os.W_OK):
            raise ConfigurationError(f"VM directory {plan.vm_dir} is not writable")

        if self.check_tools:
            missing = missing_tools(self.collaborators.required_tools(plan.profile.is_cloud_image))
            if missing:
                raise ConfigurationError(f"Missing dependencies: {' '.join(missing)}")

    def provision(self, profile: OSProfile, request: ProvisionRequest) -> ProvisionOutcome:
        """
        Run one provisioning session to a terminal state.

        Never raises ProvisionError: failures are recorded on the outcome
        with the state set to FAILED.
        """
        outcome = ProvisionOutcome(profile=profile)

        outcome.transition(SessionState.VALIDATING)
        try:
            spec = self.validate(request)
        except ProvisionError as e:
            logger.warning(f"Request rejected: {e}")
            return self._fail(outcome, e)

        outcome.transition(SessionState.PLANNING)
        try:
            plan = self.plan(profile, spec)
            outcome.plan = plan
            self.preflight(plan)
        except ProvisionError as e:
            logger.error(f"Planning failed for {spec.vm_name}: {e}")
            return self._fail(outcome, e)

        logger.info(f"Provisioning {plan.vm_name} from profile {profile.label!r}: {', '.join(plan.steps)}")

        with _session_locks.hold(plan.vm_name):
            try:
                self._execute(plan, outcome)
            except ExternalToolFailure as e:
                logger.error(str(e))
                return self._fail(outcome, e)

        outcome.transition(SessionState.SUCCEEDED)
        self._report("Provisioning Complete", 100)
        logger.info(f"VM {plan.vm_name} created (type: {profile.label})")
        return outcome

    def _fail(self, outcome: ProvisionOutcome, error: ProvisionError) -> ProvisionOutcome:
        outcome.error = error
        outcome.transition(SessionState.FAILED, outcome.current_step)
        return outcome

    def _execute(self, plan: ProvisionPlan, outcome: ProvisionOutcome) -> None:
        total = len(plan.steps)
        for index, step in enumerate(plan.steps):
            outcome.transition(SessionState.EXECUTING, step)
            base = int(index * 100 / total)
            self._report(f"Step {index + 1}/{total}: {step}", base)

            def step_progress(percent, _step=step, _base=base):
                self._report(f"{_step}: {percent}%", _base + int(percent / total))

            try:
                self._run_step(step, plan, step_progress)
            except ToolTimeout as e:
                raise StepTimeout(step, e.timeout, e) from e
            except Exception as e:
                if not isinstance(e, (ToolError, OSError)):
                    logger.exception(f"Unexpected error in step {step}")
                raise ExternalToolFailure(step, e) from e
            outcome.completed_steps.append(step)

    def _run_step(self, step: str, plan: ProvisionPlan, progress) -> None:
        c = self.collaborators
        spec = plan.spec

        if step == StepName.FETCH:
            target = plan.disk_path if plan.profile.is_cloud_image else plan.installer_iso_path
            with _session_locks.hold(f"path:{target}"):
                c.fetcher.fetch(plan.profile.source_locator, target, progress)
        elif step == StepName.FETCH_DRIVERS:
            with _session_locks.hold(f"path:{plan.driver_iso_path}"):
                c.fetcher.fetch(plan.driver_iso_locator, plan.driver_iso_path, progress)
        elif step == StepName.RESIZE:
            c.formatter.resize(plan.disk_path, spec.disk_size)
        elif step == StepName.CREATE:
            c.formatter.create_empty(plan.disk_path, spec.disk_size)
        elif step == StepName.SEED:
            c.seed_generator.build_seed_image(spec.vm_name, plan.credentials, plan.seed_path)
        elif step == StepName.LAUNCH:
            c.launcher.launch(
                spec.vm_name,
                spec.memory_mb,
                spec.vcpu_count,
                plan.disks(),
                plan.profile.variant_tag,
                self.network,
            )
        else:
            raise ValueError(f"Unknown provisioning step: {step}")
