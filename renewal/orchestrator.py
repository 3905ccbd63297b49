"""
RenewalOrchestrator — top-level runner for a renewal.

Drives the StateGraph from renewal/graph.py and owns the parts of the state
machine that sit outside it:

* Failed is reachable from every state: any exception out of the graph is
  caught here, the challenge in flight is marked FAILED, the run's TXT
  records are cleaned up (best-effort), and a ``{"success": False,
  "error": ...}`` dict is returned.  Nothing is re-raised.
* Done is entered here once the graph has run to its end.
* An issued certificate or a rejected CDN upload is never compensated.
* Runs are mutually exclusive within the process.  A trigger that arrives
  while a run is in flight gets a failure result immediately.
"""
from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import Callable, Optional

import structlog

from config import Settings
from renewal.graph import build_graph, recursion_limit_for
from renewal.services import RenewalServices, build_services
from renewal.state import (
    ChallengeStatus,
    RenewalRequest,
    RenewalStage,
    RenewalState,
    TriggerKind,
    initial_state,
)

log = structlog.get_logger(__name__)

ServicesFactory = Callable[[RenewalRequest], RenewalServices]

ALREADY_RUNNING = "renewal already in progress"


def summarize(state: RenewalState) -> dict:
    """Build the ``result`` object of a successful run (no key material)."""
    bundle = state.get("bundle")
    upload = state.get("upload")
    return {
        "run_id": state.get("run_id"),
        "domain": state["request"].domain,
        "stage": state["stage"].value,
        "authorizations": len(state.get("challenges", [])),
        "certificate_issued_at": bundle.issued_at.isoformat() if bundle else None,
        "cert_name": upload.cert_name if upload else None,
        "request_id": upload.request_id if upload else None,
        "cleanup_failures": list(state.get("cleanup_failures", [])),
    }


def mark_failed(state: RenewalState) -> RenewalState:
    """Move *state* to FAILED, failing the challenge in flight if there is one."""
    challenges = list(state.get("challenges", []))
    index = state.get("current_index", -1)
    if 0 <= index < len(challenges) and challenges[index].status is not ChallengeStatus.VALID:
        challenges[index] = replace(challenges[index], status=ChallengeStatus.FAILED)
    return {**state, "challenges": challenges, "stage": RenewalStage.FAILED}


class RenewalOrchestrator:
    """Run renewals for the configured domain, one at a time."""

    def __init__(
        self,
        settings: Settings,
        services_factory: Optional[ServicesFactory] = None,
    ) -> None:
        self.settings = settings
        self._services_factory = services_factory or (
            lambda request: build_services(settings, domain=request.domain)
        )
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def run(self, trigger: TriggerKind = TriggerKind.SCHEDULED, domain: Optional[str] = None) -> dict:
        """Execute one renewal and return ``{success, result?, error?}``."""
        request = RenewalRequest(domain=domain or self.settings.DOMAIN_NAME, trigger=trigger)
        if not self._lock.acquire(blocking=False):
            log.warning("renewal.rejected", reason=ALREADY_RUNNING, trigger=trigger.value)
            return {"success": False, "error": ALREADY_RUNNING}
        try:
            return self._run(request)
        finally:
            self._lock.release()

    def _run(self, request: RenewalRequest) -> dict:
        run_id = uuid.uuid4().hex[:12]
        run_log = log.bind(run_id=run_id, domain=request.domain, trigger=request.trigger.value)
        state = initial_state(request, run_id)
        services: Optional[RenewalServices] = None

        run_log.info("renewal.started")
        try:
            if not request.domain:
                raise ValueError("No target domain configured (set DOMAIN_NAME)")
            services = self._services_factory(request)
            graph = build_graph(services)
            for snapshot in graph.stream(
                state,
                config={"recursion_limit": recursion_limit_for(1)},
                stream_mode="values",
            ):
                if snapshot.get("stage") != state.get("stage"):
                    run_log.info("renewal.stage", stage=snapshot["stage"].value)
                state = snapshot
        except Exception as exc:
            failed_after = state["stage"]
            state = mark_failed(state)
            run_log.error(
                "renewal.failed",
                stage=state["stage"].value,
                failed_after=failed_after.value,
                failed_challenges=[c.domain for c in state["challenges"] if c.status is ChallengeStatus.FAILED],
                error_type=type(exc).__name__,
                error=str(exc),
            )
            if services is not None:
                leftover = services.provisioner.teardown_all()
                if leftover:
                    run_log.warning("renewal.cleanup_incomplete", names=leftover)
            return {"success": False, "error": str(exc) or type(exc).__name__}

        state = {**state, "stage": RenewalStage.DONE}
        run_log.info("renewal.stage", stage=state["stage"].value)
        result = summarize(state)
        run_log.info("renewal.done", cert_name=result["cert_name"])
        return {"success": True, "result": result}
