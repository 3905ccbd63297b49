"""
dns_teardown + cdn_publisher nodes.

dns_teardown   — remove the run's challenge records (best-effort).
cdn_publisher  — the terminal signed upload; no compensation if it fails.
"""
from __future__ import annotations

import logging

from renewal.services import RenewalServices
from renewal.state import RenewalStage, RenewalState

logger = logging.getLogger(__name__)


def dns_teardown(state: RenewalState, services: RenewalServices) -> dict:
    failures = services.provisioner.teardown_all()
    if failures:
        logger.warning("TXT cleanup incomplete for: %s", ", ".join(failures))
    return {"cleanup_failures": failures}


def cdn_publisher(state: RenewalState, services: RenewalServices) -> dict:
    upload = services.publisher.publish(state["bundle"])
    return {"upload": upload, "stage": RenewalStage.DEPLOYED}
