"""
LangGraph StateGraph for one renewal run.

Graph topology:
  START
    → order_initializer              (Init → OrderCreated)
    → pick_next_challenge            ← loop entry point
    → [conditional: next_challenge → dns_provisioner        (→ DnsProvisioned)
                                      → propagation_checker  (→ DnsPropagated)
                                      → challenge_verifier   (→ ChallengeVerified)
                                      → pick_next_challenge
                    all_verified   → order_finalizer]        (→ OrderFinalized)
    → cert_downloader                (→ CertificateIssued)
    → dns_teardown
    → cdn_publisher                  (→ Deployed)
    → END

Nodes raise on failure; the Failed transition, DNS cleanup and conversion to
a result dict happen in RenewalOrchestrator, which drives this graph.
"""
from __future__ import annotations

from functools import partial

from langgraph.graph import END, START, StateGraph

from renewal.nodes.challenge import challenge_verifier, dns_provisioner, propagation_checker
from renewal.nodes.deploy import cdn_publisher, dns_teardown
from renewal.nodes.finalizer import cert_downloader, order_finalizer
from renewal.nodes.order import order_initializer
from renewal.nodes.router import challenge_router, pick_next_challenge
from renewal.services import RenewalServices
from renewal.state import RenewalState

# Steps outside the loop, and steps per authorization (pick + 3 challenge nodes).
_FIXED_STEPS = 8
_STEPS_PER_AUTHORIZATION = 4


def recursion_limit_for(authorizations: int = 1) -> int:
    """LangGraph recursion limit large enough for *authorizations* loop iterations."""
    return _FIXED_STEPS + _STEPS_PER_AUTHORIZATION * max(authorizations, 1) + 10


def build_graph(services: RenewalServices):
    """
    Build and compile the renewal StateGraph bound to *services*.

    No checkpointer is attached: the run is single-shot and the state holds
    the certificate private key.
    """
    builder = StateGraph(RenewalState)

    # ── Register nodes ────────────────────────────────────────────────────
    builder.add_node("order_initializer", partial(order_initializer, services=services))
    builder.add_node("pick_next_challenge", pick_next_challenge)
    builder.add_node("dns_provisioner", partial(dns_provisioner, services=services))
    builder.add_node("propagation_checker", partial(propagation_checker, services=services))
    builder.add_node("challenge_verifier", partial(challenge_verifier, services=services))
    builder.add_node("order_finalizer", partial(order_finalizer, services=services))
    builder.add_node("cert_downloader", partial(cert_downloader, services=services))
    builder.add_node("dns_teardown", partial(dns_teardown, services=services))
    builder.add_node("cdn_publisher", partial(cdn_publisher, services=services))

    # ── Edges ─────────────────────────────────────────────────────────────
    builder.add_edge(START, "order_initializer")
    builder.add_edge("order_initializer", "pick_next_challenge")

    builder.add_conditional_edges(
        "pick_next_challenge",
        challenge_router,
        {
            "next_challenge": "dns_provisioner",
            "all_verified": "order_finalizer",
        },
    )
    builder.add_edge("dns_provisioner", "propagation_checker")
    builder.add_edge("propagation_checker", "challenge_verifier")
    builder.add_edge("challenge_verifier", "pick_next_challenge")

    builder.add_edge("order_finalizer", "cert_downloader")
    builder.add_edge("cert_downloader", "dns_teardown")
    builder.add_edge("dns_teardown", "cdn_publisher")
    builder.add_edge("cdn_publisher", END)

    return builder.compile()
