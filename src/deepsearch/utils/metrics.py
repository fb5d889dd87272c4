"""
Prometheus metrics configuration for DeepSearch.

Defines the agent-loop, tool and admission-gate metrics exposed on /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Use standard Prometheus naming conventions: namespace_subsystem_name_unit
NAMESPACE = "deepsearch"


# ============================================================================
# Agent Loop Metrics
# ============================================================================

agent_runs_total = Counter(
    f"{NAMESPACE}_agent_runs_total",
    "Total number of finished agent runs",
    ["outcome"],  # finish reason, "cancelled" or "transport_error"
)

agent_steps_total = Counter(
    f"{NAMESPACE}_agent_steps_total",
    "Total number of model invocations across all runs",
)


# ============================================================================
# Tool Metrics
# ============================================================================

tool_calls_total = Counter(
    f"{NAMESPACE}_tool_calls_total",
    "Total number of tool invocations",
    ["tool", "status"],  # "success", "error" or "cancelled"
)

tool_call_duration_seconds = Histogram(
    f"{NAMESPACE}_tool_call_duration_seconds",
    "Tool execution duration in seconds",
    ["tool"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


# ============================================================================
# Admission Metrics
# ============================================================================

rate_limit_rejections_total = Counter(
    f"{NAMESPACE}_rate_limit_rejections_total",
    "Total number of chat requests rejected by the per-user quota",
)
