"""
Core Application Layer - Agent Loop and Configuration
=====================================================

Modules:
    orchestrator: Bounded generate / call tools / resume step loop
    cancellation: Cooperative cancellation token shared by a run and its tools
    exceptions: Error taxonomy for tool and model failures
    prompts: System prompt for the web-search agent
    constants: Configuration values and Pydantic settings validation

Key Components:

Agent Orchestrator (orchestrator.py):
    Drives a ModelAdapter step by step, forwarding text immediately and
    executing requested tools concurrently. Tool failures become error
    results the model can react to; only model transport failures end a
    run early. The loop stops on "stop", "length" or "error", or when the
    step budget runs out while tools are still requested.

Settings (constants.py):
    Pydantic BaseSettings loaded from the environment and .env files,
    cached behind get_settings().
"""
