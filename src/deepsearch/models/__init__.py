"""
Models Module - Data Models and Type Definitions
=================================================

Pydantic v2 models for the conversation, the agent loop's event sequences
and the REST surface.

Modules:
    chat_models: Messages, parts and the tool invocation state machine
    event_models: Model adapter signals and orchestration events
    api_models: Chat request body, resolved user, health response
    error_models: Error codes and the standardized error response
"""
