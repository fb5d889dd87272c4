"""
Integrations Module - External Capabilities
===========================================

Modules:
    model_adapter: ModelAdapter protocol and the streaming OpenAI implementation
    serper_client: Cancellable Serper web search client
"""
