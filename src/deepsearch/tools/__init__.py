"""
Tools Module - Function Calling for the Agent Loop
==================================================

Modules:
    registry: Name-keyed tool registry with a pydantic schema gate
    web_search: The searchWeb tool backed by the Serper client
"""
