"""Business logic services.

Services are called by route handlers and tools. They own the conversation
store, quota, LLM routing, chat orchestration and the hosting integration.
"""
