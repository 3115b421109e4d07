"""
Domain layer containing core business logic and domain services.

Submodules:
- live: Live classroom logic (registry, admission, control channel, presence).
- utils: Domain-specific utilities (e.g., ID generation).
"""
