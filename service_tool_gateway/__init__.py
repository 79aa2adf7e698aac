"""
Tool Gateway Service package for the Ability Tool Gateway.

The gateway exposes host abilities to AI agents, enforcing:
- Visibility, allow-list and per-ability permission filtering
- CSRF protection for authenticated, state-changing executions
- Fixed-window rate limiting per caller, per tool and per client IP
- Per-caller tool list caching with ETag revalidation

Structure:
- app.main: FastAPI app, routes, and composition root.
- app.domain: Abilities registry, settings, hooks, caller auth, nonces.
- app.bridge: Ability to tool definition conversion.
- app.schema: Input-schema sanitizer.
- app.ratelimit: Fixed-window limiter.
- app.caching: Shared store backends and the tool-list cache.
"""
