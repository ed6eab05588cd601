# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the HTTP API. These are separate from the
# engine's own data types (dataclasses in app/agents and app/services), so
# the public contract can evolve without touching the reasoning loop.
# =============================================================================
