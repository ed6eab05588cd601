# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API.
# FastAPI uses them for request body validation (automatic 422 errors),
# OpenAPI documentation (visible at /docs) and handler type hints.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    """
    Request body for POST /ask and POST /ask/orchestrated.

    Example:
        {
            "question": "What is the current Pro Plan price?",
            "max_iterations": 4
        }
    """

    question: str = Field(
        ...,
        min_length=3,
        max_length=2000,
        description="The natural language question to answer",
        examples=["What is the current Pro Plan price?"],
    )

    # Optional: tighter or looser budget than the server default.
    # Capped so one request cannot run an unbounded number of model calls.
    max_iterations: int | None = Field(
        default=None,
        ge=1,
        le=10,
        description="Decision rounds before the agent must answer. Defaults to MAX_ITERATIONS.",
    )

    # Optional: run this request on a different model.
    # API keys are read from server-side env only, never from request bodies.
    provider: str | None = Field(
        default=None,
        description=(
            "Provider override as 'provider_type/model'. The model runs against "
            "the server-configured endpoint; '@base_url' is rejected. "
            "Defaults to the configured provider."
        ),
        examples=["anthropic/claude-sonnet-4-6"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"question": "What is the current Pro Plan price?"},
                {
                    "question": "What does the Pro Plan cost and who is the Head of Engineering?",
                    "max_iterations": 4,
                },
            ]
        }
    )
