"""
FastAPI REST API Layer for narration-ms.

    - routes.py: /v1/tts, /v1/voices, /v1/usage, /health, /metrics
    - schemas.py: Request/response Pydantic models
    - dependencies.py: Lifespan wiring and FastAPI dependency providers
"""
