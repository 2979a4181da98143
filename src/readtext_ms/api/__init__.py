"""
FastAPI REST API Layer for readtext-ms.

    - routes.py: /api/readText, /api/usage, /health, /metrics
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
