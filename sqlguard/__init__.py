"""SQLGuard threat classification and alerting package.

Subpackages:
- api: FastAPI route definitions
- core: configuration, logging and the error taxonomy
- models: per-model signal adapters for detector gateway payloads
- schemas: Pydantic models
- services: ensemble combiner, fallback simulator, classifier, alert engine
- workers: periodic scheduler and metrics poller
"""

__all__ = [
    "api",
    "core",
    "models",
    "schemas",
    "services",
    "workers",
]

__version__ = "1.0.0"
