"""Ad Copy Orchestrator - resilient orchestration of AI ad copy generation.

Import `app` directly from `adcopy_orchestrator.main` to avoid circular imports.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
