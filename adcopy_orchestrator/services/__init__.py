"""
Services package - dead letter queue, idempotency cache, async job tracker
and the generation service that composes them.

Import submodules directly (e.g. ``adcopy_orchestrator.services.jobs``);
the resilience package depends on the dead letter queue, so this package
does not re-export anything to avoid import cycles.
"""
