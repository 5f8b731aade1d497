"""
Tests for API Dependencies.

Reference Documents:
- GUIDELINES: Sinha pp. 89-91 (Dependency injection patterns)
"""

import pytest
from fastapi import FastAPI, HTTPException
from starlette.requests import Request

from adcopy_orchestrator.api.deps import get_container, get_dead_letter_queue, get_orchestrator


def _request(app: FastAPI) -> Request:
    return Request({"type": "http", "app": app, "headers": []})


class TestGetContainer:
    """Container lookup on app.state."""

    def test_missing_container_raises_503(self):
        """Before the lifespan has run the dependency answers 503."""
        with pytest.raises(HTTPException) as exc_info:
            get_container(_request(FastAPI()))

        assert exc_info.value.status_code == 503

    def test_components_read_from_container(self, container):
        """Component dependencies return the container's instances."""
        app = FastAPI()
        app.state.container = container
        request = _request(app)

        assert get_container(request) is container
        assert get_orchestrator(request) is container.orchestrator
        assert get_dead_letter_queue(request) is container.dlq
