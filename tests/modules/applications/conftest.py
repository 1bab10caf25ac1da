"""
Fixtures for application service tests.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

SERVICE = "ta_portal.modules.applications.service"


@pytest.fixture
def mocks():
    """Patch the collaborators of the application service."""
    with (
        patch(f"{SERVICE}.repository") as repo,
        patch(f"{SERVICE}.module_repository") as module_repo,
        patch(f"{SERVICE}.module_service") as module_service,
        patch(f"{SERVICE}.dispatcher") as dispatcher,
    ):
        dispatcher.publish = AsyncMock()
        # The locked row is the module get_module returned unless a test overrides it
        module_service.lock_module = AsyncMock(
            side_effect=lambda db, module_id: module_service.get_module.return_value
        )
        yield SimpleNamespace(
            repo=repo,
            module_repo=module_repo,
            module_service=module_service,
            dispatcher=dispatcher,
        )
