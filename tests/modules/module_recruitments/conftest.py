"""
Fixtures for module recruitment tests.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest


def wire_repository(mock_repo: MagicMock, module) -> MagicMock:
    """
    Back a patched module repository with one in-memory module: conditional
    status writes and ledger swaps land on ``module`` and its quota rows.
    """

    async def set_status(db, module_id, expected, new):
        if module.module_status is not expected:
            return None
        module.module_status = new
        return module

    async def swap_counts(db, module_id, role, expected, new):
        quota = module.quota_for(role)
        if quota is None or quota.version != expected.version:
            return None
        for name, value in new.counters().items():
            setattr(quota, name, value)
        quota.version = expected.version + 1
        return quota

    async def get_quota(db, module_id, role):
        return module.quota_for(role)

    async def update_details(db, target, **fields):
        for key, value in fields.items():
            setattr(target, key, value)
        return target

    mock_repo.get_by_id = AsyncMock(return_value=module)
    mock_repo.get_fresh = AsyncMock(return_value=module)
    mock_repo.lock_for_status_update = AsyncMock(return_value=module)
    mock_repo.get_quota = AsyncMock(side_effect=get_quota)
    mock_repo.set_status = AsyncMock(side_effect=set_status)
    mock_repo.swap_counts = AsyncMock(side_effect=swap_counts)
    mock_repo.update_details = AsyncMock(side_effect=update_details)
    return mock_repo


@pytest.fixture
def wire():
    return wire_repository
