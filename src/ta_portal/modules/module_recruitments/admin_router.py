"""
Module Recruitment Admin Router

Staff endpoints driving a module through its lifecycle.

Endpoints:
- GET /admin/modules/{id} - Module detail with both roles' counters
- POST /admin/modules/{id}/{action} - Apply a status action
  (request-changes, advertise, start-documents, close, archive)

Automatic transitions (mark-full, reopen) and submit-changes are refused
here; they are driven by the ledger and by coordinators respectively.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ta_portal.core.auth import CurrentUser, require_admin
from ta_portal.core.database import get_db
from ta_portal.core.exceptions import RecruitmentError, http_error, internal_error
from ta_portal.core.rate_limit import user_rate_limit
from ta_portal.modules.module_recruitments import service
from ta_portal.modules.module_recruitments.schemas import (
    ModuleActionResponse,
    ModuleRecruitmentResponse,
)
from ta_portal.modules.module_recruitments.status import ModuleAction

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{module_id}",
    response_model=ModuleRecruitmentResponse,
    summary="Get Module Recruitment",
    description="Module detail including per-role counters and the staff actions legal now.",
    responses={
        200: {"description": "Module found"},
        401: {"description": "Not authenticated"},
        403: {"description": "Not an admin"},
        404: {
            "description": "Module not found",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "MODULE_NOT_FOUND",
                            "message": "Module 3fa85f64-5717-4562-b3fc-2c963f66afa6 not found",
                        }
                    }
                }
            },
        },
    },
)
async def get_module(
    module_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ModuleRecruitmentResponse:
    try:
        return await service.get_module_detail(db, module_id)
    except RecruitmentError as e:
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error getting module {module_id}: {e}")
        raise internal_error() from e


@router.post(
    "/{module_id}/{action}",
    response_model=ModuleActionResponse,
    summary="Apply Module Status Action",
    dependencies=[Depends(user_rate_limit("module_action", limit=30, window_seconds=60))],
    description="""
Move a module through its lifecycle.

**Transitions:**
- `request-changes`: initialised -> pending-changes
- `advertise`: changes-submitted -> advertised (mailing lists of each open role are notified)
- `start-documents`: advertised/full -> getting-documents (accepted TAs are asked for documents)
- `close`: advertised/full/getting-documents -> closed (no further apply/accept/reject)
- `archive`: closed -> archived
""",
    responses={
        200: {"description": "Status changed"},
        400: {
            "description": "Action not legal from the current status",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "INVALID_STATUS_TRANSITION",
                            "message": "Cannot advertise a module in status 'closed'. "
                            "Allowed actions: ['archive']",
                        }
                    }
                }
            },
        },
        404: {"description": "Module not found"},
        409: {"description": "Module changed concurrently; retry"},
    },
)
async def apply_module_action(
    module_id: UUID,
    action: ModuleAction,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ModuleActionResponse:
    try:
        return await service.perform_action(db, module_id, action, admin)
    except RecruitmentError as e:
        logger.warning(f"Module action '{action.value}' on {module_id} refused: {e.message}")
        raise http_error(e) from e
    except Exception as e:
        logger.exception(f"Error applying '{action.value}' to module {module_id}: {e}")
        raise internal_error() from e
