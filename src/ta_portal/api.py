from fastapi import APIRouter

from ta_portal.modules.applications.lecturer_router import router as lecturer_applications_router
from ta_portal.modules.applications.router import router as applications_router
from ta_portal.modules.documents.office_router import router as office_documents_router
from ta_portal.modules.documents.router import router as documents_router
from ta_portal.modules.module_recruitments.admin_router import router as admin_modules_router
from ta_portal.modules.module_recruitments.lecturer_router import (
    router as lecturer_modules_router,
)

api_router = APIRouter()

api_router.include_router(applications_router, prefix="/ta", tags=["TA - Applications"])
api_router.include_router(documents_router, prefix="/ta", tags=["TA - Documents"])

api_router.include_router(
    lecturer_modules_router, prefix="/lecturer", tags=["Lecturer - Modules"]
)
api_router.include_router(
    lecturer_applications_router, prefix="/lecturer", tags=["Lecturer - Applications"]
)

api_router.include_router(
    admin_modules_router,
    prefix="/admin/modules",
    tags=["Admin - Modules"],
)

api_router.include_router(
    office_documents_router,
    prefix="/cse-office",
    tags=["CSE Office"],
)
