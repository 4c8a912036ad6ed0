from fastapi import APIRouter, Depends

from ..directory import DepartmentDirectory
from .dependencies import get_directory
from .models import DepartmentListResponse, DepartmentOption

router = APIRouter(prefix="/departments", tags=["departments"])


@router.get("", response_model=DepartmentListResponse)
async def list_departments(
    directory: DepartmentDirectory = Depends(get_directory),
):
    # DirectoryUnavailable renders as 503; there is no fallback list
    options = [DepartmentOption(**o) for o in await directory.list_for_dropdown()]
    return DepartmentListResponse(departments=options, count=len(options))
