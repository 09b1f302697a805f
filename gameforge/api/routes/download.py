from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Response, status

from gameforge.api.deps import get_services
from gameforge.jobs.models import JobStatus
from gameforge.services.container import Services
from gameforge.storage.artifacts import ZIP_CONTENT_TYPE

router = APIRouter()


@router.get("/{job_id}")
async def download_package(job_id: str, services: Annotated[Services, Depends(get_services)]) -> Response:
  """Return the zipped game package of a completed job."""
  record = await services.queue.get_status(job_id)
  if record is None or record.status != JobStatus.COMPLETED or not record.result_ref:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Package not found.")
  data = await services.package_storage.load_package(record.result_ref)
  if data is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Package not found.")
  return Response(content=data, media_type=ZIP_CONTENT_TYPE, headers={"content-disposition": f'attachment; filename="game-{job_id}.zip"'})
