from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ridematch.database import get_db
from ridematch.models.junction import Junction
from ridematch.schemas.schemas import JunctionResponse

router = APIRouter(prefix="/v1/junctions", tags=["Junctions"])


@router.get("", response_model=list[JunctionResponse])
async def list_junctions(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Junction).order_by(Junction.name))
    return [JunctionResponse.model_validate(j) for j in result.scalars().all()]
