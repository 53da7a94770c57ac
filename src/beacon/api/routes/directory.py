"""Directory users used for escalation targets and contact details."""

from fastapi import APIRouter

from beacon.dependencies import DBSession, Writer
from beacon.errors.exceptions import NotFoundError
from beacon.models.directory import DirectoryUser
from beacon.repositories.directory_repo import DirectoryUserRepository

router = APIRouter(tags=["Directory"])


@router.post("/directory/users")
async def upsert_user(body: DirectoryUser, db: DBSession, _user: Writer) -> dict:
    repo = DirectoryUserRepository(db)
    row = await repo.upsert(body.user_id, **body.model_dump(exclude={"user_id"}))
    await db.commit()
    return DirectoryUser.model_validate(row).model_dump(mode="json")


@router.get("/directory/users/{user_id}")
async def get_user(user_id: str, db: DBSession) -> dict:
    row = await DirectoryUserRepository(db).get(user_id)
    if row is None:
        raise NotFoundError("User", user_id)
    return DirectoryUser.model_validate(row).model_dump(mode="json")
