from fastapi import APIRouter, Depends, File, UploadFile
from app.dependencies.auth import profile_repository
from app.schemas.profile import Profile, ProfileUpdate
from app.services.avatar_storage import AvatarUpload
from app.services.profile_repository import SELF, ProfileRepository
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/me", response_model=Profile)
async def get_own_profile(repository: ProfileRepository = Depends(profile_repository)):
    return await repository.fetch_profile(SELF)


@router.put("/me", response_model=Profile)
async def update_own_profile(update: ProfileUpdate, repository: ProfileRepository = Depends(profile_repository)):
    return await repository.save_profile(update)


@router.post("/me/avatar", response_model=Profile)
async def upload_avatar(
    file: UploadFile = File(...),
    repository: ProfileRepository = Depends(profile_repository),
):
    # One byte past the limit is enough to reject an oversized file
    data = await file.read(repository.avatars.max_bytes + 1)
    logger.info(f"Received avatar {file.filename} ({len(data)} bytes, {file.content_type})")
    return await repository.save_profile(avatar=AvatarUpload(data, file.content_type, file.filename))


@router.get("/{user_id}", response_model=Profile)
async def get_profile(user_id: str, repository: ProfileRepository = Depends(profile_repository)):
    return await repository.fetch_profile(user_id)
