from fastapi import APIRouter, Depends, Query
from typing import List
from app.dependencies.auth import directory_cache
from app.schemas.profile import Profile
from app.services.directory_cache import DirectoryCache

router = APIRouter()


# Search members by name, email or id (the caller is never listed)
@router.get("", response_model=List[Profile])
def search_directory(q: str = Query("", max_length=200), directory: DirectoryCache = Depends(directory_cache)):
    return directory.search(q)
