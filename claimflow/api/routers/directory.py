"""Staff directory endpoints."""

from typing import Dict, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, get_db
from claimflow.core.security import CurrentUser
from claimflow.services.directory import DirectoryLookup

router = APIRouter(tags=["directory"])


@router.get("/approvers", response_model=List[Dict[str, str]])
async def list_approvers(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    """Directory entries for the approver picker."""
    return DirectoryLookup(db).list_approvers()


@router.get("/directory/me")
async def my_profile(
    db: Session = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
):
    profile = DirectoryLookup(db).profile(current_user.identity)
    profile["role"] = current_user.role
    return profile
