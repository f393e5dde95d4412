"""Parent-student links."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quranakh.db import get_db
from quranakh.models import User
from quranakh.schemas.users import ChildrenResponse, ParentLinkCreate, ParentLinkResponse
from quranakh.api.v1.auth import require_parent, require_school_admin
from quranakh.services.people import PeopleService

router = APIRouter()
people = PeopleService()


@router.post("/links", response_model=ParentLinkResponse)
async def link_parent(
    data: ParentLinkCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_school_admin),
):
    """Link a parent to a student. Linking twice is a no-op."""
    return people.link_parent(db, current_user, data.parent_id, data.student_id)


@router.get("/my-children", response_model=ChildrenResponse)
async def my_children(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_parent),
):
    children = people.children_of(db, current_user)
    return {"children": children, "total": len(children)}
