"""
Group management and enrollment API endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List
from uuid import UUID
import logging

from app.database import get_db
from app.dependencies import Capability, Principal, get_current_user, require_capability, require_roles
from app.models import Role
from app.schemas.auth import MessageResponse
from app.schemas.group import (
    EnrollRequest,
    EnrollResponse,
    GroupCreate,
    GroupDetail,
    GroupMessageResponse,
    GroupSummary,
    GroupUpdate,
    PublicGroup,
    StudentGroup,
)
from app.services.group_service import group_service, serialize_assigned_quiz, serialize_group

router = APIRouter(prefix="/api/groups", tags=["groups"])
logger = logging.getLogger(__name__)

author = require_capability(Capability.AUTHOR_QUIZZES)
student_only = require_roles(Role.STUDENT)


@router.post("/create", response_model=GroupMessageResponse, status_code=201)
async def create_group(
    payload: GroupCreate,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    """
    Create a group

    - A unique enrollment code is generated for students to join with
    """
    group = group_service.create_group(
        db,
        user,
        name=payload.name,
        description=payload.description,
        is_public=payload.is_public,
        max_students=payload.max_students,
    )
    return GroupMessageResponse(
        message="Group created successfully",
        group=GroupDetail(**serialize_group(group, detail=True)),
    )


@router.get("/creator", response_model=List[GroupSummary])
async def list_creator_groups(user: Principal = Depends(author), db: Session = Depends(get_db)):
    return [GroupSummary(**serialize_group(g)) for g in group_service.list_creator_groups(db, user)]


@router.get("/student", response_model=List[StudentGroup])
async def list_student_groups(user: Principal = Depends(student_only), db: Session = Depends(get_db)):
    """Groups the caller belongs to, with their assigned exams"""
    return [
        StudentGroup(
            id=g.id,
            name=g.name,
            description=g.description,
            creator_email=g.creator.email,
            quizzes=[serialize_assigned_quiz(q) for q in g.quizzes],
        )
        for g in group_service.list_student_groups(db, user)
    ]


@router.get("/public", response_model=List[PublicGroup])
async def list_public_groups(
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [
        PublicGroup(
            id=g.id,
            name=g.name,
            description=g.description,
            creator_email=g.creator.email,
            student_count=len(g.students),
            max_students=g.max_students,
        )
        for g in group_service.list_public_groups(db)
    ]


@router.post("/enroll", response_model=EnrollResponse)
async def enroll(
    payload: EnrollRequest,
    user: Principal = Depends(student_only),
    db: Session = Depends(get_db),
):
    """
    Join a group using its enrollment code

    - 404 for an unknown code
    - 400 if already a member or the group is full
    """
    group = group_service.enroll(db, user, payload.enrollment_code)
    return EnrollResponse(message="Successfully enrolled in group", group_id=group.id, group_name=group.name)


@router.get("/{group_id}", response_model=GroupDetail)
async def get_group(
    group_id: UUID,
    user: Principal = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    group = group_service.get_visible_group(db, user, group_id)
    return GroupDetail(**serialize_group(group, detail=True))


@router.put("/{group_id}", response_model=GroupMessageResponse)
async def update_group(
    group_id: UUID,
    payload: GroupUpdate,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    group = group_service.update_group(db, user, group_id, payload.model_dump(exclude_unset=True))
    return GroupMessageResponse(
        message="Group updated successfully",
        group=GroupDetail(**serialize_group(group, detail=True)),
    )


@router.delete("/{group_id}", response_model=MessageResponse)
async def delete_group(
    group_id: UUID,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    group_service.delete_group(db, user, group_id)
    return MessageResponse(message="Group deleted successfully")


@router.post("/{group_id}/join", response_model=EnrollResponse)
async def join_public_group(
    group_id: UUID,
    user: Principal = Depends(student_only),
    db: Session = Depends(get_db),
):
    group = group_service.join_public(db, user, group_id)
    return EnrollResponse(message="Successfully joined group", group_id=group.id, group_name=group.name)


@router.post("/{group_id}/assign-exam/{quiz_id}", response_model=GroupMessageResponse)
async def assign_exam(
    group_id: UUID,
    quiz_id: UUID,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    group = group_service.assign_quiz(db, user, group_id, quiz_id)
    return GroupMessageResponse(
        message="Exam assigned to group",
        group=GroupDetail(**serialize_group(group, detail=True)),
    )


@router.delete("/{group_id}/remove-exam/{quiz_id}", response_model=GroupMessageResponse)
async def remove_exam(
    group_id: UUID,
    quiz_id: UUID,
    user: Principal = Depends(author),
    db: Session = Depends(get_db),
):
    group = group_service.remove_quiz(db, user, group_id, quiz_id)
    return GroupMessageResponse(
        message="Exam removed from group",
        group=GroupDetail(**serialize_group(group, detail=True)),
    )
