from collections import defaultdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from farmsight.api.deps import get_video_catalog
from farmsight.api.v1 import auth
from farmsight.core.timeutils import utcnow
from farmsight.db.session import get_db
from farmsight.models.user import User
from farmsight.models.video_progress import VIDEO_CATEGORIES, VideoProgress
from farmsight.schemas.video import VideoProgressCreate, VideoProgressOut
from farmsight.services.integrations.videos import CATEGORIES

router = APIRouter(prefix="/education", tags=["Education"])


@router.get("/categories")
def list_categories():
    return [
        {"id": c["id"], "name": c["name"], "description": c["description"]}
        for c in CATEGORIES
    ]


@router.get("/videos")
def list_videos(
    category: str = "general",
    max_results: int = Query(20, ge=1, le=50),
    catalog=Depends(get_video_catalog),
):
    if category not in VIDEO_CATEGORIES:
        raise HTTPException(status_code=400, detail=f"Unknown category '{category}'")

    videos = catalog.by_category(category, max_results)

    return {
        "category": category,
        "total_results": len(videos),
        "videos": videos,
    }


@router.get("/videos/recommended/{stress_type}")
def recommended_videos(
    stress_type: str,
    crop_type: Optional[str] = None,
    catalog=Depends(get_video_catalog),
):
    videos = catalog.recommended(stress_type, crop_type)

    return {
        "stress_type": stress_type,
        "crop_type": crop_type or "general",
        "total_results": len(videos),
        "recommendations": videos,
    }


@router.get("/videos/search")
def search_videos(
    q: str = Query(..., min_length=1),
    max_results: int = Query(10, ge=1, le=50),
    catalog=Depends(get_video_catalog),
):
    videos = catalog.search(q, max_results)

    return {
        "query": q,
        "total_results": len(videos),
        "videos": videos,
    }


# =========================
# PROGRESS TRACKING
# =========================
@router.post("/progress", response_model=VideoProgressOut)
def track_progress(
    payload: VideoProgressCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    record = db.query(VideoProgress).filter(
        VideoProgress.user_id == current_user.id,
        VideoProgress.video_id == payload.video_id,
    ).first()

    if record is None:
        record = VideoProgress(
            user_id=current_user.id,
            video_id=payload.video_id,
            video_title=payload.video_title or "Unknown Video",
            video_url=payload.video_url or "",
            category=payload.category,
        )
        db.add(record)
    else:
        if payload.video_title:
            record.video_title = payload.video_title
        if payload.video_url:
            record.video_url = payload.video_url
        record.category = payload.category

    record.progress = payload.progress
    if payload.watch_time is not None:
        record.watch_time = payload.watch_time
    if payload.progress >= 100:
        record.is_completed = True
    record.last_watched_at = utcnow()

    db.commit()
    db.refresh(record)

    return record


@router.get("/history")
def watch_history(
    category: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    query = db.query(VideoProgress).filter(VideoProgress.user_id == current_user.id)
    if category:
        query = query.filter(VideoProgress.category == category)

    records = query.order_by(VideoProgress.last_watched_at.desc()).limit(limit).all()

    return {
        "user_id": current_user.id,
        "count": len(records),
        "history": [VideoProgressOut.model_validate(r) for r in records],
    }


@router.get("/statistics")
def video_statistics(
    db: Session = Depends(get_db),
    current_user: User = Depends(auth.get_current_user),
):
    records = db.query(VideoProgress).filter(VideoProgress.user_id == current_user.id).all()

    by_category = defaultdict(lambda: {"watched": 0, "completed": 0})
    for r in records:
        by_category[r.category]["watched"] += 1
        if r.is_completed:
            by_category[r.category]["completed"] += 1

    completed = sum(1 for r in records if r.is_completed)

    return {
        "total_videos_watched": len(records),
        "completed": completed,
        "in_progress": len(records) - completed,
        "total_watch_time": sum(r.watch_time for r in records),
        "average_progress": (sum(r.progress for r in records) / len(records)) if records else 0.0,
        "by_category": dict(by_category),
    }
