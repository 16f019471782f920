from fastapi import APIRouter, Depends
from typing import List, Dict

from farewatch.api.deps import get_notifier
from farewatch.services.notification import EmailNotifier

router = APIRouter()


@router.get("/notifications")
async def get_notifications(limit: int = 50, notifier: EmailNotifier = Depends(get_notifier)) -> List[Dict]:
    """Get recent email delivery attempts from history."""
    return notifier.get_notifications(limit=limit)
