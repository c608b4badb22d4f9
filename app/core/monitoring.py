"""Health checks"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.settings import get_settings

health_router = APIRouter()
settings = get_settings()


@health_router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": settings.APP_NAME}


@health_router.get("/detailed")
def detailed_health_check(db: Session = Depends(get_db)):
    """Health check including the database the booking guard depends on"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "overall": "unknown"
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    checks["overall"] = "healthy" if checks["database"] == "healthy" else "degraded"
    return checks
