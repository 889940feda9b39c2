from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..infra.redis_client import get_sync_redis

router = APIRouter()


@router.get("/ready")
def ready(db: Session = Depends(get_db)):
    db_ok = False
    try:
        db.execute(text("SELECT 1"))
        db_ok = True
    except SQLAlchemyError:
        pass

    redis_ok = False
    try:
        redis_ok = bool(get_sync_redis().ping())
    except RedisError:
        pass
    return {"ok": True, "db_ok": db_ok, "redis_ok": redis_ok}
