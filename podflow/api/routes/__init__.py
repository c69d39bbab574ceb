from fastapi import APIRouter

from podflow.api.routes import budget

router = APIRouter()
router.include_router(budget.router, prefix="/budget")
