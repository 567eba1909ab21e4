from fastapi import APIRouter, Depends

from fixly.dependencies import require_role
from fixly.utils.cache import browse_cache
from fixly.utils.performance import performance_monitor

router = APIRouter(
    prefix="/performance",
    tags=["performance"],
    dependencies=[Depends(require_role("admin"))],
)


@router.get("")
async def get_performance():
    return {
        **performance_monitor.stats(),
        "slowest": performance_monitor.get_slow_requests(),
        "cache": browse_cache.stats(),
    }
