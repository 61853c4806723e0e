# planner/api/routes/__init__.py

from .health import router as health_router
from .instances import router as instances_router
from .maintenance import router as maintenance_router
from .progress_items import router as progress_items_router
from .snapshots import router as snapshots_router
from .templates import router as templates_router

routers = [
    health_router,
    templates_router,
    instances_router,
    progress_items_router,
    snapshots_router,
    maintenance_router,
]
