from routers.surveys import router as surveys_router
from routers.deliveries import router as deliveries_router

__all__ = ["surveys_router", "deliveries_router"]
