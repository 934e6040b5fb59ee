from dashboard.routers.map import router as map_router

__all__ = ["map_router"]
