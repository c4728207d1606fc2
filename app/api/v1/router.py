# app/api/v1/router.py
from fastapi import APIRouter
from app.config.settings import settings
from app.modules.transfers.router import router as transfers_router
from app.modules.inventory.router import router as inventory_router


# Crear router principal de la API v1
api_router = APIRouter()

api_router.include_router(
    transfers_router,
    prefix="/transfers",
    tags=["Transfers"]
)

api_router.include_router(
    inventory_router,
    prefix="/inventory",
    tags=["Inventory Management"]
)

# ==================== ENDPOINTS RAÍZ ====================

@api_router.get("/")
async def api_root():
    """Root endpoint de la API"""
    return {
        "message": f"{settings.app_name} v1",
        "version": settings.version,
        "status": "active",
        "docs": "/docs",
        "available_endpoints": {
            "transfers": "/api/v1/transfers",
            "inventory": "/api/v1/inventory"
        }
    }

@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.version,
        "architecture": "modular_monolith",
        "modules": {
            "transfers": {
                "status": "active",
                "features": [
                    "Solicitud, aprobación y rechazo",
                    "Preparación, recogida y entrega",
                    "Recepción con faltantes y daños",
                    "Acciones disponibles por rol"
                ]
            },
            "inventory": {
                "status": "active",
                "features": ["Ingreso de stock", "Consulta por ubicación"]
            }
        }
    }
