"""
Materials Router — low-stock listing and stock edits.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from alerts.email import AlertNotifier
from alerts.rules import update_material_stock
from api.deps import get_alert_store, get_notifier
from db.alert_store import AlertStore

router = APIRouter(prefix="/api/v1/materials", tags=["materials"])


class MaterialResponse(BaseModel):
    id: str
    name: str
    category: str
    current_stock: int
    max_stock: int
    threshold: int
    unit: str

    model_config = {"from_attributes": True}


class StockUpdate(BaseModel):
    stock: int = Field(ge=0)


class StockUpdateResponse(BaseModel):
    material: MaterialResponse
    alert_id: str | None = None


@router.get("/low-stock", response_model=list[MaterialResponse])
async def list_low_stock_materials(store: AlertStore = Depends(get_alert_store)):
    """Materials at or below their threshold."""
    return await store.list_low_stock_materials()


@router.put("/{material_id}/stock", response_model=StockUpdateResponse)
async def update_stock(
    material_id: str,
    body: StockUpdate,
    store: AlertStore = Depends(get_alert_store),
    notifier: AlertNotifier = Depends(get_notifier),
):
    """Set a material's stock level; raises a low-stock alert when it reaches the threshold."""
    result = await update_material_stock(store, material_id, body.stock, notifier=notifier)
    if result is None:
        raise HTTPException(status_code=404, detail="Material not found")

    alert = result["alert"]
    return StockUpdateResponse(
        material=MaterialResponse.model_validate(result["material"]),
        alert_id=alert.id if alert is not None else None,
    )
