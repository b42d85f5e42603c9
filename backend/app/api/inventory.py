"""
API endpoints for inventory management.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from app.api.dependencies import get_inventory_service
from app.core.auth import get_current_actor, require_permission
from app.domain.actor import MANAGE_INVENTORY, Actor
from app.domain.inventory import StockOperation
from app.services.inventory_service import InventoryService


router = APIRouter()


class StockUpdateRequest(BaseModel):
    operation: StockOperation
    quantity: int = Field(..., ge=0)
    reason: Optional[str] = None


def _check_excel(file: UploadFile) -> None:
    if not file.filename or not file.filename.endswith(('.xlsx', '.xls')):
        raise HTTPException(status_code=400, detail="File must be an Excel workbook (.xlsx or .xls)")


@router.get("/products/lookup/{code}")
def lookup_product(
    code: str,
    actor: Actor = Depends(get_current_actor),
    service: InventoryService = Depends(get_inventory_service),
):
    """Find an active product by barcode or PLU"""
    return {
        "status": "success",
        "data": service.lookup_product(code)
    }


@router.get("/products/{product_id}/stock")
def get_stock(
    product_id: str,
    actor: Actor = Depends(get_current_actor),
    service: InventoryService = Depends(get_inventory_service),
):
    return {
        "status": "success",
        "data": service.get_stock_status(product_id)
    }


@router.put("/products/{product_id}/stock")
def update_stock(
    product_id: str,
    request: StockUpdateRequest,
    actor: Actor = Depends(require_permission(MANAGE_INVENTORY)),
    service: InventoryService = Depends(get_inventory_service),
):
    """
    Manual stock adjustment

    add fails above capacity, subtract clamps at zero, set fails above capacity.
    """
    change = service.update_stock(product_id, request.operation, request.quantity, request.reason, actor)

    return {
        "status": "success",
        "message": "Stock updated successfully",
        "data": {
            **change.model_dump(mode="json"),
            "stock_status": change.status.value,
            "needs_reorder": change.needs_reorder,
        }
    }


@router.get("/template")
def download_inventory_template(
    actor: Actor = Depends(get_current_actor),
    service: InventoryService = Depends(get_inventory_service),
):
    """
    Download Excel template with all products and current stock

    Returns:
        Excel file ready for editing
    """
    excel_file = service.generate_inventory_template()

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"Stock_Count_{timestamp}.xlsx"

    return StreamingResponse(
        excel_file,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={
            "Content-Disposition": f"attachment; filename={filename}"
        }
    )


@router.post("/preview")
def preview_inventory_file(
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    service: InventoryService = Depends(get_inventory_service),
):
    """
    Preview Excel file content WITHOUT updating stock
    """
    _check_excel(file)
    contents = file.file.read()
    return service.preview_inventory_file(contents, file.filename)


@router.post("/bulk-update")
def bulk_update_inventory(
    file: UploadFile = File(...),
    actor: Actor = Depends(require_permission(MANAGE_INVENTORY)),
    service: InventoryService = Depends(get_inventory_service),
):
    """
    Apply the "New Quantity" column of a stock count sheet

    Returns:
        Per-row success or error
    """
    _check_excel(file)
    contents = file.file.read()
    return service.process_inventory_upload(contents, file.filename, actor)
