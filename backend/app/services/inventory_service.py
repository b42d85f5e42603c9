"""
Service for inventory management operations: manual stock updates and
spreadsheet (Excel) stock counts.
"""
import io
import logging
import zipfile
from typing import Callable, Dict, List, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.exceptions import InvalidFileException

from app.core.errors import NotFoundError, PermissionDeniedError, PosError, ValidationError
from app.domain.actor import MANAGE_INVENTORY, Actor
from app.domain.inventory import StockChange, StockOperation, stock_status
from app.repositories.base import UnitOfWork
from app.services.inventory_ledger import InventoryLedger

logger = logging.getLogger(__name__)


TEMPLATE_HEADERS = [
    "Product ID", "Name", "Category", "Barcode", "PLU",
    "Current Quantity", "New Quantity", "Capacity",
]


class InventoryService:
    """Service for inventory business logic"""

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self.uow_factory = uow_factory

    def update_stock(
        self,
        product_id: str,
        operation: StockOperation,
        quantity: int,
        reason: Optional[str],
        actor: Actor,
    ) -> StockChange:
        """Manual add/subtract/set on one product"""
        if not actor.can(MANAGE_INVENTORY):
            raise PermissionDeniedError(MANAGE_INVENTORY)

        with self.uow_factory() as uow:
            change = InventoryLedger(uow.products).apply(
                product_id, operation, quantity, reason=reason or f"Manual adjustment by {actor.id}"
            )
            uow.commit()
        return change

    def get_stock_status(self, product_id: str) -> Dict:
        with self.uow_factory() as uow:
            product = uow.products.find_by_id(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return self._stock_summary(product)

    def lookup_product(self, code: str) -> Dict:
        """Scanner lookup by barcode or PLU"""
        code = code.strip()
        with self.uow_factory() as uow:
            product = uow.products.find_by_code(code)
        if product is None:
            raise NotFoundError("Product", code)

        return {
            **self._stock_summary(product),
            "barcode": product.barcode,
            "plu": product.plu,
            "category": product.category,
            "price": str(product.price),
            "price_type": product.price_type.value,
            "unit": product.unit,
            "taxable": product.taxable,
            "age_restricted": product.age_restricted,
        }

    @staticmethod
    def _stock_summary(product) -> Dict:
        return {
            "product_id": product.id,
            "name": product.name,
            "stock_quantity": product.stock_quantity,
            "stock_capacity": product.stock_capacity,
            "available_capacity": product.available_capacity,
            "status": stock_status(product.stock_quantity, product.stock_capacity, product.low_stock_threshold).value,
            "needs_reorder": product.stock_quantity <= product.reorder_point,
        }

    def generate_inventory_template(self) -> io.BytesIO:
        """Generate Excel template with every active product and its current stock"""
        with self.uow_factory() as uow:
            products, _ = uow.products.find_all(limit=100000)

        wb = Workbook()
        ws = wb.active
        ws.title = "Stock Count"

        # Define styles
        header_fill = PatternFill(start_color="366092", end_color="366092", fill_type="solid")
        header_font = Font(color="FFFFFF", bold=True, size=12)
        border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        # Write headers
        for col_num, header in enumerate(TEMPLATE_HEADERS, 1):
            cell = ws.cell(row=1, column=col_num, value=header)
            cell.fill = header_fill
            cell.font = header_font
            cell.alignment = Alignment(horizontal='center', vertical='center')
            cell.border = border

        # Write data
        for row_num, product in enumerate(products, 2):
            data = [
                product.id,
                product.name,
                product.category or "",
                product.barcode or "",
                product.plu or "",
                product.stock_quantity,
                product.stock_quantity,  # New Quantity (edited by the counter)
                product.stock_capacity,
            ]

            for col_num, value in enumerate(data, 1):
                cell = ws.cell(row=row_num, column=col_num, value=value)
                cell.border = border
                cell.alignment = Alignment(horizontal='left', vertical='center')

                # Quantity columns
                if col_num in [6, 7, 8]:
                    cell.alignment = Alignment(horizontal='right', vertical='center')
                    cell.number_format = '#,##0'

        widths = {'A': 20, 'B': 40, 'C': 15, 'D': 18, 'E': 10, 'F': 18, 'G': 18, 'H': 12}
        for column, width in widths.items():
            ws.column_dimensions[column].width = width

        # Freeze header row
        ws.freeze_panes = 'A2'

        excel_file = io.BytesIO()
        wb.save(excel_file)
        excel_file.seek(0)

        return excel_file

    @staticmethod
    def _read_rows(file_content: bytes) -> List[Dict]:
        """Extract (product id, new quantity) rows from an uploaded count sheet"""
        try:
            df = pd.read_excel(io.BytesIO(file_content), sheet_name=0, header=0)
        except (ValueError, OSError, zipfile.BadZipFile, InvalidFileException) as e:
            raise ValidationError(f"Could not read Excel file: {e}") from e

        # Find columns
        id_col = None
        qty_col = None
        for col in df.columns:
            col_lower = str(col).strip().lower()
            if col_lower in ('product id', 'product_id', 'id', 'sku'):
                id_col = col
            if 'new quantity' in col_lower:
                qty_col = col
        if qty_col is None:
            qty_col = next((c for c in df.columns if 'quantity' in str(c).lower()), None)

        if id_col is None or qty_col is None:
            raise ValidationError(
                "Could not identify the product id and quantity columns",
                {"columns": [str(c) for c in df.columns]},
            )

        rows = []
        for idx, row in df.iterrows():
            product_id = str(row[id_col]).strip() if pd.notna(row[id_col]) else ""
            if not product_id or product_id.lower() == 'nan':
                continue

            raw = row[qty_col]
            try:
                quantity = int(float(raw)) if pd.notna(raw) else None
            except (ValueError, TypeError):
                quantity = None

            rows.append({"row": int(idx) + 2, "product_id": product_id, "quantity": quantity})
        return rows

    def preview_inventory_file(self, file_content: bytes, filename: str) -> Dict:
        """Read the file and report what would change, WITHOUT updating stock"""
        rows = self._read_rows(file_content)

        with self.uow_factory() as uow:
            for row in rows:
                product = uow.products.find_by_id(row["product_id"])
                row["current_quantity"] = product.stock_quantity if product else None
                row["found"] = product is not None

        return {
            "status": "success",
            "filename": filename,
            "total_rows": len(rows),
            "rows": rows,
        }

    def process_inventory_upload(self, file_content: bytes, filename: str, actor: Actor) -> Dict:
        """
        Apply every "New Quantity" through the ledger's set operation.

        Each row is independent: a bad row is reported and the rest still apply.
        """
        if not actor.can(MANAGE_INVENTORY):
            raise PermissionDeniedError(MANAGE_INVENTORY)

        rows = self._read_rows(file_content)
        if not rows:
            raise ValidationError("No product rows found in file", {"filename": filename})

        results = []
        for row in rows:
            result = {"row": row["row"], "product_id": row["product_id"]}
            if row["quantity"] is None:
                result.update(success=False, error="Quantity is not a number")
                results.append(result)
                continue

            try:
                with self.uow_factory() as uow:
                    change = InventoryLedger(uow.products).set(
                        row["product_id"], row["quantity"], reason=f"Stock count upload: {filename}"
                    )
                    uow.commit()
                result.update(
                    success=True,
                    old_quantity=change.old_quantity,
                    new_quantity=change.new_quantity,
                    status=change.status.value,
                )
            except PosError as e:
                logger.warning(f"Stock upload row {row['row']} ({row['product_id']}) failed: {e.message}")
                result.update(success=False, error=e.message, details=e.details)
            results.append(result)

        updated = sum(1 for r in results if r["success"])
        logger.info(f"Stock upload {filename} by {actor.id}: {updated}/{len(results)} rows applied")

        return {
            "status": "success",
            "filename": filename,
            "total_rows": len(results),
            "updated": updated,
            "failed": len(results) - updated,
            "results": results,
        }
