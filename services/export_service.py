"""
Export service — Generate allocation Excel files.

Flattens committed allocation records against the current stock snapshot
so every row carries the batch attributes planners look at.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Iterable, Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Border, Side, PatternFill
import structlog

from models.allocation import AllocationRecord
from models.stock import StockBatch

logger = structlog.get_logger(__name__)

ALLOCATION_COLUMNS = [
    ("customer_id", "Customer", 20),
    ("batch_number", "Batch", 16),
    ("sales_document", "Sales Document", 16),
    ("sales_document_item", "Item", 8),
    ("order_ref", "Order Ref", 16),
    ("quantity_kg", "Quantity KG", 14),
    ("quality_grade", "Quality", 12),
    ("age_days", "Age (days)", 10),
    ("origin_country", "Origin", 14),
    ("variety", "Variety", 14),
    ("supplier", "Supplier", 20),
    ("material_id", "Material", 14),
    ("demand_class", "Class", 14),
    ("loading_date", "Loading Date", 14),
]


class ExportService:
    """Service for generating allocation export files."""

    def flatten(
        self,
        records: Iterable[AllocationRecord],
        stock: Iterable[StockBatch],
    ) -> list[dict]:
        """
        One flat row per allocation record.

        Batch attributes come from the stock snapshot; batches no longer in
        stock leave those columns empty.
        """
        batches = {batch.batch_number: batch for batch in stock}
        rows = []
        for record in records:
            batch = batches.get(record.batch_number)
            rows.append({
                "customer_id": record.customer_id,
                "batch_number": record.batch_number,
                "sales_document": record.sales_document,
                "sales_document_item": record.sales_document_item,
                "order_ref": record.order_ref,
                "quantity_kg": record.quantity_kg,
                "quality_grade": batch.quality_grade if batch else None,
                "age_days": batch.age_days if batch else None,
                "origin_country": batch.origin_country if batch else None,
                "variety": batch.variety if batch else None,
                "supplier": batch.supplier if batch else None,
                "material_id": record.material_id or (batch.material_id if batch else None),
                "demand_class": record.demand_class.value if record.demand_class else None,
                "loading_date": record.loading_date,
            })
        rows.sort(key=lambda r: (r["customer_id"], r["sales_document"], r["batch_number"]))
        return rows

    def generate_allocation_excel(
        self,
        records: Iterable[AllocationRecord],
        stock: Iterable[StockBatch],
        generated_at: Optional[datetime] = None,
    ) -> BytesIO:
        """
        Generate Excel file with all allocations.

        Sheets:
            Allocations: one row per record
            Summary: KG, batches and orders per customer

        Returns:
            BytesIO containing the Excel file
        """
        generated_at = generated_at or datetime.now()
        rows = self.flatten(records, stock)

        logger.info("generating_allocation_export", row_count=len(rows))

        wb = Workbook()

        # Styles
        bold_font = Font(bold=True)
        title_font = Font(bold=True, size=14)
        thin_border = Border(bottom=Side(style="thin", color="000000"))
        header_fill = PatternFill(start_color="E0E8FF", end_color="E0E8FF", fill_type="solid")

        # ===================
        # ALLOCATIONS SHEET
        # ===================
        ws = wb.active
        ws.title = "Allocations"

        for index, (_, header, width) in enumerate(ALLOCATION_COLUMNS, start=1):
            cell = ws.cell(row=1, column=index, value=header)
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
            ws.column_dimensions[cell.column_letter].width = width

        for row_index, row in enumerate(rows, start=2):
            for col_index, (key, _, _) in enumerate(ALLOCATION_COLUMNS, start=1):
                value = row[key]
                if isinstance(value, Decimal):
                    value = float(value)
                cell = ws.cell(row=row_index, column=col_index, value=value)
                if key == "quantity_kg":
                    cell.number_format = "#,##0.00"

        ws.freeze_panes = "A2"

        # ===================
        # SUMMARY SHEET
        # ===================
        ws_summary = wb.create_sheet(title="Summary")
        ws_summary.column_dimensions["A"].width = 25
        ws_summary.column_dimensions["B"].width = 15
        ws_summary.column_dimensions["C"].width = 10
        ws_summary.column_dimensions["D"].width = 10

        ws_summary["A1"] = "Allocation Summary"
        ws_summary["A1"].font = title_font
        ws_summary["A2"] = f"Generated {generated_at.strftime('%d/%m/%Y %H:%M')}"

        headers = ["Customer", "Allocated KG", "Batches", "Orders"]
        for index, header in enumerate(headers, start=1):
            cell = ws_summary.cell(row=4, column=index, value=header)
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border

        totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        batches: dict[str, set] = defaultdict(set)
        orders: dict[str, set] = defaultdict(set)
        for row in rows:
            customer = row["customer_id"]
            totals[customer] += row["quantity_kg"]
            batches[customer].add(row["batch_number"])
            orders[customer].add((row["sales_document"], row["sales_document_item"]))

        row_index = 5
        for customer in sorted(totals):
            ws_summary[f"A{row_index}"] = customer
            ws_summary[f"B{row_index}"] = float(totals[customer])
            ws_summary[f"B{row_index}"].number_format = "#,##0.00"
            ws_summary[f"C{row_index}"] = len(batches[customer])
            ws_summary[f"D{row_index}"] = len(orders[customer])
            row_index += 1

        grand_total = sum(totals.values(), Decimal("0"))
        ws_summary[f"A{row_index}"] = "TOTAL"
        ws_summary[f"A{row_index}"].font = bold_font
        ws_summary[f"B{row_index}"] = float(grand_total)
        ws_summary[f"B{row_index}"].font = bold_font
        ws_summary[f"B{row_index}"].number_format = "#,##0.00"

        logger.info(
            "allocation_export_generated",
            row_count=len(rows),
            customer_count=len(totals),
            total_kg=float(grand_total),
        )

        # Save to BytesIO
        output = BytesIO()
        wb.save(output)
        output.seek(0)

        return output


# Singleton instance
_export_service: Optional[ExportService] = None


def get_export_service() -> ExportService:
    """Get or create ExportService instance."""
    global _export_service
    if _export_service is None:
        _export_service = ExportService()
    return _export_service
