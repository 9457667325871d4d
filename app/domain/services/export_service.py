"""
Excel export service (openpyxl)

Builds styled XLSX workbooks with titles, header rows, totals and auto-fitted
columns: the general waybill of a sealed departure and the distribution
report.
"""
import io
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter


# ==================== Styling constants ====================

_HEADER_FILL = PatternFill(start_color="1F4E79", end_color="1F4E79", fill_type="solid")
_HEADER_FONT = Font(name="Arial", bold=True, color="FFFFFF", size=11)
_TITLE_FONT = Font(name="Arial", bold=True, size=14)
_SUBTITLE_FONT = Font(name="Arial", bold=False, size=10, color="666666")
_TOTAL_FONT = Font(name="Arial", bold=True, size=11)
_TOTAL_FILL = PatternFill(start_color="D9E2F3", end_color="D9E2F3", fill_type="solid")
_CURRENCY_FORMAT = '#,##0.00'
_WEIGHT_FORMAT = '#,##0.000'

_THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

_TEXT_ALIGN = Alignment(horizontal="left", vertical="center", wrap_text=True)
_NUMBER_ALIGN = Alignment(horizontal="right", vertical="center")


def _auto_fit_columns(ws: Any) -> None:
    """Fit column widths to content (min 10, max 40)"""
    for col_cells in ws.columns:
        max_length = 0
        col_letter = get_column_letter(col_cells[0].column)
        for cell in col_cells:
            if cell.value is not None:
                cell_len = len(str(cell.value))
                if cell_len > max_length:
                    max_length = cell_len
        adjusted_width = min(max(max_length + 4, 10), 40)
        ws.column_dimensions[col_letter].width = adjusted_width


def _apply_header_style(ws: Any, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _TEXT_ALIGN
        cell.border = _THIN_BORDER


def _apply_data_style(ws: Any, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        if isinstance(cell.value, str):
            cell.alignment = _TEXT_ALIGN
        cell.border = _THIN_BORDER


def _apply_total_style(ws: Any, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.font = _TOTAL_FONT
        cell.fill = _TOTAL_FILL
        cell.border = _THIN_BORDER


def _write_title(ws: Any, title: str, subtitle: str, start_row: int = 1) -> int:
    """Write title and subtitle, returns the next free row"""
    ws.cell(row=start_row, column=1, value=title).font = _TITLE_FONT
    ws.cell(row=start_row + 1, column=1, value=subtitle).font = _SUBTITLE_FONT
    return start_row + 3  # blank row after the title


def _write_headers(ws: Any, row: int, headers: list[str]) -> None:
    for col, header in enumerate(headers, 1):
        ws.cell(row=row, column=col, value=header)
    _apply_header_style(ws, row, len(headers))


def _currency_cell(ws: Any, row: int, column: int, value: Decimal | None) -> Any:
    cell = ws.cell(row=row, column=column, value=float(value) if value is not None else None)
    cell.number_format = _CURRENCY_FORMAT
    cell.alignment = _NUMBER_ALIGN
    return cell


def _weight_cell(ws: Any, row: int, column: int, value: Decimal | None) -> Any:
    cell = ws.cell(row=row, column=column, value=float(value) if value is not None else None)
    cell.number_format = _WEIGHT_FORMAT
    cell.alignment = _NUMBER_ALIGN
    return cell


# Leading characters Excel would evaluate as a formula
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _sanitize_text(value: str) -> str:
    """Neutralize text that Excel would interpret as a formula (formula injection).

    Prefixes a single quote, so Excel shows the text verbatim.
    """
    if isinstance(value, str) and value and value[0] in _FORMULA_PREFIXES:
        return f"'{value}"
    return value


def _to_bytes(wb: Workbook) -> bytes:
    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output.getvalue()


def _nature_label(shipment: Any) -> str:
    label = shipment.nature.value.upper()
    if shipment.type is not None:
        label += f" / {shipment.type.value.upper()}"
    return label


# ==================== General waybill ====================


def generate_general_waybill_excel(
    departure: Any,
    shipments: Iterable[Any],
    company_name: str,
    generated_at: datetime | None = None,
    include_prices: bool = True,
) -> bytes:
    """
    Render the general waybill of a departure.

    Args:
        departure: Departure with general_waybill_number, route, vehicle and driver loaded
        shipments: member shipments, in waybill order
        company_name: header line of the document
        generated_at: timestamp printed on the document
        include_prices: False drops the price column and the price total

    Returns:
        bytes of the XLSX file
    """
    shipments = list(shipments)
    generated_at = generated_at or datetime.utcnow()

    wb = Workbook()
    ws = wb.active
    ws.title = "General waybill"

    subtitle = f"General waybill {departure.general_waybill_number} | generated {generated_at.strftime('%Y-%m-%d %H:%M')}"
    row = _write_title(ws, _sanitize_text(company_name), subtitle)

    driver = departure.driver
    vehicle = departure.vehicle
    details = [
        ("Route", departure.route),
        ("Vehicle", f"{vehicle.name} ({vehicle.registration_number})" if vehicle else None),
        ("Driver", driver.display_name if driver else None),
        ("Sealed at", departure.sealed_at.strftime("%Y-%m-%d %H:%M") if departure.sealed_at else None),
    ]
    for label, value in details:
        ws.cell(row=row, column=1, value=label).font = _TOTAL_FONT
        # Placeholder is written as is; only stored text is sanitized
        ws.cell(row=row, column=2, value=_sanitize_text(value) if value else "-")
        row += 1
    row += 1

    headers = ["Waybill", "Sender", "Receiver", "Nature", "Weight (kg)"]
    if include_prices:
        headers.append("Price")
    col_count = len(headers)
    _write_headers(ws, row, headers)

    total_weight = Decimal("0")
    total_price = Decimal("0")
    for shipment in shipments:
        row += 1
        ws.cell(row=row, column=1, value=shipment.waybill_number)
        ws.cell(row=row, column=2, value=_sanitize_text(f"{shipment.sender_name} {shipment.sender_phone}"))
        ws.cell(row=row, column=3, value=_sanitize_text(f"{shipment.receiver_name} {shipment.receiver_phone}"))
        ws.cell(row=row, column=4, value=_nature_label(shipment))
        _weight_cell(ws, row, 5, shipment.weight)
        if include_prices:
            _currency_cell(ws, row, 6, shipment.price)
            total_price += shipment.price or 0
        _apply_data_style(ws, row, col_count)
        total_weight += shipment.weight or 0

    row += 1
    ws.cell(row=row, column=1, value=f"Total ({len(shipments)} shipments)")
    _weight_cell(ws, row, 5, total_weight)
    if include_prices:
        _currency_cell(ws, row, 6, total_price)
    _apply_total_style(ws, row, col_count)

    _auto_fit_columns(ws)
    return _to_bytes(wb)


# ==================== Distribution report (multiple sheets) ====================


def generate_distribution_report_excel(
    drivers: list[dict[str, Any]],
    regulator: dict[str, Any],
    agency: dict[str, Any],
    date_from: str,
    date_to: str,
) -> bytes:
    """
    Build the distribution report workbook.

    Args:
        drivers: per-driver payouts (driver_name, shipment_count, total_amount, shipments)
        regulator: total_revenue, regulator_amount, shipments
        agency: total_revenue, total_driver_distributions, total_regulator_distribution, agency_amount
        date_from: period start (YYYY-MM-DD or empty)
        date_to: period end (YYYY-MM-DD or empty)

    Returns:
        bytes of the XLSX file
    """
    wb = Workbook()
    period = f"Period: {date_from or '...'} to {date_to or '...'} | generated {datetime.utcnow().strftime('%Y-%m-%d %H:%M')}"

    # ==================== Sheet 1: summary ====================
    ws_summary = wb.active
    ws_summary.title = "Summary"
    row = _write_title(ws_summary, "Distribution summary", period)
    _write_headers(ws_summary, row, ["Item", "Amount"])
    summary_rows = [
        ("Total revenue", agency["total_revenue"]),
        ("Driver distributions", agency["total_driver_distributions"]),
        ("Regulator distribution", agency["total_regulator_distribution"]),
    ]
    for label, amount in summary_rows:
        row += 1
        ws_summary.cell(row=row, column=1, value=label)
        _currency_cell(ws_summary, row, 2, amount)
        _apply_data_style(ws_summary, row, 2)
    row += 1
    ws_summary.cell(row=row, column=1, value="Agency amount")
    _currency_cell(ws_summary, row, 2, agency["agency_amount"])
    _apply_total_style(ws_summary, row, 2)
    _auto_fit_columns(ws_summary)

    # ==================== Sheet 2: drivers ====================
    ws_drivers = wb.create_sheet("Drivers")
    row = _write_title(ws_drivers, "Driver distributions", period)
    headers = ["Driver", "Waybill", "Weight (kg)", "Price", "Driver amount", "Sealed at"]
    _write_headers(ws_drivers, row, headers)
    grand_total = Decimal("0")
    for payout in drivers:
        for line in payout["shipments"]:
            row += 1
            ws_drivers.cell(row=row, column=1, value=_sanitize_text(payout["driver_name"]))
            ws_drivers.cell(row=row, column=2, value=line["waybill_number"])
            _weight_cell(ws_drivers, row, 3, line["weight"])
            _currency_cell(ws_drivers, row, 4, line["price"])
            _currency_cell(ws_drivers, row, 5, line["driver_amount"])
            ws_drivers.cell(row=row, column=6, value=line["sealed_at"].strftime("%Y-%m-%d %H:%M"))
            _apply_data_style(ws_drivers, row, len(headers))
        row += 1
        ws_drivers.cell(row=row, column=1, value=_sanitize_text(f"{payout['driver_name']} ({payout['shipment_count']})"))
        _currency_cell(ws_drivers, row, 5, payout["total_amount"])
        _apply_total_style(ws_drivers, row, len(headers))
        grand_total += payout["total_amount"]
    row += 1
    ws_drivers.cell(row=row, column=1, value="Total")
    _currency_cell(ws_drivers, row, 5, grand_total)
    _apply_total_style(ws_drivers, row, len(headers))
    _auto_fit_columns(ws_drivers)

    # ==================== Sheet 3: regulator ====================
    ws_regulator = wb.create_sheet("Regulator")
    row = _write_title(ws_regulator, "Regulator distribution", period)
    headers = ["Waybill", "Nature", "Weight (kg)", "Price", "Sealed at"]
    _write_headers(ws_regulator, row, headers)
    for line in regulator["shipments"]:
        row += 1
        nature = line["nature"].upper() + (f" / {line['type'].upper()}" if line.get("type") else "")
        ws_regulator.cell(row=row, column=1, value=line["waybill_number"])
        ws_regulator.cell(row=row, column=2, value=nature)
        _weight_cell(ws_regulator, row, 3, line["weight"])
        _currency_cell(ws_regulator, row, 4, line["price"])
        ws_regulator.cell(row=row, column=5, value=line["sealed_at"].strftime("%Y-%m-%d %H:%M"))
        _apply_data_style(ws_regulator, row, len(headers))
    row += 1
    ws_regulator.cell(row=row, column=1, value="Eligible revenue")
    _currency_cell(ws_regulator, row, 4, regulator["total_revenue"])
    _apply_total_style(ws_regulator, row, len(headers))
    row += 1
    ws_regulator.cell(row=row, column=1, value="Regulator amount (5%)")
    _currency_cell(ws_regulator, row, 4, regulator["regulator_amount"])
    _apply_total_style(ws_regulator, row, len(headers))
    _auto_fit_columns(ws_regulator)

    return _to_bytes(wb)
