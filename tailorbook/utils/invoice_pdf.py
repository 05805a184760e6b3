# tailorbook/utils/invoice_pdf.py

from __future__ import annotations

import io
from datetime import datetime, date

from reportlab.lib import colors
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import Table, TableStyle

PAGE_WIDTH = 210 * mm
MARGIN = 14 * mm
HEADER_HEIGHT = 30 * mm
FOOTER_HEIGHT = 12 * mm
GAP = 6 * mm

INK = colors.HexColor("#111827")
MUTED = colors.HexColor("#6b7280")
ACCENT = colors.HexColor("#7c2d12")
RULE = colors.HexColor("#e5e7eb")
SHADE = colors.HexColor("#f3f4f6")


def _fmt_date(d):
    if not d:
        return "-"
    if isinstance(d, (datetime, date)):
        return d.strftime("%d %b %Y")
    return str(d)


def format_amount(v) -> str:
    """1000.0 -> "1000", 12.5 -> "12.50"."""
    try:
        f = float(v or 0)
    except (TypeError, ValueError):
        return str(v)
    if f.is_integer():
        return str(int(f))
    return f"{f:.2f}"


def _money(v, currency="Rs."):
    # Base-14 fonts have no rupee glyph.
    return f"{currency} {format_amount(v)}"


def _table(data, col_widths, header=True) -> Table:
    t = Table(data, colWidths=col_widths, hAlign="LEFT")
    style = [
        ("FONTNAME", (0, 0), (-1, -1), "Helvetica"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("TEXTCOLOR", (0, 0), (-1, -1), INK),
        ("GRID", (0, 0), (-1, -1), 0.5, RULE),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("PADDING", (0, 0), (-1, -1), 5),
    ]
    if header:
        style += [
            ("BACKGROUND", (0, 0), (-1, 0), SHADE),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ]
    t.setStyle(TableStyle(style))
    return t


def _item_rows(order) -> list[list[str]]:
    rows = [["#", "Item", "Qty", "Price"]]
    for i, it in enumerate(order.items, start=1):
        rows.append([
            str(i),
            it.garment_type.value,
            str(it.qty or 1),
            _money(it.price),
        ])
    if len(rows) == 1:
        rows.append(["-", "(No items)", "-", "-"])
    return rows


def _measurement_rows(order) -> list[list[str]]:
    """
    One row per garment with a snapshot: "label: value" pairs joined on one cell.
    Snapshot labels are Gujarati, which the base fonts cannot draw; the keys are
    still printed so nothing is lost when a Unicode font is registered.
    """
    rows = []
    for it in order.items:
        snap = it.measurement_snapshot or {}
        if not snap:
            continue
        pairs = ", ".join(f"{k}: {v}" for k, v in snap.items())
        rows.append([it.garment_type.value, pairs])
    return rows


def render_invoice_pdf(order, shop: dict) -> bytes:
    """
    Render an order invoice (NO DB writes).
    Page is 210 mm wide; its height follows the content.
    Returns PDF bytes.
    """
    customer = order.customer
    width = PAGE_WIDTH
    inner = width - 2 * MARGIN

    items = _table(_item_rows(order), [12 * mm, inner - 72 * mm, 20 * mm, 40 * mm])
    _, items_h = items.wrap(inner, 10_000)

    m_rows = _measurement_rows(order)
    measurements = None
    meas_h = 0
    if m_rows:
        measurements = _table([["Garment", "Measurements"]] + m_rows, [30 * mm, inner - 30 * mm])
        _, meas_h = measurements.wrap(inner, 10_000)

    totals = _table(
        [
            ["Total", _money(order.total_amount)],
            ["Advance", _money(order.advance_amount)],
            ["Balance Due", _money(order.balance_due)],
        ],
        [40 * mm, 40 * mm],
        header=False,
    )
    totals.setStyle(TableStyle([
        ("FONTNAME", (0, 2), (-1, 2), "Helvetica-Bold"),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
    ]))
    _, totals_h = totals.wrap(inner, 10_000)

    customer_block_h = 22 * mm
    section_title_h = 7 * mm

    height = (
        HEADER_HEIGHT
        + GAP + customer_block_h
        + GAP + section_title_h + items_h
        + (GAP + section_title_h + meas_h if measurements else 0)
        + GAP + totals_h
        + GAP + FOOTER_HEIGHT
    )

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(width, height))
    c.setTitle(f"Invoice {order.reference}")

    # --- Header bar ---
    c.setFillColor(ACCENT)
    c.rect(0, height - HEADER_HEIGHT, width, HEADER_HEIGHT, stroke=0, fill=1)

    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 16)
    c.drawString(MARGIN, height - 13 * mm, (shop.get("SHOP_NAME") or "")[:48])

    c.setFont("Helvetica", 9)
    contact = " | ".join(x for x in [shop.get("SHOP_MOBILE"), shop.get("SHOP_ADDRESS")] if x)
    if contact:
        c.drawString(MARGIN, height - 20 * mm, contact[:90])
    if shop.get("SHOP_GSTIN"):
        c.drawString(MARGIN, height - 25 * mm, f"GSTIN: {shop['SHOP_GSTIN']}")

    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(width - MARGIN, height - 13 * mm, f"RECEIPT #{order.reference}")
    c.setFont("Helvetica", 9)
    c.drawRightString(width - MARGIN, height - 20 * mm, f"Date: {_fmt_date(order.created_at)}")
    c.drawRightString(width - MARGIN, height - 25 * mm, f"Status: {order.status.value}")

    y = height - HEADER_HEIGHT - GAP

    # --- Customer card ---
    c.setStrokeColor(RULE)
    c.setFillColor(colors.white)
    c.roundRect(MARGIN, y - customer_block_h, inner, customer_block_h, 6, stroke=1, fill=1)

    c.setFillColor(MUTED)
    c.setFont("Helvetica", 8)
    c.drawString(MARGIN + 4 * mm, y - 5 * mm, "BILLED TO")
    c.drawRightString(width - MARGIN - 4 * mm, y - 5 * mm, "DELIVERY")

    c.setFillColor(INK)
    c.setFont("Helvetica-Bold", 11)
    c.drawString(MARGIN + 4 * mm, y - 11 * mm, (getattr(customer, "name", "") or "-")[:60])
    c.drawRightString(width - MARGIN - 4 * mm, y - 11 * mm, _fmt_date(order.delivery_date))
    c.setFont("Helvetica", 9)
    c.drawString(MARGIN + 4 * mm, y - 16 * mm, getattr(customer, "mobile", "") or "")
    address = getattr(customer, "address", "") or ""
    if address:
        c.setFillColor(MUTED)
        c.drawString(MARGIN + 4 * mm, y - 20 * mm, address[:90])

    y -= customer_block_h + GAP

    # --- Items ---
    c.setFillColor(INK)
    c.setFont("Helvetica-Bold", 10)
    c.drawString(MARGIN, y - 4 * mm, "Items")
    y -= section_title_h
    items.drawOn(c, MARGIN, y - items_h)
    y -= items_h + GAP

    # --- Measurements ---
    if measurements:
        c.setFillColor(INK)
        c.setFont("Helvetica-Bold", 10)
        c.drawString(MARGIN, y - 4 * mm, "Measurements")
        y -= section_title_h
        measurements.drawOn(c, MARGIN, y - meas_h)
        y -= meas_h + GAP

    # --- Totals (right aligned) ---
    totals.drawOn(c, width - MARGIN - 80 * mm, y - totals_h)

    # --- Footer ---
    c.setFillColor(RULE)
    c.rect(0, 0, width, FOOTER_HEIGHT, stroke=0, fill=1)
    c.setFillColor(colors.HexColor("#374151"))
    c.setFont("Helvetica", 8)
    c.drawString(MARGIN, 4 * mm, "Thank you for your business.")
    c.setFillColor(MUTED)
    c.drawRightString(width - MARGIN, 4 * mm, f"Generated: {_fmt_date(date.today())}")

    c.showPage()
    c.save()

    pdf = buf.getvalue()
    buf.close()
    return pdf
