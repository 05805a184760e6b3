from __future__ import annotations

import os
import re
from datetime import datetime
from urllib.parse import unquote

import pytest

from tailorbook.extensions import db
from tailorbook.models import GarmentType, Order, OrderItem, OrderStatus
from tailorbook.services import invoices
from tailorbook.services.invoices import (
    fallback_message,
    invoice_message,
    invoice_path,
    normalize_phone,
    share_invoice,
    whatsapp_url,
)
from tailorbook.services.storage import INVOICES_BUCKET, StorageError, get_file_store
from tailorbook.utils.invoice_pdf import format_amount, render_invoice_pdf

from .conftest import make_customer

SHOP = {"SHOP_NAME": "Sharma Tailors", "SHOP_MOBILE": "9800000000", "CURRENCY": "₹"}

MEDIABOX = re.compile(rb"/MediaBox\s*\[\s*0 0 ([\d.]+) ([\d.]+)\s*\]")


def _order(profile, snapshot=None, items=1, created_at=None):
    customer = make_customer(profile)
    order = Order(
        profile_id=profile.id,
        customer_id=customer.id,
        total_amount=1000,
        advance_amount=300,
        status=OrderStatus.RECEIVED,
        created_at=created_at or datetime(2025, 1, 3, 10, 30),
    )
    for pos in range(items):
        order.items.append(OrderItem(
            position=pos,
            garment_type=GarmentType.SHIRT,
            qty=1,
            price=1000 / items,
            measurement_snapshot=snapshot,
        ))
    db.session.add(order)
    db.session.commit()
    return order


class FailingStore:
    def find(self, prefix, filename):
        return None

    def upload(self, path, data, content_type="application/octet-stream", upsert=True):
        raise StorageError("bucket unavailable")

    def public_url(self, path):  # pragma: no cover
        raise AssertionError("not reached")


# =========================================================
# Messages / links
# =========================================================
def test_invoice_message_format():
    msg = invoice_message("Sharma Tailors", "Raj Kumar", "ab12c", 700.0, "https://x.test/i.pdf")
    assert msg == (
        "*INVOICE: Sharma Tailors*\n\n"
        "Hello Raj Kumar,\n"
        "Here is your receipt #ab12c.\n"
        "Amount Due: ₹700\n\n"
        "📄 *View Invoice:* \nhttps://x.test/i.pdf"
    )


def test_fallback_message_format():
    assert fallback_message("Sharma Tailors", "Raj Kumar", "ab12c") == (
        "*INVOICE: Sharma Tailors*\n\n"
        "Hello Raj Kumar,\n"
        "Please find your invoice attached.\n"
        "Receipt #ab12c"
    )


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("98765 43210", "919876543210"),
        ("+91 98765-43210", "919876543210"),
        ("919876543210", "919876543210"),
        ("", ""),
    ],
)
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw, "91") == expected


def test_whatsapp_url_encodes_like_encode_uri_component():
    url = whatsapp_url("919876543210", "*Hi* (you)!\nA&B ₹1")
    assert url.startswith("https://wa.me/919876543210?text=")
    text = url.split("?text=", 1)[1]
    assert "%0A" in text and "%26" in text and "%20" in text
    assert "*Hi*" in text and "(you)!" in text
    assert unquote(text) == "*Hi* (you)!\nA&B ₹1"


def test_format_amount():
    assert format_amount(700.0) == "700"
    assert format_amount(12.5) == "12.50"
    assert format_amount(None) == "0"


# =========================================================
# PDF
# =========================================================
def test_pdf_is_a4_wide_and_sized_to_content(app, profile):
    short = render_invoice_pdf(_order(profile), SHOP)
    assert short.startswith(b"%PDF")

    long_order = _order(profile, snapshot={"chest": "40", "collar": "15"}, items=4)
    tall = render_invoice_pdf(long_order, SHOP)

    w1, h1 = map(float, MEDIABOX.search(short).groups())
    w2, h2 = map(float, MEDIABOX.search(tall).groups())
    assert abs(w1 - 595.2756) < 0.01
    assert w1 == w2
    assert h2 > h1


def test_pdf_renders_gujarati_snapshot_without_error(app, profile):
    order = _order(profile, snapshot={"છાતી": "40"})
    assert render_invoice_pdf(order, SHOP).startswith(b"%PDF")


# =========================================================
# Share
# =========================================================
def test_invoice_path_uses_creation_date_and_id(app, profile):
    order = _order(profile)
    assert invoice_path(order) == f"2025-01-03/{order.id}.pdf"


def test_share_twice_stores_one_document(app, profile):
    order = _order(profile)

    first = share_invoice(order, SHOP)
    second = share_invoice(order, SHOP)

    assert first.uploaded and not first.reused
    assert second.reused
    assert first.public_url == second.public_url
    assert first.public_url == f"http://tailorbook.test/files/invoices/2025-01-03/{order.id}.pdf"

    folder = os.path.join(app.config["STORAGE_DIR"], INVOICES_BUCKET, "2025-01-03")
    assert os.listdir(folder) == [f"{order.id}.pdf"]

    assert "Amount Due: ₹700" in first.message
    assert first.public_url in first.message
    assert first.whatsapp_url.startswith("https://wa.me/919876543210?text=")


def test_share_reuses_file_that_already_exists(app, profile, monkeypatch):
    order = _order(profile)
    get_file_store(INVOICES_BUCKET).upload(invoice_path(order), b"%PDF-existing")

    def _no_render(*args, **kwargs):
        raise AssertionError("should not render")

    monkeypatch.setattr(invoices, "render_invoice_pdf", _no_render)
    assert share_invoice(order, SHOP).reused


def test_upload_failure_falls_back_to_text_only(app, profile):
    order = _order(profile)

    result = share_invoice(order, SHOP, store=FailingStore())

    assert result.fallback
    assert result.public_url is None
    assert result.message == fallback_message("Sharma Tailors", "Raj Kumar", order.reference)
    assert "http" not in unquote(result.whatsapp_url.split("?text=", 1)[1])


# =========================================================
# Routes
# =========================================================
def test_pdf_route_is_inline_and_download(unlocked, profile):
    order = _order(profile)

    r = unlocked.get(f"/orders/{order.id}/pdf")
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.headers["Content-Disposition"].startswith("inline")

    r = unlocked.get(f"/orders/{order.id}/pdf?download=1")
    assert r.headers["Content-Disposition"].startswith("attachment")


def test_share_route_and_public_file(unlocked, client, profile):
    order = _order(profile)

    r = unlocked.post(f"/orders/{order.id}/share")
    assert r.status_code == 200
    assert b"https://wa.me/919876543210?text=" in r.data

    r = client.get(f"/files/invoices/2025-01-03/{order.id}.pdf")
    assert r.status_code == 200
    assert r.data.startswith(b"%PDF")


def test_share_route_fallback_shows_download(unlocked, profile, monkeypatch):
    order = _order(profile)
    monkeypatch.setattr(invoices, "get_file_store", lambda bucket: FailingStore())

    r = unlocked.post(f"/orders/{order.id}/share")
    assert r.status_code == 200
    assert b"Attach the invoice manually" in r.data
    assert f"/orders/{order.id}/pdf?download=1".encode() in r.data


def test_share_route_render_error_keeps_invoice_screen(unlocked, profile, monkeypatch):
    order = _order(profile)

    def _broken(*args, **kwargs):
        raise RuntimeError("font missing")

    monkeypatch.setattr(invoices, "render_invoice_pdf", _broken)
    r = unlocked.post(f"/orders/{order.id}/share")
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/orders/{order.id}")
