# tailorbook/services/invoices.py
"""
Invoice sharing.

share_invoice(order, shop) resolves the invoice's public link, generating and
uploading the PDF only when no file exists yet at its deterministic path, and
builds the pre-filled WhatsApp link. A failed upload is not an error for the
operator: the result carries the PDF for download and a text-only message.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from flask import current_app

from tailorbook.services.storage import INVOICES_BUCKET, StorageError, get_file_store
from tailorbook.utils.invoice_pdf import format_amount, render_invoice_pdf

WHATSAPP_BASE_URL = "https://wa.me"

# Characters encodeURIComponent leaves unescaped.
_URI_SAFE = "!~*'()"


# =========================================================
# Paths
# =========================================================
def invoice_folder(order) -> str:
    """UTC date the order was created, YYYY-MM-DD."""
    return order.created_at.strftime("%Y-%m-%d")


def invoice_filename(order) -> str:
    return f"{order.id}.pdf"


def invoice_path(order) -> str:
    return f"{invoice_folder(order)}/{invoice_filename(order)}"


# =========================================================
# Messages
# =========================================================
def invoice_message(shop_name: str, customer_name: str, reference: str, balance, url: str,
                    currency: str = "₹") -> str:
    return (
        f"*INVOICE: {shop_name}*\n\n"
        f"Hello {customer_name},\n"
        f"Here is your receipt #{reference}.\n"
        f"Amount Due: {currency}{format_amount(balance)}\n\n"
        f"📄 *View Invoice:* \n{url}"
    )


def fallback_message(shop_name: str, customer_name: str, reference: str) -> str:
    return (
        f"*INVOICE: {shop_name}*\n\n"
        f"Hello {customer_name},\n"
        f"Please find your invoice attached.\n"
        f"Receipt #{reference}"
    )


def normalize_phone(raw: str | None, country_code: str = "91") -> str:
    digits = "".join(ch for ch in (raw or "") if ch.isdigit())
    if len(digits) == 10:
        return f"{country_code}{digits}"
    return digits


def whatsapp_url(phone: str, message: str) -> str:
    return f"{WHATSAPP_BASE_URL}/{phone}?text={quote(message, safe=_URI_SAFE)}"


# =========================================================
# Share
# =========================================================
@dataclass
class ShareResult:
    message: str
    whatsapp_url: str
    public_url: Optional[str] = None
    reused: bool = False
    # Upload failed: the operator downloads the PDF and attaches it by hand.
    fallback: bool = False

    @property
    def uploaded(self) -> bool:
        return self.public_url is not None


def resolve_invoice_url(order, shop: dict, store=None) -> tuple[str, bool]:
    """
    (public_url, reused). Looks the file up before rendering so sharing the
    same order again reuses the stored document.
    Raises StorageError when the upload fails.
    """
    store = store or get_file_store(INVOICES_BUCKET)

    existing = store.find(invoice_folder(order), invoice_filename(order))
    if existing:
        return store.public_url(existing), True

    pdf = render_invoice_pdf(order, shop)
    stored = store.upload(invoice_path(order), pdf, content_type="application/pdf", upsert=True)
    current_app.logger.info("Invoice stored order=%s path=%s sha256=%s", order.id, stored.path, stored.sha256)
    return store.public_url(stored.path), False


def share_invoice(order, shop: dict, store=None) -> ShareResult:
    """
    Build the share result for an order.
    Rendering errors propagate; storage errors switch to the download fallback.
    """
    customer = order.customer
    shop_name = shop.get("SHOP_NAME") or ""
    currency = shop.get("CURRENCY") or current_app.config.get("CURRENCY_SYMBOL", "₹")
    phone = normalize_phone(getattr(customer, "mobile", ""), current_app.config.get("COUNTRY_CODE", "91"))

    try:
        url, reused = resolve_invoice_url(order, shop, store=store)
    except StorageError:
        current_app.logger.exception("Invoice upload failed, falling back to download order=%s", order.id)
        message = fallback_message(shop_name, customer.name, order.reference)
        return ShareResult(
            message=message,
            whatsapp_url=whatsapp_url(phone, message),
            fallback=True,
        )

    message = invoice_message(shop_name, customer.name, order.reference, order.balance_due, url, currency)
    return ShareResult(
        message=message,
        whatsapp_url=whatsapp_url(phone, message),
        public_url=url,
        reused=reused,
    )
