from __future__ import annotations

import io
from datetime import datetime

from reportlab.lib.colors import HexColor, black
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from app.raportal.models import User
from app.raportal.modules.payments.models import Payment

NAVY = HexColor("#000080")


def generate_receipt_pdf(payment: Payment, payer: User, *, issued_at: datetime | None = None) -> bytes:
    """Read-only rendering of a payment and its payer; nothing is persisted."""
    issued_at = issued_at or datetime.utcnow()
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    w, h = A4
    c.setTitle(f"Receipt {payment.id}")

    # header
    c.setFillColor(NAVY)
    c.setFont("Helvetica-Bold", 18)
    c.drawCentredString(w / 2, h - 25 * mm, "ROYAL AMBASSADORS OF NIGERIA")
    c.setFont("Helvetica", 12)
    c.drawCentredString(w / 2, h - 32 * mm, "Official Payment Receipt")
    c.setStrokeColor(black)
    c.line(20 * mm, h - 37 * mm, w - 20 * mm, h - 37 * mm)

    c.setFillColor(black)
    c.setFont("Helvetica", 11)
    c.drawRightString(w - 20 * mm, h - 45 * mm, f"Receipt ID: {payment.id}")
    c.drawRightString(w - 20 * mm, h - 51 * mm, f"Date: {issued_at:%Y-%m-%d}")

    y = h - 62 * mm
    for line in (
        f"Received From: {payer.full_name or payer.email}",
        f"RA ID: {payer.user_code or 'N/A'}",
        f"Church: {payer.church or 'N/A'}",
    ):
        c.drawString(20 * mm, y, line)
        y -= 7 * mm

    y -= 5 * mm
    c.setFont("Helvetica-Bold", 13)
    c.drawString(20 * mm, y, "Payment Details")
    y -= 9 * mm
    c.setFont("Helvetica", 11)
    for line in (
        f"Payment Type: {payment.type.upper()}",
        f"Amount: NGN {payment.amount:,.2f}",
        f"Status: {payment.status.upper()}",
        f"Submitted: {payment.created_at:%Y-%m-%d}" if payment.created_at else "Submitted: N/A",
        f"Reference: {payment.reference_note or 'N/A'}",
    ):
        c.drawString(20 * mm, y, line)
        y -= 7 * mm
    if payment.verified_at:
        c.drawString(20 * mm, y, f"Verified: {payment.verified_at:%Y-%m-%d}")
        y -= 7 * mm

    # footer
    c.line(20 * mm, 30 * mm, w - 20 * mm, 30 * mm)
    c.setFont("Helvetica", 9)
    c.drawCentredString(w / 2, 24 * mm, "Thank you for your commitment to the Royal Ambassadors.")

    c.showPage()
    c.save()
    return buf.getvalue()
