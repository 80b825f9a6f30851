"""PDF and invoice generation.

Both tools render with reportlab into memory and return the document as a
base64 data URI. Rendering is CPU-bound, so it runs in the threadpool.
"""

import base64
import io
from datetime import date

from pydantic import BaseModel, EmailStr, Field
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas
from starlette.concurrency import run_in_threadpool

from dropdawn.logging import get_logger
from dropdawn.tools.base import Tool, ToolContext

logger = get_logger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = A4
MARGIN = 20 * mm
BODY_FONT = "Helvetica"
BOLD_FONT = "Helvetica-Bold"


def to_data_uri(pdf_bytes: bytes) -> str:
    encoded = base64.b64encode(pdf_bytes).decode("ascii")
    return f"data:application/pdf;base64,{encoded}"


def render_text_pdf(title: str, content: str) -> bytes:
    """Render a title and wrapped body paragraphs, paginating as needed."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(title)

    y = PAGE_HEIGHT - MARGIN
    pdf.setFont(BOLD_FONT, 20)
    pdf.drawString(MARGIN, y, title)
    y -= 14 * mm

    line_height = 6 * mm
    max_width = PAGE_WIDTH - 2 * MARGIN
    pdf.setFont(BODY_FONT, 12)
    for paragraph in content.splitlines() or [""]:
        lines = simpleSplit(paragraph, BODY_FONT, 12, max_width) or [""]
        for line in lines:
            if y < MARGIN:
                pdf.showPage()
                pdf.setFont(BODY_FONT, 12)
                y = PAGE_HEIGHT - MARGIN
            pdf.drawString(MARGIN, y, line)
            y -= line_height

    pdf.save()
    return buffer.getvalue()


class LineItem(BaseModel):
    description: str = Field(..., description="Clear description of the service or product.")
    quantity: float = Field(..., description="Number of units.")
    price: float = Field(..., description="Unit price (numerical value only).")

    @property
    def total(self) -> float:
        return self.quantity * self.price


def _format_quantity(quantity: float) -> str:
    return str(int(quantity)) if float(quantity).is_integer() else str(quantity)


def render_invoice_pdf(
    invoice_number: str,
    client_name: str,
    client_email: str,
    items: list[LineItem],
    currency: str,
    issued: date,
) -> tuple[bytes, float]:
    """Render an invoice and return (pdf bytes, grand total)."""
    buffer = io.BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(f"Invoice {invoice_number}")

    top = PAGE_HEIGHT - MARGIN
    pdf.setFont(BOLD_FONT, 22)
    pdf.drawCentredString(PAGE_WIDTH / 2, top, "INVOICE")

    pdf.setFont(BODY_FONT, 12)
    pdf.drawString(MARGIN, top - 20 * mm, f"Invoice #: {invoice_number}")
    pdf.drawString(MARGIN, top - 27 * mm, f"Date: {issued.isoformat()}")
    pdf.drawString(MARGIN, top - 40 * mm, "Bill To:")
    pdf.setFont(BOLD_FONT, 12)
    pdf.drawString(MARGIN, top - 47 * mm, client_name)
    pdf.setFont(BODY_FONT, 12)
    pdf.drawString(MARGIN, top - 54 * mm, client_email)

    columns = {
        "description": MARGIN + 5 * mm,
        "qty": 120 * mm,
        "price": 140 * mm,
        "total": 170 * mm,
    }
    y = top - 70 * mm
    pdf.setFillGray(0.94)
    pdf.rect(MARGIN, y - 3 * mm, PAGE_WIDTH - 2 * MARGIN, 9 * mm, stroke=0, fill=1)
    pdf.setFillGray(0)
    pdf.setFont(BOLD_FONT, 12)
    pdf.drawString(columns["description"], y, "Description")
    pdf.drawString(columns["qty"], y, "Qty")
    pdf.drawString(columns["price"], y, "Price")
    pdf.drawString(columns["total"], y, "Total")

    pdf.setFont(BODY_FONT, 11)
    grand_total = 0.0
    for item in items:
        y -= 9 * mm
        if y < MARGIN + 20 * mm:
            pdf.showPage()
            pdf.setFont(BODY_FONT, 11)
            y = PAGE_HEIGHT - MARGIN
        grand_total += item.total
        pdf.drawString(columns["description"], y, item.description[:60])
        pdf.drawString(columns["qty"], y, _format_quantity(item.quantity))
        pdf.drawString(columns["price"], y, f"{currency} {item.price:.2f}")
        pdf.drawString(columns["total"], y, f"{currency} {item.total:.2f}")

    pdf.setFont(BOLD_FONT, 14)
    pdf.drawRightString(
        PAGE_WIDTH - MARGIN, y - 15 * mm, f"Grand Total: {currency} {grand_total:.2f}"
    )
    pdf.save()
    return buffer.getvalue(), grand_total


class PdfParams(BaseModel):
    title: str = Field(..., description="The main heading/title displayed at the top of the PDF.")
    content: str = Field(
        ..., description="The body text of the document. Can be multiple paragraphs."
    )
    filename: str | None = Field(
        None, description='The name of the file to save (e.g., "report.pdf").'
    )


async def generate_pdf(params: PdfParams, ctx: ToolContext) -> dict:
    try:
        pdf_bytes = await run_in_threadpool(render_text_pdf, params.title, params.content)
    except Exception as e:
        logger.warning("tool.pdf.failed", error_type=type(e).__name__)
        return {"error": "Failed to generate PDF"}

    return {
        "message": "PDF generated successfully",
        "filename": params.filename or "document.pdf",
        "dataUri": to_data_uri(pdf_bytes),
        "instructions": (
            "The PDF has been generated as a data URI. "
            "You can provide this to the user to view or download."
        ),
    }


class InvoiceParams(BaseModel):
    invoice_number: str = Field(
        ...,
        alias="invoiceNumber",
        description="The unique identifier for the invoice (e.g., INV-001, 2024-001).",
    )
    client_name: str = Field(
        ..., alias="clientName", description="The full name of the client being billed."
    )
    client_email: EmailStr = Field(
        ..., alias="clientEmail", description="The valid email address of the client."
    )
    items: list[LineItem] = Field(..., description="Detailed list of line items.")
    currency: str = Field(
        "USD", description="The 3-letter currency code (e.g., USD, EUR, GBP)."
    )

    model_config = {"populate_by_name": True}


async def generate_invoice(params: InvoiceParams, ctx: ToolContext) -> dict:
    currency = params.currency.strip().upper() or "USD"
    try:
        pdf_bytes, grand_total = await run_in_threadpool(
            render_invoice_pdf,
            params.invoice_number,
            params.client_name,
            str(params.client_email),
            params.items,
            currency,
            date.today(),
        )
    except Exception as e:
        logger.warning("tool.invoice.failed", error_type=type(e).__name__)
        return {"error": "Failed to generate invoice"}

    return {
        "message": "Invoice generated successfully",
        "invoiceNumber": params.invoice_number,
        "grandTotal": f"{currency} {grand_total:.2f}",
        "dataUri": to_data_uri(pdf_bytes),
    }


PDF_TOOL = Tool(
    name="pdfGenerator",
    description=(
        "Generate a professional PDF document from text content. "
        "Use this to create documents, reports, or simple letters."
    ),
    params_model=PdfParams,
    handler=generate_pdf,
)

INVOICE_TOOL = Tool(
    name="invoiceGenerator",
    description=(
        "Generate a professional invoice PDF. Use this tool when the user wants to "
        "create an invoice. Extract parameters carefully, correcting obvious typos."
    ),
    params_model=InvoiceParams,
    handler=generate_invoice,
)
