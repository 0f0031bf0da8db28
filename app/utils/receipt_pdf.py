from io import BytesIO
from datetime import date, datetime
from decimal import Decimal
import textwrap

from reportlab.lib.pagesizes import A5
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

PAGE_WIDTH, PAGE_HEIGHT = A5

# Estilos de fuente
FONT_NORMAL = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
FONT_SIZE_S = 8
FONT_SIZE_M = 10
FONT_SIZE_L = 13


class ReceiptGenerator:
    """Dibuja el recibo de pago en una hoja A5."""

    def __init__(self, buffer, receipt_data: dict, company: dict):
        self.c = canvas.Canvas(buffer, pagesize=A5)
        self.receipt = receipt_data
        self.company = company
        self.cursor_y = PAGE_HEIGHT - (15 * mm)
        self.left_margin = 12 * mm
        self.right_margin = PAGE_WIDTH - (12 * mm)

    def _move_down(self, amount):
        self.cursor_y -= amount

    def _draw_text_center(self, text, font=FONT_NORMAL, size=FONT_SIZE_M):
        self.c.setFont(font, size)
        self.c.drawCentredString(PAGE_WIDTH / 2, self.cursor_y, text)
        self._move_down(size + 3)

    def _draw_line(self):
        self._move_down(3)
        self.c.line(self.left_margin, self.cursor_y, self.right_margin, self.cursor_y)
        self._move_down(12)

    def _draw_row(self, label, value, bold_value=False, size=FONT_SIZE_M):
        self.c.setFont(FONT_BOLD, size)
        self.c.drawString(self.left_margin, self.cursor_y, label)
        self.c.setFont(FONT_BOLD if bold_value else FONT_NORMAL, size)
        self.c.drawRightString(self.right_margin, self.cursor_y, value)
        self._move_down(size + 5)

    @staticmethod
    def _fmt_date(value):
        if isinstance(value, (date, datetime)):
            return value.strftime("%d/%m/%Y")
        return str(value or "")

    def generate(self):
        # Encabezado de la empresa
        self._draw_text_center(self.company.get("name", ""), FONT_BOLD, FONT_SIZE_L)
        if self.company.get("ruc"):
            self._draw_text_center(f"RUC: {self.company['ruc']}", FONT_BOLD, FONT_SIZE_M)
        for line in textwrap.wrap(self.company.get("address", ""), width=60):
            self._draw_text_center(line, FONT_NORMAL, FONT_SIZE_S)
        if self.company.get("phone"):
            self._draw_text_center(f"Telf: {self.company['phone']}", FONT_NORMAL, FONT_SIZE_S)
        self._draw_line()

        self._draw_text_center("RECIBO DE PAGO", FONT_BOLD, FONT_SIZE_L)
        self._draw_text_center(self.receipt.get("receipt_number", ""), FONT_BOLD, FONT_SIZE_M)
        self._draw_line()

        # Cliente
        self._draw_row("Cliente:", self.receipt.get("client_name", "")[:45])
        self._draw_row("RUC/DNI:", self.receipt.get("client_tax_id", ""))
        self._draw_line()

        # Pago
        service_month = self.receipt.get("service_month")
        self._draw_row("Fecha de pago:", self._fmt_date(self.receipt.get("payment_date")))
        if isinstance(service_month, date):
            self._draw_row("Mes de servicio:", service_month.strftime("%m/%Y"))
        self._draw_row("Método:", self.receipt.get("payment_method") or "-")
        if self.receipt.get("operation_number"):
            self._draw_row("N° operación:", self.receipt["operation_number"])
        for line in textwrap.wrap(self.receipt.get("concept") or "", width=55):
            self.c.setFont(FONT_NORMAL, FONT_SIZE_S)
            self.c.drawString(self.left_margin, self.cursor_y, line)
            self._move_down(FONT_SIZE_S + 3)
        self._draw_line()

        amount = Decimal(self.receipt.get("amount", 0))
        self._draw_row("TOTAL PAGADO:", f"S/ {amount:,.2f}", bold_value=True, size=FONT_SIZE_L)

        self._move_down(20)
        self._draw_text_center(f"Emitido el {self._fmt_date(self.receipt.get('generated_at'))}", FONT_NORMAL, FONT_SIZE_S)
        self._draw_text_center("GRACIAS POR SU PAGO", FONT_BOLD)

        # Finalizar
        self.c.showPage()
        self.c.save()


def receipt_data_from(receipt, payment, client) -> dict:
    return {
        "receipt_number": receipt.receipt_number,
        "generated_at": receipt.generated_at or datetime.now(),
        "client_name": client.legal_name,
        "client_tax_id": client.tax_id,
        "payment_date": payment.payment_date,
        "service_month": payment.service_month,
        "payment_method": payment.payment_method,
        "operation_number": payment.operation_number,
        "concept": payment.concept,
        "amount": payment.amount,
    }


def generate_receipt_pdf(receipt_data: dict, company: dict = None) -> BytesIO:
    buffer = BytesIO()
    generator = ReceiptGenerator(buffer, receipt_data, company or {})
    generator.generate()
    buffer.seek(0)
    return buffer
