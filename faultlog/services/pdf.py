from io import BytesIO
from datetime import datetime

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from ..config import ALL, MAP_LINK_TEMPLATE
from .exports import format_date, format_coord, load_embeddable_image, status_label

# --- CONFIGURAZIONE GRAFICA ---
COLOR_PRIMARY = (0.1, 0.1, 0.3)
COLOR_SECONDARY = (0.4, 0.4, 0.4)
COLOR_TABLE_HEAD = (46 / 255, 204 / 255, 113 / 255)
COLOR_OPEN = (0.976, 0.451, 0.086)
COLOR_COMPLETED = (0.133, 0.773, 0.369)
FONT_TITLE = "Helvetica-Bold"
FONT_TEXT = "Helvetica"

DOC_TITLE = "Construction Fault - Report"

THUMB_SIZE = 100
THUMB_GAP = 12
THUMB_COLUMNS = 4
QR_SIZE = 2.8 * cm

SUMMARY_HEADERS = ["Cantiere", "Commento", "Creato", "Stato", "Chiusura", "Data chiusura"]
SUMMARY_WIDTHS = [2.4 * cm, 4.2 * cm, 2.6 * cm, 2 * cm, 3.8 * cm, 2 * cm]
SUMMARY_FONT_SIZE = 7
SUMMARY_MAX_LINES = 3


def clip_lines(lines, max_lines):
    """Keep at most ``max_lines``, marking the cut with an ellipsis."""
    if not max_lines or len(lines) <= max_lines:
        return lines
    lines = lines[:max_lines]
    lines[-1] = lines[-1][:-3] + "..."
    return lines


def map_link(lat, lng):
    return MAP_LINK_TEMPLATE.format(lat=lat, lng=lng)


def draw_qr(c, payload, x, y, size):
    widget = QrCodeWidget(payload)
    x0, y0, x1, y1 = widget.getBounds()
    d = Drawing(size, size, transform=[size / (x1 - x0), 0, 0, size / (y1 - y0), 0, 0])
    d.add(widget)
    renderPDF.draw(d, c, x, y)


def draw_footer(c, width, label):
    c.saveState()
    c.setStrokeColorRGB(0.8, 0.8, 0.8); c.setLineWidth(0.5)
    c.line(1*cm, 1.5*cm, width-1*cm, 1.5*cm)
    c.setFont(FONT_TEXT, 8); c.setFillColorRGB(0.5, 0.5, 0.5)
    c.drawString(1*cm, 1*cm, f"{DOC_TITLE} - Cantiere: {label}")
    c.drawRightString(width-1*cm, 1*cm, f"Pagina {c.getPageNumber()}")
    c.restoreState()


def generate_document(reports, label=ALL):
    """Paginated A4 report: title, summary table, then one detail block per report."""
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(DOC_TITLE)
    width, height = A4
    margin = 2 * cm
    top = height - 2 * cm
    bottom_limit = 2.5 * cm
    label = "Tutti" if label == ALL else label
    notices = []

    y = top

    def new_page():
        nonlocal y
        draw_footer(c, width, label)
        c.showPage()
        y = top

    def check_space(needed_height):
        if (y - needed_height) < bottom_limit:
            new_page()
            return True
        return False

    def draw_lines(text, font, size, max_width, x, leading=None, max_lines=None):
        nonlocal y
        leading = leading or size + 3
        lines = simpleSplit(text or "-", font, size, max_width) or ["-"]
        lines = clip_lines(lines, max_lines)
        c.setFont(font, size)
        for line in lines:
            if check_space(leading):
                c.setFont(font, size)
            c.drawString(x, y, line)
            y -= leading

    # --- TITOLO ---
    c.setFillColorRGB(*COLOR_PRIMARY); c.setFont(FONT_TITLE, 16)
    c.drawString(margin, y, DOC_TITLE)
    y -= 0.7*cm
    c.setFillColorRGB(*COLOR_SECONDARY); c.setFont(FONT_TEXT, 10)
    c.drawString(margin, y, f"Cantiere: {label}")
    y -= 0.5*cm
    c.drawString(margin, y, f"Generato: {datetime.now().strftime('%d/%m/%Y %H:%M')}")
    y -= 1*cm

    # --- TABELLA RIEPILOGO ---
    def draw_summary_header():
        nonlocal y
        row_h = 0.6*cm
        c.setFillColorRGB(*COLOR_TABLE_HEAD)
        c.rect(margin, y - row_h, sum(SUMMARY_WIDTHS), row_h, fill=1, stroke=0)
        c.setFillColorRGB(1, 1, 1); c.setFont(FONT_TITLE, SUMMARY_FONT_SIZE + 1)
        x = margin
        for header, w in zip(SUMMARY_HEADERS, SUMMARY_WIDTHS):
            c.drawString(x + 3, y - row_h + 5, header)
            x += w
        y -= row_h

    check_space(2*cm)
    draw_summary_header()
    leading = SUMMARY_FONT_SIZE + 2
    for r in reports:
        cells = [
            r.site, r.comment or "", format_date(r.created_at), status_label(r),
            r.closing_comment or "", format_date(r.completed_at),
        ]
        wrapped = []
        for text, w in zip(cells, SUMMARY_WIDTHS):
            lines = simpleSplit(text, FONT_TEXT, SUMMARY_FONT_SIZE, w - 6) or [""]
            wrapped.append(clip_lines(lines, SUMMARY_MAX_LINES))
        row_h = max(len(lines) for lines in wrapped) * leading + 6

        if check_space(row_h):
            draw_summary_header()

        c.setStrokeColorRGB(0.8, 0.8, 0.8); c.setLineWidth(0.5)
        c.setFillColorRGB(0, 0, 0); c.setFont(FONT_TEXT, SUMMARY_FONT_SIZE)
        x = margin
        for lines, w in zip(wrapped, SUMMARY_WIDTHS):
            c.rect(x, y - row_h, w, row_h, fill=0, stroke=1)
            ty = y - leading
            for line in lines:
                c.drawString(x + 3, ty, line)
                ty -= leading
            x += w
        y -= row_h
    y -= 1*cm

    # --- DETTAGLIO SEGNALAZIONI ---
    def draw_photo_grid(title, photos):
        nonlocal y
        check_space(THUMB_SIZE + 0.8*cm)
        c.setFillColorRGB(0, 0, 0); c.setFont(FONT_TITLE, 10)
        c.drawString(margin, y, title)
        y -= 0.4*cm
        column = 0
        for p in photos:
            if column == 0:
                check_space(THUMB_SIZE + THUMB_GAP)
            img = load_embeddable_image(p.data_url, notices)
            if img is not None:
                x = margin + column * (THUMB_SIZE + THUMB_GAP)
                c.drawImage(ImageReader(img), x, y - THUMB_SIZE, width=THUMB_SIZE, height=THUMB_SIZE, preserveAspectRatio=True)
                column += 1
            if column == THUMB_COLUMNS:
                column = 0
                y -= THUMB_SIZE + THUMB_GAP
        if column:
            y -= THUMB_SIZE + THUMB_GAP

    text_width = width - 2*margin
    for r in reports:
        check_space(4*cm)

        # Banner di stato
        banner_h = 0.7*cm
        c.setFillColorRGB(*(COLOR_COMPLETED if r.is_completed else COLOR_OPEN))
        c.rect(margin, y - banner_h, text_width, banner_h, fill=1, stroke=0)
        c.setFillColorRGB(1, 1, 1); c.setFont(FONT_TITLE, 11)
        c.drawString(margin + 0.3*cm, y - banner_h + 0.22*cm, f"{r.site} | {status_label(r).upper()}")
        y -= banner_h + 0.6*cm

        coords = r.coordinates
        block_top = y
        block_page = c.getPageNumber()
        meta_width = text_width - (QR_SIZE + 0.5*cm if coords else 0)
        c.setFillColorRGB(0.2, 0.2, 0.2)
        draw_lines(f"Commento: {r.comment or '-'}", FONT_TEXT, 10, meta_width, margin)
        draw_lines(f"Creato il: {format_date(r.created_at)}", FONT_TEXT, 10, meta_width, margin)
        if r.completed_at:
            draw_lines(f"Data chiusura: {format_date(r.completed_at)}", FONT_TEXT, 10, meta_width, margin)
        if r.closing_comment:
            draw_lines(f"Chiusura: {r.closing_comment}", FONT_TEXT, 10, meta_width, margin)

        if coords:
            lat, lng = coords
            draw_lines(f"Posizione: {format_coord(lat)}, {format_coord(lng)}", FONT_TEXT, 10, meta_width, margin)
            # QR beside the metadata; skip to below it if the text was shorter
            qr_top = block_top + 0.4*cm
            if c.getPageNumber() != block_page or qr_top - QR_SIZE < bottom_limit:
                check_space(QR_SIZE)
                qr_top = y
            draw_qr(c, map_link(lat, lng), width - margin - QR_SIZE, qr_top - QR_SIZE, QR_SIZE)
            y = min(y, qr_top - QR_SIZE - 0.3*cm)
        y -= 0.3*cm

        if r.photos:
            draw_photo_grid("Foto segnalazione:", r.photos)
        if r.closing_photos:
            draw_photo_grid("Foto di chiusura:", r.closing_photos)

        # Linea divisoria
        check_space(0.8*cm)
        c.setStrokeColorRGB(0.7, 0.7, 0.7); c.setLineWidth(0.5)
        c.line(margin, y, width - margin, y)
        y -= 0.8*cm

    draw_footer(c, width, label)
    c.save()
    return buffer.getvalue(), notices
