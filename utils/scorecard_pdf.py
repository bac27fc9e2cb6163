"""
Module for laying out and exporting student score cards.

A score card is an A4 page of 794 x 1123 px split into positioned blocks
(logo, session header, student details, marks table, non-academic skills,
remarks, overall result, signatures). The same layout drives the PDF export
and the HTML print view; pixel positions are scaled by 0.75 to PDF points.
"""

import copy
import logging
import os
from datetime import date
from io import BytesIO
from typing import Any, Dict, List, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas
from reportlab.platypus import Frame, Paragraph, Table, TableStyle

logger = logging.getLogger('exam_results_admin')

PAGE_WIDTH_PX = 794
PAGE_HEIGHT_PX = 1123
PDF_SCALE = 0.75

INK = colors.HexColor('#1e1b4b')
MUTED = colors.HexColor('#64748b')
GRID = colors.HexColor('#94a3b8')
HEADER_BG = colors.HexColor('#f1f5f9')
LABEL_BG = colors.HexColor('#f8fafc')

DEFAULT_LAYOUT = [
    {'id': 'logo', 'type': 'logo', 'label': 'School Logo', 'x': 347, 'y': 25, 'w': 100, 'h': 70,
     'style': {'fontSize': 0, 'color': '', 'border': False}, 'isVisible': True},
    {'id': 'header_info', 'type': 'header_info', 'label': 'Session Info', 'x': 48, 'y': 105, 'w': 698, 'h': 30,
     'style': {'fontSize': 12, 'color': '#64748b', 'textAlign': 'center'}, 'isVisible': True},
    {'id': 'student_info', 'type': 'student_info', 'label': 'Student Details', 'x': 48, 'y': 150, 'w': 698, 'h': 100,
     'style': {'fontSize': 14, 'color': '#000000', 'textAlign': 'left', 'border': True, 'padding': 10}, 'isVisible': True},
    {'id': 'marks_table', 'type': 'marks_table', 'label': 'Marks Table', 'x': 48, 'y': 280, 'w': 698, 'h': 430,
     'style': {'fontSize': 11, 'color': '#000000', 'textAlign': 'center'}, 'isVisible': True},
    {'id': 'non_academic', 'type': 'non_academic', 'label': 'Non-Academic Skills', 'x': 48, 'y': 725, 'w': 698, 'h': 80,
     'style': {'fontSize': 10, 'color': '#1e293b', 'border': True}, 'isVisible': True},
    {'id': 'remarks', 'type': 'remarks', 'label': 'Remarks Section', 'x': 48, 'y': 820, 'w': 340, 'h': 140,
     'style': {'fontSize': 12, 'color': '#334155', 'border': True, 'padding': 12}, 'isVisible': True},
    {'id': 'overall', 'type': 'custom_text', 'label': 'Overall Result', 'x': 408, 'y': 820, 'w': 338, 'h': 140,
     'style': {'fontSize': 14, 'color': '#1e1b4b', 'textAlign': 'center', 'border': True,
               'backgroundColor': '#f8fafc', 'padding': 20}, 'isVisible': True},
    {'id': 'signatures', 'type': 'signatures', 'label': 'Signatures', 'x': 48, 'y': 980, 'w': 698, 'h': 80,
     'style': {'fontSize': 10, 'color': '#64748b', 'textAlign': 'center'}, 'isVisible': True},
]

BLOCK_TYPES = {
    'school_name', 'tagline', 'logo', 'header_info', 'student_info', 'marks_table',
    'non_academic', 'remarks', 'signatures', 'custom_text',
}


def resolve_layout(saved_layout: Optional[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Use the saved layout when it is a usable list of blocks, else the default.

    Raises:
        ValueError: if a saved block has an unknown type or non-numeric geometry
    """
    if not saved_layout:
        return copy.deepcopy(DEFAULT_LAYOUT)
    layout = []
    for block in saved_layout:
        if not isinstance(block, dict):
            raise ValueError("Layout blocks must be objects")
        if block.get('type') not in BLOCK_TYPES:
            raise ValueError(f"Unknown layout block type: {block.get('type')}")
        try:
            geometry = {key: float(block[key]) for key in ('x', 'y', 'w', 'h')}
        except (KeyError, TypeError, ValueError):
            raise ValueError(f"Layout block '{block.get('id')}' needs numeric x, y, w and h")
        resolved = dict(block, **geometry)
        resolved.setdefault('style', {})
        resolved.setdefault('isVisible', True)
        layout.append(resolved)
    return layout


def session_label(today: Optional[date] = None) -> str:
    year = (today or date.today()).year
    return f"SESSION {year}-{year + 1}"


def load_image(url: str, upload_folder: str):
    """
    Open a branding image for reportlab.

    Local ``/uploads/...`` paths are read from the upload folder; other URLs
    are fetched by reportlab. Unreadable images return None.
    """
    if not url:
        return None
    if url.lower().endswith('.svg'):
        logger.warning('SVG image %s cannot be embedded in PDF', url)
        return None
    source = url
    if url.startswith('/uploads/'):
        source = os.path.join(upload_folder, url[len('/uploads/'):])
    try:
        reader = ImageReader(source)
        reader.getSize()
        return reader
    except Exception:
        logger.warning('Could not load image %s for score card', url)
        return None


class ScoreCardRenderer:
    """
    Draws score cards onto a reportlab canvas, one page per student.
    """

    def __init__(self, school_info: Dict[str, Any], layout: List[Dict[str, Any]], upload_folder: str = 'uploads'):
        self.school_info = school_info
        self.layout = [block for block in layout if block.get('isVisible', True)]
        self.logo = load_image(school_info.get('logo', ''), upload_folder)
        self.watermark = load_image(school_info.get('watermark', ''), upload_folder)
        self.page_width, self.page_height = A4

    # --- geometry ---

    def _box(self, block):
        """Block rectangle in PDF points: (x, bottom, width, height)."""
        x = block['x'] * PDF_SCALE
        w = block['w'] * PDF_SCALE
        h = block['h'] * PDF_SCALE
        bottom = self.page_height - block['y'] * PDF_SCALE - h
        return x, bottom, w, h

    @staticmethod
    def _font_size(block, default=10):
        size = block.get('style', {}).get('fontSize') or default
        return max(float(size) * PDF_SCALE, 5)

    @staticmethod
    def _color(block, default=INK, key='color'):
        value = block.get('style', {}).get(key)
        try:
            return colors.HexColor(value) if value else default
        except (TypeError, ValueError):
            logger.warning('Ignoring invalid %s %r in layout block %s', key, value, block.get('id'))
            return default

    def _frame_block(self, c, block):
        x, bottom, w, h = self._box(block)
        style = block.get('style', {})
        background = self._color(block, default=None, key='backgroundColor')
        if background is not None:
            c.setFillColor(background)
            c.rect(x, bottom, w, h, stroke=0, fill=1)
        if style.get('border'):
            c.setStrokeColor(GRID)
            c.setLineWidth(0.6)
            c.roundRect(x, bottom, w, h, 4, stroke=1, fill=0)

    def _draw_table(self, c, block, table):
        x, bottom, w, h = self._box(block)
        _, table_h = table.wrapOn(c, w, h)
        table.drawOn(c, x, bottom + h - table_h)

    # --- pages ---

    def draw_page(self, c, card: Dict[str, Any]) -> None:
        if self.watermark is not None:
            c.saveState()
            c.setFillAlpha(0.1)
            c.drawImage(self.watermark, (self.page_width - 350) / 2, (self.page_height - 300) / 2,
                        width=350, height=300, preserveAspectRatio=True, anchor='c', mask='auto')
            c.restoreState()

        for block in self.layout:
            c.saveState()
            self._frame_block(c, block)
            draw = getattr(self, f"_draw_{block['type']}", None)
            if draw is not None:
                draw(c, block, card)
            c.restoreState()

    def _draw_logo(self, c, block, card):
        if self.logo is None:
            return
        x, bottom, w, h = self._box(block)
        c.drawImage(self.logo, x, bottom, width=w, height=h, preserveAspectRatio=True, anchor='c', mask='auto')

    def _centered_text(self, c, block, text, size, bold=False, color=None, offset=0):
        x, bottom, w, h = self._box(block)
        c.setFont('Helvetica-Bold' if bold else 'Helvetica', size)
        c.setFillColor(color or self._color(block))
        c.drawCentredString(x + w / 2, bottom + h / 2 - size / 3 + offset, text)

    def _draw_school_name(self, c, block, card):
        self._centered_text(c, block, self.school_info.get('name', ''), self._font_size(block, 24), bold=True)

    def _draw_tagline(self, c, block, card):
        self._centered_text(c, block, self.school_info.get('tagline', ''), self._font_size(block, 12))

    def _draw_header_info(self, c, block, card):
        size = self._font_size(block, 12)
        self._centered_text(c, block, self.school_info.get('name', '').upper(), size + 1, bold=True,
                            color=INK, offset=size * 0.6)
        self._centered_text(c, block, f"ACADEMIC REPORT  |  {session_label()}", size,
                            offset=-size * 0.6)

    def _draw_student_info(self, c, block, card):
        student = card['student']
        size = self._font_size(block, 14)
        x, bottom, w, h = self._box(block)
        data = [
            ['STUDENT NAME', student['full_name'].upper(), '', ''],
            ["PARENT'S NAME", student.get('guardian_name', ''), '', ''],
            ['CLASS / SECTION', f"{student['class_name']} - {student['section']}", 'ROLL NUMBER', student['roll_number']],
        ]
        table = Table(data, colWidths=[w * 0.25] * 4, rowHeights=[h / 3] * 3)
        table.setStyle(TableStyle([
            ('SPAN', (1, 0), (3, 0)),
            ('SPAN', (1, 1), (3, 1)),
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), size),
            ('FONTSIZE', (0, 0), (0, -1), 6.5),
            ('FONTSIZE', (2, 2), (2, 2), 6.5),
            ('TEXTCOLOR', (0, 0), (0, -1), MUTED),
            ('TEXTCOLOR', (2, 2), (2, 2), MUTED),
            ('TEXTCOLOR', (1, 0), (1, 0), INK),
            ('BACKGROUND', (0, 0), (0, -1), LABEL_BG),
            ('BACKGROUND', (2, 2), (2, 2), LABEL_BG),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, GRID),
        ]))
        self._draw_table(c, block, table)

    def _marks_table_data(self, card):
        exams = card['exams']
        header_top = ['SUBJECT', 'TYPE']
        header_bottom = ['', '']
        for exam in exams:
            header_top += [exam['name'], '']
            header_bottom += ['MAX', 'OBT']
        header_top += ['OVERALL', '', '']
        header_bottom += ['TOTAL', '%', 'GRD']

        data = [header_top, header_bottom]
        for row in card['rows']:
            stats = row['stats']
            sub_line = [row['subject']['name'].upper(), 'SUB']
            obj_line = ['', 'OBJ']
            for cell in row['cells']:
                sub_line += [_fmt(cell['subjective_max']), _fmt(cell['subjective'])]
                obj_line += [_fmt(cell['objective_max']), _fmt(cell['objective'])]
            sub_line += [f"{_fmt(stats['obtained'])} / {_fmt(stats['max'])}", f"{stats['percentage']}%", stats['grade']]
            obj_line += ['', '', '']
            data += [sub_line, obj_line]
        return data

    def _draw_marks_table(self, c, block, card):
        x, bottom, w, h = self._box(block)
        exam_count = len(card['exams'])
        data = self._marks_table_data(card)

        subject_w, type_w, result_w = 180 * PDF_SCALE, 40 * PDF_SCALE, 140 * PDF_SCALE
        exam_w = max(w - subject_w - type_w - result_w, 0) / max(exam_count * 2, 1)
        col_widths = [subject_w, type_w] + [exam_w] * (exam_count * 2) + [result_w * 0.45, result_w * 0.3, result_w * 0.25]
        overall_col = 2 + exam_count * 2

        style = [
            ('SPAN', (0, 0), (0, 1)),
            ('SPAN', (1, 0), (1, 1)),
            ('SPAN', (overall_col, 0), (overall_col + 2, 0)),
            ('FONTNAME', (0, 0), (-1, 1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 1), 7),
            ('FONTSIZE', (0, 2), (-1, -1), self._font_size(block, 11)),
            ('FONTSIZE', (1, 2), (1, -1), 6),
            ('TEXTCOLOR', (0, 0), (-1, 1), INK),
            ('BACKGROUND', (0, 0), (-1, 1), HEADER_BG),
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('ALIGN', (0, 2), (0, -1), 'LEFT'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('GRID', (0, 0), (-1, -1), 0.5, GRID),
        ]
        for i in range(exam_count):
            col = 2 + i * 2
            style.append(('SPAN', (col, 0), (col + 1, 0)))
        for r in range(2, len(data), 2):
            style += [
                ('SPAN', (0, r), (0, r + 1)),
                ('FONTNAME', (0, r), (0, r + 1), 'Helvetica-Bold'),
            ]
            for col in range(overall_col, overall_col + 3):
                style.append(('SPAN', (col, r), (col, r + 1)))
            style.append(('FONTNAME', (overall_col, r), (overall_col + 2, r + 1), 'Helvetica-Bold'))

        table = Table(data, colWidths=col_widths, repeatRows=2)
        table.setStyle(TableStyle(style))
        self._draw_table(c, block, table)

    def _draw_non_academic(self, c, block, card):
        x, bottom, w, h = self._box(block)
        record = card.get('non_academic') or {}
        data = [
            ['ATTENDANCE', 'DISCIPLINE', 'COMMUNICATION', 'PARTICIPATION'],
            [record.get('attendance') or '-', record.get('discipline') or '-',
             record.get('communication') or '-', record.get('participation') or '-'],
        ]
        table = Table(data, colWidths=[w / 4] * 4, rowHeights=[h * 0.4, h * 0.6])
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, 0), 6.5),
            ('FONTSIZE', (0, 1), (-1, 1), self._font_size(block, 10) + 2),
            ('TEXTCOLOR', (0, 0), (-1, 0), MUTED),
            ('TEXTCOLOR', (0, 1), (-1, 1), self._color(block)),
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
            ('LINEAFTER', (0, 0), (-2, -1), 0.5, GRID),
        ]))
        self._draw_table(c, block, table)

    def _draw_remarks(self, c, block, card):
        x, bottom, w, h = self._box(block)
        size = self._font_size(block, 12)
        heading = ParagraphStyle('remarks_heading', fontName='Helvetica-Bold', fontSize=7, textColor=MUTED,
                                 spaceAfter=4)
        body = ParagraphStyle('remarks_body', fontName='Helvetica', fontSize=size, leading=size * 1.25,
                              textColor=self._color(block), spaceAfter=2)
        story = [Paragraph("TEACHER'S COMMENTS", heading)]
        for row in card['rows']:
            if row['remark']:
                story.append(Paragraph(f"<b>{_escape(row['subject']['name'])}:</b> {_escape(row['remark'])}", body))
        if len(story) == 1:
            story.append(Paragraph('-', body))
        padding = (block.get('style', {}).get('padding') or 8) * PDF_SCALE
        Frame(x, bottom, w, h, leftPadding=padding, rightPadding=padding,
              topPadding=padding, bottomPadding=padding, showBoundary=0).addFromList(story, c)

    def _draw_custom_text(self, c, block, card):
        if block.get('id') != 'overall':
            content = block.get('content') or block.get('label', '')
            self._centered_text(c, block, content, self._font_size(block, 12))
            return
        overall = card['overall']
        size = self._font_size(block, 14)
        x, bottom, w, h = self._box(block)
        middle = bottom + h / 2
        c.setFillColor(MUTED)
        c.setFont('Helvetica-Bold', 7)
        c.drawCentredString(x + w / 2, bottom + h - 18, 'OVERALL RESULT')
        c.setFillColor(self._color(block))
        c.setFont('Helvetica-Bold', size * 1.6)
        c.drawCentredString(x + w / 2, middle, f"{overall['total_pct']}%")
        c.setFont('Helvetica-Bold', size)
        c.drawCentredString(x + w / 2, middle - size * 1.4, f"GRADE {overall['overall_grade']}")
        passed = overall['result'] == 'PASS'
        c.setFillColor(colors.HexColor('#059669') if passed else colors.HexColor('#dc2626'))
        c.drawCentredString(x + w / 2, bottom + 12, overall['result'])

    def _draw_signatures(self, c, block, card):
        x, bottom, w, h = self._box(block)
        size = self._font_size(block, 10)
        labels = ['CLASS TEACHER', 'PRINCIPAL', 'PARENT / GUARDIAN']
        slot = w / len(labels)
        c.setStrokeColor(GRID)
        c.setFillColor(self._color(block, MUTED))
        c.setFont('Helvetica-Bold', size)
        for i, label in enumerate(labels):
            centre = x + slot * i + slot / 2
            c.line(centre - slot * 0.35, bottom + h * 0.45, centre + slot * 0.35, bottom + h * 0.45)
            c.drawCentredString(centre, bottom + h * 0.45 - size - 3, label)


def _fmt(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _escape(text: str) -> str:
    return str(text).replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')


def build_scorecards_pdf(cards: List[Dict[str, Any]], school_info: Dict[str, Any],
                         layout: Optional[List[Dict[str, Any]]] = None,
                         upload_folder: str = 'uploads') -> BytesIO:
    """
    Render one A4 page per score card into a single PDF.

    Args:
        cards (list): Cards from ScoreCardCalculator.build_card
        school_info (dict): School name, tagline, logo and watermark
        layout (list): Layout blocks (default layout when None)
        upload_folder (str): Folder that holds uploaded branding images

    Returns:
        BytesIO: The PDF document, positioned at the start

    Raises:
        ValueError: if there are no cards
    """
    if not cards:
        raise ValueError("No students selected")

    renderer = ScoreCardRenderer(school_info, layout or resolve_layout(None), upload_folder)
    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle('Score Cards')
    for card in cards:
        renderer.draw_page(c, card)
        c.showPage()
    c.save()
    buffer.seek(0)
    return buffer
