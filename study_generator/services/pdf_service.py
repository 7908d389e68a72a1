"""PDF export of generated study materials (reportlab)."""

import html
import io
import re
from datetime import datetime, timezone

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle, PageBreak

APP_TITLE = 'Universal Study Material Generator'
COMBINED_SECTION = 'all'
COMBINED_TITLE = 'Complete Study Materials'
COMBINED_FILENAME = 'complete-study-materials.pdf'

SECTION_TITLES = {
    'summary': 'Summary',
    'kidsExplanation': 'Kids Mode Explanation',
    'professionalExplanation': 'Professional Explanation',
    'definitions': 'Key Definitions',
    'flashcards': 'Flashcards',
    'trueFalse': 'True/False Questions',
    'mcqs': 'Multiple Choice Questions',
}
# MCQs always go last and start on a fresh page.
COMBINED_ORDER = (
    'summary',
    'kidsExplanation',
    'professionalExplanation',
    'definitions',
    'flashcards',
    'trueFalse',
    'mcqs',
)
DIFFICULTY_LABELS = {
    'kids': 'Kids',
    'highschool': 'High School',
    'university': 'University',
    'professional': 'Professional',
}

ACCENT = colors.HexColor('#6246EA')
CORRECT_GREEN = colors.HexColor('#15803D')
WRONG_RED = colors.HexColor('#B91C1C')
MUTED = colors.HexColor('#6B7280')
HEADER_HEIGHT = 34 * mm
FOOTER_HEIGHT = 12 * mm


class ExportError(ValueError):
    pass


class NumberedCanvas(canvas.Canvas):
    """Canvas that defers page output so the footer can print the total page count."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total_pages = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_page_footer(total_pages)
            super().showPage()
        super().save()

    def _draw_page_footer(self, total_pages):
        width, _height = self._pagesize
        self.saveState()
        self.setFont('Helvetica', 8.5)
        self.setFillColor(MUTED)
        self.drawCentredString(width / 2.0, 8 * mm, f"Page {self._pageNumber} of {total_pages}")
        self.restoreState()


def inline_to_pdf_html(text):
    safe_text = html.escape(str(text or ''))
    safe_text = re.sub(r'\*\*(.+?)\*\*', r'<b>\1</b>', safe_text)
    safe_text = safe_text.replace('\n', '<br/>')
    return safe_text


def format_generated_on(value=None):
    current = value or datetime.now(timezone.utc)
    return f"{current:%B} {current.day}, {current.year}"


def difficulty_label(difficulty):
    key = str(difficulty or '').strip().lower()
    return DIFFICULTY_LABELS.get(key, DIFFICULTY_LABELS['university'])


def build_styles():
    base_styles = getSampleStyleSheet()
    return {
        'pdfSection': ParagraphStyle(
            'PdfSection',
            parent=base_styles['Heading2'],
            fontName='Helvetica-Bold',
            fontSize=13,
            leading=17,
            spaceBefore=6,
            spaceAfter=6,
            textColor=ACCENT,
        ),
        'pdfBody': ParagraphStyle(
            'PdfBody',
            parent=base_styles['BodyText'],
            fontName='Helvetica',
            fontSize=10,
            leading=14,
            textColor=colors.HexColor('#111827'),
        ),
        'pdfCell': ParagraphStyle(
            'PdfCell',
            parent=base_styles['BodyText'],
            fontName='Helvetica',
            fontSize=9.5,
            leading=12.5,
            textColor=colors.HexColor('#111827'),
        ),
        'pdfHeaderCell': ParagraphStyle(
            'PdfHeaderCell',
            parent=base_styles['BodyText'],
            fontName='Helvetica-Bold',
            fontSize=9.5,
            leading=12.5,
            textColor=colors.white,
        ),
        'pdfQuestion': ParagraphStyle(
            'PdfQuestion',
            parent=base_styles['BodyText'],
            fontName='Helvetica-Bold',
            fontSize=10,
            leading=13.5,
            spaceBefore=4,
            textColor=colors.HexColor('#111827'),
        ),
        'pdfOption': ParagraphStyle(
            'PdfOption',
            parent=base_styles['BodyText'],
            fontName='Helvetica',
            fontSize=9.5,
            leading=12.5,
            leftIndent=10,
            textColor=colors.HexColor('#1F2937'),
        ),
        'pdfOptionCorrect': ParagraphStyle(
            'PdfOptionCorrect',
            parent=base_styles['BodyText'],
            fontName='Helvetica-Bold',
            fontSize=9.5,
            leading=12.5,
            leftIndent=10,
            textColor=CORRECT_GREEN,
        ),
    }


def _grid_table(rows, col_widths):
    table = Table(rows, colWidths=col_widths, repeatRows=1, hAlign='LEFT')
    table.setStyle(TableStyle([
        ('GRID', (0, 0), (-1, -1), 0.35, colors.HexColor('#D1D5DB')),
        ('BACKGROUND', (0, 0), (-1, 0), ACCENT),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 5),
        ('RIGHTPADDING', (0, 0), (-1, -1), 5),
        ('TOPPADDING', (0, 0), (-1, -1), 4),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
    ]))
    return table


def _header_row(labels, styles):
    return [Paragraph(f"<b>{label}</b>", styles['pdfHeaderCell']) for label in labels]


def build_text_story(value, styles):
    story = []
    for paragraph in str(value or '').split('\n\n'):
        if paragraph.strip():
            story.append(Paragraph(inline_to_pdf_html(paragraph.strip()), styles['pdfBody']))
            story.append(Spacer(1, 5))
    return story


def build_flashcards_story(cards, styles):
    rows = [_header_row(('#', 'Question', 'Answer'), styles)]
    for idx, card in enumerate(cards, 1):
        rows.append([
            Paragraph(str(idx), styles['pdfCell']),
            Paragraph(inline_to_pdf_html(card.get('question', '')), styles['pdfCell']),
            Paragraph(inline_to_pdf_html(card.get('answer', '')), styles['pdfCell']),
        ])
    return [_grid_table(rows, [10 * mm, 80 * mm, 88 * mm])]


def build_definitions_story(definitions, styles):
    rows = [_header_row(('#', 'Term', 'Definition'), styles)]
    for idx, item in enumerate(definitions, 1):
        rows.append([
            Paragraph(str(idx), styles['pdfCell']),
            Paragraph(f"<b>{inline_to_pdf_html(item.get('term', ''))}</b>", styles['pdfCell']),
            Paragraph(inline_to_pdf_html(item.get('definition', '')), styles['pdfCell']),
        ])
    return [_grid_table(rows, [10 * mm, 50 * mm, 118 * mm])]


def build_true_false_story(items, styles):
    rows = [_header_row(('#', 'Statement', 'Answer'), styles)]
    for idx, item in enumerate(items, 1):
        answer = bool(item.get('answer'))
        colour = '#15803D' if answer else '#B91C1C'
        rows.append([
            Paragraph(str(idx), styles['pdfCell']),
            Paragraph(inline_to_pdf_html(item.get('statement', '')), styles['pdfCell']),
            Paragraph(f'<font color="{colour}"><b>{"True" if answer else "False"}</b></font>', styles['pdfCell']),
        ])
    return [_grid_table(rows, [10 * mm, 143 * mm, 25 * mm])]


def build_mcqs_story(questions, styles):
    story = []
    letters = ['A', 'B', 'C', 'D']
    for idx, question in enumerate(questions, 1):
        story.append(Paragraph(f"{idx}. {inline_to_pdf_html(question.get('question', ''))}", styles['pdfQuestion']))
        correct_answer = question.get('correctAnswer')
        for option_idx, option in enumerate((question.get('options') or [])[:4]):
            is_correct = option_idx == correct_answer
            marker = '✓' if is_correct else '•'
            option_style = styles['pdfOptionCorrect'] if is_correct else styles['pdfOption']
            story.append(Paragraph(f"{marker} {letters[option_idx]}. {inline_to_pdf_html(option)}", option_style))
        story.append(Spacer(1, 6))
    return story


SECTION_BUILDERS = {
    'summary': build_text_story,
    'kidsExplanation': build_text_story,
    'professionalExplanation': build_text_story,
    'definitions': build_definitions_story,
    'flashcards': build_flashcards_story,
    'trueFalse': build_true_false_story,
    'mcqs': build_mcqs_story,
}


def has_section_content(content, section):
    value = (content or {}).get(section)
    if isinstance(value, str):
        return bool(value.strip())
    return isinstance(value, list) and bool(value)


def resolve_export_sections(content, section=None):
    """Sections to render, in document order; raises ExportError when nothing is exportable."""
    safe_section = str(section or COMBINED_SECTION).strip()
    if safe_section == COMBINED_SECTION:
        sections = [key for key in COMBINED_ORDER if has_section_content(content, key)]
        if not sections:
            raise ExportError('No content to export')
        return sections
    if safe_section not in SECTION_TITLES:
        raise ExportError('Unknown section')
    if not has_section_content(content, safe_section):
        raise ExportError(f"No {SECTION_TITLES[safe_section].lower()} to export")
    return [safe_section]


def export_filename(section=None):
    safe_section = str(section or COMBINED_SECTION).strip()
    if safe_section == COMBINED_SECTION:
        return COMBINED_FILENAME
    return f"{safe_section}.pdf"


def _make_header_painter(title, difficulty, generated_on, watermark_name):
    def _paint(pdf_canvas, doc):
        width, height = doc.pagesize
        left = doc.leftMargin
        right = width - doc.rightMargin
        top = height - 12 * mm
        pdf_canvas.saveState()
        pdf_canvas.setFillColor(ACCENT)
        pdf_canvas.setFont('Helvetica-Bold', 9)
        pdf_canvas.drawString(left, top, APP_TITLE)
        pdf_canvas.setFillColor(colors.HexColor('#111827'))
        pdf_canvas.setFont('Helvetica-Bold', 15)
        pdf_canvas.drawString(left, top - 7 * mm, title)
        pdf_canvas.setFillColor(MUTED)
        pdf_canvas.setFont('Helvetica', 8.5)
        pdf_canvas.drawString(left, top - 12.5 * mm, f"Difficulty Level: {difficulty_label(difficulty)}")
        pdf_canvas.drawRightString(right, top - 12.5 * mm, f"Generated on {generated_on}")
        rule_y = top - 15.5 * mm
        if watermark_name:
            pdf_canvas.setFont('Helvetica-Oblique', 8.5)
            pdf_canvas.drawString(left, top - 17 * mm, f"Generated for: {watermark_name}")
            rule_y = top - 19.5 * mm
        pdf_canvas.setStrokeColor(ACCENT)
        pdf_canvas.setLineWidth(0.8)
        pdf_canvas.line(left, rule_y, right, rule_y)
        pdf_canvas.restoreState()

    return _paint


def build_study_pdf(content, section=None, difficulty='university', watermark_name='', generated_on=None):
    """Render one section, or every section when ``section`` is empty or ``all``."""
    sections = resolve_export_sections(content, section)
    combined = str(section or COMBINED_SECTION).strip() == COMBINED_SECTION
    title = COMBINED_TITLE if combined else SECTION_TITLES[sections[0]]

    pdf_buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        pdf_buffer,
        pagesize=A4,
        leftMargin=16 * mm,
        rightMargin=16 * mm,
        topMargin=HEADER_HEIGHT,
        bottomMargin=FOOTER_HEIGHT + 4 * mm,
        title=title,
        author=APP_TITLE,
    )
    styles = build_styles()
    story = []
    for key in sections:
        if combined and key == 'mcqs' and story:
            story.append(PageBreak())
        if combined:
            story.append(Paragraph(SECTION_TITLES[key], styles['pdfSection']))
        story.extend(SECTION_BUILDERS[key](content[key], styles))
        story.append(Spacer(1, 10))

    painter = _make_header_painter(
        title,
        difficulty,
        format_generated_on(generated_on),
        str(watermark_name or '').strip()[:120],
    )
    doc.build(story, onFirstPage=painter, onLaterPages=painter, canvasmaker=NumberedCanvas)
    pdf_buffer.seek(0)
    return pdf_buffer
