"""
Synthesized proposal documents.

When a template cannot be used (missing, corrupt, no form fields) the
proposal is still delivered as a plain document laid out from the data
record: a title, fixed sections of label/value lines, dependents, the
health questionnaire and a generation footer on every page.

Also builds simple title + text documents (used for HTML exports).
"""

import html
import re
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Dict, List, Mapping, Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

import config
from data_record import MAX_DEPENDENTS, MAX_QUESTIONS, RecordValue, get_text, has_value
from errors import FallbackSynthesisFailed
from log_setup import get_logger

logger = get_logger("fallback_pdf")

DEFAULT_TITLE = "Proposta de Plano de Saúde"
NOT_INFORMED = "Não informado"

# Layout (points)
PAGE_SIZE = A4
MARGIN = 50
BOTTOM_LIMIT = MARGIN + 10
VALUE_OFFSET = 150
TITLE_ADVANCE = 40
SECTION_GAP = 20
SECTION_ADVANCE = 30
FIELD_ADVANCE = 25
TEXT_LINE_ADVANCE = 20
DEPENDENT_GAP = 10

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
TTF_FONT = "ProposalSans"
TTF_FONT_BOLD = "ProposalSans-Bold"
TITLE_COLOR = (0.1, 0.5, 0.5)
SECTION_COLOR = (0.2, 0.2, 0.8)
TEXT_COLOR = (0, 0, 0)
NOTE_COLOR = (0.3, 0.3, 0.3)
FOOTER_COLOR = (0.5, 0.5, 0.5)


@dataclass(frozen=True)
class FieldLabel:
    key: str
    label: str
    optional: bool = False  # optional lines are only drawn when the key has a value


CLIENT_FIELDS = [
    FieldLabel("nome", "Nome"),
    FieldLabel("cpf", "CPF"),
    FieldLabel("rg", "RG"),
    FieldLabel("data_nascimento", "Data de Nascimento"),
    FieldLabel("email", "Email"),
    FieldLabel("telefone", "Telefone"),
    FieldLabel("celular", "Celular"),
    FieldLabel("nome_mae", "Nome da Mãe", optional=True),
    FieldLabel("peso", "Peso", optional=True),
    FieldLabel("altura", "Altura", optional=True),
]

ADDRESS_FIELDS = [
    FieldLabel("endereco", "Endereço"),
    FieldLabel("bairro", "Bairro"),
    FieldLabel("cidade", "Cidade"),
    FieldLabel("estado", "Estado"),
    FieldLabel("cep", "CEP"),
]

PLAN_FIELDS = [
    FieldLabel("plano", "Plano"),
    FieldLabel("cobertura", "Cobertura"),
    FieldLabel("acomodacao", "Acomodação"),
    FieldLabel("valor", "Valor"),
]

DEPENDENT_FIELDS = [
    FieldLabel("nome", "Nome"),
    FieldLabel("cpf", "CPF"),
    FieldLabel("data_nascimento", "Data Nasc."),
    FieldLabel("parentesco", "Parentesco"),
]

SECTIONS: List[Tuple[str, List[FieldLabel]]] = [
    ("Dados do Cliente", CLIENT_FIELDS),
    ("Endereço", ADDRESS_FIELDS),
    ("Dados do Plano", PLAN_FIELDS),
]


# ============================================================================
# Fonts
# ============================================================================

_registered_fonts: Dict[str, str] = {}


def _register_ttf(name: str, path: str) -> None:
    if _registered_fonts.get(name) != path:
        pdfmetrics.registerFont(TTFont(name, path))
        _registered_fonts[name] = path
        logger.info(f"Registered font {name} from {path}")


def resolve_fonts(regular_path: Optional[str] = None, bold_path: Optional[str] = None) -> Tuple[str, str]:
    """
    Pick the (regular, bold) font names for generated documents.

    The built-in Helvetica only covers WinAnsi (Latin-1 plus a few symbols).
    Given a TrueType file, it is registered and used instead; the bold
    face defaults to the regular file.
    """
    if not regular_path:
        return FONT, FONT_BOLD
    _register_ttf(TTF_FONT, regular_path)
    _register_ttf(TTF_FONT_BOLD, bold_path or regular_path)
    return TTF_FONT, TTF_FONT_BOLD


def missing_glyphs(text: str, font_name: str) -> str:
    """Characters of text the font cannot draw, in first-seen order."""
    font = pdfmetrics.getFont(font_name)
    char_map = getattr(getattr(font, "face", None), "charToGlyph", None)
    missing = []
    for char in text:
        if char in missing or char.isspace():
            continue
        if char_map is not None:
            supported = ord(char) in char_map
        else:
            try:
                char.encode("cp1252")
                supported = True
            except UnicodeEncodeError:
                supported = False
        if not supported:
            missing.append(char)
    return "".join(missing)


# ============================================================================
# Page writer
# ============================================================================

class PageWriter:
    """
    Top-down text cursor over a reportlab canvas.

    Starts a new page whenever the cursor reaches the bottom limit, and
    stamps the generation footer on every page it closes.
    """

    def __init__(self, title: str):
        self.font, self.font_bold = resolve_fonts(config.FALLBACK_FONT_PATH, config.FALLBACK_FONT_BOLD_PATH)
        self.lost_characters = ""
        self.buffer = BytesIO()
        self.canvas = canvas.Canvas(self.buffer, pagesize=PAGE_SIZE)
        self.canvas.setTitle(title)
        self.width, self.height = PAGE_SIZE
        self.y = self.height - MARGIN
        self.page_count = 1
        self.footer_text = f"Documento gerado em {datetime.now().strftime('%d/%m/%Y %H:%M:%S')}"

    def _draw(self, x: float, value: str, font_name: str) -> None:
        missing = missing_glyphs(value, font_name)
        if missing:
            logger.warning(f"Font {font_name} cannot draw {missing!r} in {value!r}; those characters will not render")
            self.lost_characters += "".join(c for c in missing if c not in self.lost_characters)
        self.canvas.drawString(x, self.y, value)

    def _draw_footer(self) -> None:
        self.canvas.setFont(self.font, 10)
        self.canvas.setFillColorRGB(*FOOTER_COLOR)
        self.canvas.drawString(MARGIN, MARGIN / 2, self.footer_text)

    def new_page(self) -> None:
        self._draw_footer()
        self.canvas.showPage()
        self.page_count += 1
        self.y = self.height - MARGIN

    def ensure_room(self, needed: float = 0) -> None:
        if self.y - needed < BOTTOM_LIMIT:
            self.new_page()

    def text(
        self,
        value: str,
        advance: float,
        size: int = 12,
        bold: bool = False,
        color: Tuple[float, float, float] = TEXT_COLOR,
        x_offset: float = 0,
    ) -> None:
        self.ensure_room()
        font_name = self.font_bold if bold else self.font
        self.canvas.setFont(font_name, size)
        self.canvas.setFillColorRGB(*color)
        self._draw(MARGIN + x_offset, value, font_name)
        self.y -= advance

    def title(self, value: str) -> None:
        self.text(value, TITLE_ADVANCE, size=18, bold=True, color=TITLE_COLOR)

    def section(self, value: str, leading_gap: bool = True) -> None:
        if leading_gap:
            self.y -= SECTION_GAP
        # keep a header on the same page as its first line
        self.ensure_room(SECTION_ADVANCE)
        self.text(value, SECTION_ADVANCE, size=14, bold=True, color=SECTION_COLOR)

    def field(self, label: str, value: str) -> None:
        self.ensure_room()
        self.canvas.setFont(self.font_bold, 12)
        self.canvas.setFillColorRGB(*TEXT_COLOR)
        self._draw(MARGIN, f"{label}:", self.font_bold)
        self.canvas.setFont(self.font, 12)
        self._draw(MARGIN + VALUE_OFFSET, value or NOT_INFORMED, self.font)
        self.y -= FIELD_ADVANCE

    def finish(self) -> bytes:
        self._draw_footer()
        self.canvas.showPage()
        self.canvas.save()
        return self.buffer.getvalue()


# ============================================================================
# Fallback proposal document
# ============================================================================

def dependent_indices(record: Mapping[str, RecordValue]) -> List[int]:
    """Indices 1..5 whose dependente{N}_nome is present, each checked independently."""
    return [i for i in range(1, MAX_DEPENDENTS + 1) if has_value(record, f"dependente{i}_nome")]


def questionnaire_indices(record: Mapping[str, RecordValue]) -> List[int]:
    """Indices 1..10 with both pergunta{N} and resposta{N} present."""
    return [
        i for i in range(1, MAX_QUESTIONS + 1)
        if has_value(record, f"pergunta{i}") and has_value(record, f"resposta{i}")
    ]


def _draw_fields(writer: PageWriter, record: Mapping[str, RecordValue], fields: List[FieldLabel], label_prefix: str = "", key_prefix: str = "") -> None:
    for item in fields:
        key = f"{key_prefix}{item.key}"
        if item.optional and not has_value(record, key):
            continue
        writer.field(f"{label_prefix}{item.label}", get_text(record, key))


def _render_fallback(record: Mapping[str, RecordValue], title: str) -> Tuple[bytes, int]:
    writer = PageWriter(title)
    writer.title(title)

    for position, (header, fields) in enumerate(SECTIONS):
        writer.section(header, leading_gap=position > 0)
        _draw_fields(writer, record, fields)

    dependents = dependent_indices(record)
    if dependents:
        writer.section("Dependentes")
        for i in dependents:
            _draw_fields(writer, record, DEPENDENT_FIELDS, label_prefix=f"Dependente {i} - ", key_prefix=f"dependente{i}_")
            writer.y -= DEPENDENT_GAP

    questions = questionnaire_indices(record)
    if questions:
        writer.section("Questionário de Saúde")
        for i in questions:
            observation = get_text(record, f"observacao{i}")
            writer.text(f"{i}. {get_text(record, f'pergunta{i}')}", 20, size=11, bold=True)
            writer.text(f"Resposta: {get_text(record, f'resposta{i}')}", 15 if observation else 20, size=11, x_offset=10)
            if observation:
                writer.text(f"Observação: {observation}", 20, size=10, color=NOTE_COLOR, x_offset=10)

    page_count = writer.page_count
    return writer.finish(), page_count


def synthesize_fallback_pdf(record: Mapping[str, RecordValue], title: Optional[str] = None) -> bytes:
    """
    Build a proposal document directly from a data record.

    Args:
        record: Normalized data record
        title: Document title (defaults to DEFAULT_TITLE)

    Returns:
        PDF bytes

    Raises:
        FallbackSynthesisFailed: If the document could not be generated
    """
    title = title or DEFAULT_TITLE
    try:
        pdf_bytes, page_count = _render_fallback(record, title)
    except Exception as e:
        raise FallbackSynthesisFailed(f"Failed to create fallback PDF: {e}") from e

    logger.debug(f"Fallback PDF generated: {page_count} page(s), {len(pdf_bytes)} bytes")
    return pdf_bytes


# ============================================================================
# Simple text documents
# ============================================================================

def synthesize_text_pdf(title: str, content: str) -> bytes:
    """
    Build a document with a title and one line per content line.

    Raises:
        FallbackSynthesisFailed: If the document could not be generated
    """
    try:
        writer = PageWriter(title)
        writer.title(title)
        for line in content.split("\n"):
            line = line.strip()
            if line:
                writer.text(line, TEXT_LINE_ADVANCE)
            else:
                writer.y -= TEXT_LINE_ADVANCE
        return writer.finish()
    except Exception as e:
        raise FallbackSynthesisFailed(f"Failed to create simple PDF: {e}") from e


def extract_html_title(html_content: str, default: str = DEFAULT_TITLE) -> str:
    match = re.search(r"<h1[^>]*>(.*?)</h1>", html_content, re.IGNORECASE | re.DOTALL)
    if match:
        title = html.unescape(re.sub(r"<[^>]+>", "", match.group(1))).strip()
        if title:
            return title
    return default


def html_to_text(html_content: str) -> str:
    """Drop style/script blocks and tags, keeping one text run per line."""
    text = re.sub(r"<style[^>]*>.*?</style>", "", html_content, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<script[^>]*>.*?</script>", "", text, flags=re.IGNORECASE | re.DOTALL)
    text = re.sub(r"<[^>]+>", "\n", text)
    text = html.unescape(text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
