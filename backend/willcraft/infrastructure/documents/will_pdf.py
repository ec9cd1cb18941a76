"""
Will PDF Renderer

Renders a will record as a printable Last Will and Testament. Drafts
carry a DRAFT watermark on every page.
"""

import io
import logging
from typing import Any, Dict, Iterable, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer

from willcraft.domain.will import Will, WillStatus


logger = logging.getLogger(__name__)

INK = HexColor("#111827")
MUTED = HexColor("#6b7280")
WATERMARK = HexColor("#d1d5db")

SIGNATURE_LINE = "_" * 51

LEGAL_PROVISIONS = (
    "1. I revoke all prior wills and codicils made by me.",
    "2. If any beneficiary dies before me, their share shall be distributed "
    "equally among the surviving beneficiaries.",
    "3. I direct that all my just debts, funeral expenses, and costs of "
    "administration be paid as soon as practicable after my death.",
    "4. This will shall be governed by the laws of the state indicated above.",
)

WITNESS_DECLARATION = (
    "We, the undersigned witnesses, each do hereby declare in the presence of "
    "the aforesaid testator that the testator signed and executed this "
    "instrument as the testator's Last Will and Testament and that each of us, "
    "in the presence and hearing of the testator, hereby signs this will as "
    "witness to the testator's signing, and that to the best of our knowledge "
    "the testator is eighteen years of age or over, of sound mind and under no "
    "constraint or undue influence."
)


def _text(value: Any, default: str = "") -> str:
    """Markup-safe text for a Paragraph."""
    if value is None or value == "":
        return escape(default)
    return escape(str(value))


def _name(person: Optional[Dict[str, Any]]) -> str:
    if not person:
        return ""
    return " ".join(
        _text(person.get(part)) for part in ("firstName", "lastName") if person.get(part)
    )


def _address(address: Optional[Dict[str, Any]]) -> Optional[str]:
    if not address:
        return None
    city_line = " ".join(
        _text(address.get(part)) for part in ("state", "zipCode") if address.get(part)
    )
    parts = [_text(address.get("street")), _text(address.get("city")), city_line]
    return ", ".join(part for part in parts if part) or None


def _money(value: Any) -> Optional[str]:
    if isinstance(value, (int, float)):
        return f"${value:,.0f}"
    return None


class WillPdfRenderer:
    """Builds will PDFs with reportlab."""

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        self.styles.add(ParagraphStyle(
            name="WillTitle",
            parent=self.styles["Title"],
            fontSize=18,
            textColor=INK,
            spaceAfter=6,
            alignment=TA_CENTER,
        ))
        self.styles.add(ParagraphStyle(
            name="WillSubtitle",
            parent=self.styles["Normal"],
            fontSize=10,
            textColor=MUTED,
            spaceAfter=18,
            alignment=TA_CENTER,
        ))
        self.styles.add(ParagraphStyle(
            name="WillSection",
            parent=self.styles["Heading2"],
            fontSize=13,
            textColor=INK,
            spaceBefore=14,
            spaceAfter=6,
        ))
        self.styles.add(ParagraphStyle(
            name="WillBody",
            parent=self.styles["Normal"],
            fontSize=11,
            leading=15,
            spaceAfter=4,
        ))
        self.styles.add(ParagraphStyle(
            name="WillItem",
            parent=self.styles["Normal"],
            fontSize=11,
            leading=15,
            leftIndent=14,
            spaceAfter=2,
        ))

    # =========================================================================
    # Story Building
    # =========================================================================

    def _heading(self, text: str) -> Paragraph:
        return Paragraph(text, self.styles["WillSection"])

    def _body(self, text: str) -> Paragraph:
        return Paragraph(text, self.styles["WillBody"])

    def _items(self, lines: Iterable[str]) -> List[Paragraph]:
        return [
            Paragraph(f"{index}. {line}", self.styles["WillItem"])
            for index, line in enumerate(lines, start=1)
        ]

    def _personal_info(self, testator: Optional[Dict[str, Any]]) -> List[Any]:
        story: List[Any] = [self._heading("PERSONAL INFORMATION")]
        if not testator:
            story.append(self._body("Not provided"))
            return story

        story.append(self._body(f"Name: {_name(testator)}"))
        story.append(self._body(f"Date of Birth: {_text(testator.get('dateOfBirth'), 'Not provided')}"))
        if testator.get("email"):
            story.append(self._body(f"Email: {_text(testator['email'])}"))
        address = _address(testator.get("address"))
        if address:
            story.append(self._body(f"Address: {address}"))
        story.append(self._body(
            f"Marital Status: {_text(testator.get('maritalStatus'), 'Not specified')}"
        ))
        return story

    def _family(self, sections: Dict[str, Any]) -> List[Any]:
        spouse = sections.get("spouse")
        children = sections.get("children") or []
        if not spouse and not children:
            return []

        story: List[Any] = [self._heading("FAMILY INFORMATION")]
        if spouse:
            story.append(self._body(f"Spouse: {_name(spouse)}"))
        if children:
            story.append(self._body("Children:"))
            story.extend(self._items(
                f"{_name(child)} ({_text(child.get('relationship'), 'child')})"
                for child in children
            ))
        return story

    def _assets(self, sections: Dict[str, Any]) -> List[Any]:
        real_property = sections.get("realProperty") or []
        personal_property = sections.get("personalProperty") or []
        if not real_property and not personal_property:
            return []

        story: List[Any] = [self._heading("ASSETS")]
        for label, assets in (("Real Estate:", real_property), ("Personal Assets:", personal_property)):
            if not assets:
                continue
            story.append(self._body(f"<b>{label}</b>"))
            lines = []
            for asset in assets:
                line = f"{_text(asset.get('type'))}: {_text(asset.get('description'))}"
                address = _address(asset.get("address"))
                if address:
                    line += f"<br/>Address: {address}"
                value = _money(asset.get("estimatedValue"))
                if value:
                    line += f"<br/>Estimated Value: {value}"
                lines.append(line)
            story.extend(self._items(lines))
        return story

    def _distribution(self, sections: Dict[str, Any]) -> List[Any]:
        residual = sections.get("residualEstate") or {}
        beneficiaries = residual.get("beneficiaries") or []
        if not beneficiaries:
            return []

        people = {
            person["id"]: person
            for field in ("children", "executors", "guardians")
            for person in sections.get(field) or []
            if person.get("id")
        }

        def beneficiary_line(beneficiary: Dict[str, Any]) -> str:
            person = people.get(beneficiary.get("personId"))
            label = _name(person) if person else _text(beneficiary.get("personId"))
            if person and person.get("relationship"):
                label += f" ({_text(person['relationship'])})"
            return f"{label}: {_text(beneficiary.get('percentage'))}%"

        return [
            self._heading("DISTRIBUTION OF ASSETS"),
            self._body(
                "I give, devise, and bequeath my residual estate to the following beneficiaries:"
            ),
            *self._items(beneficiary_line(b) for b in beneficiaries),
        ]

    def _appointments(self, people: List[Dict[str, Any]], title: str, clause: str) -> List[Any]:
        if not people:
            return []
        return [
            self._heading(title),
            self._body(clause),
            *self._items(
                f"{_name(person)}"
                f"{' (' + _text(person['relationship']) + ')' if person.get('relationship') else ''}"
                for person in people
            ),
        ]

    def _signatures(self, testator: Optional[Dict[str, Any]]) -> List[Any]:
        story: List[Any] = [self._heading("LEGAL PROVISIONS")]
        story.extend(self._body(provision) for provision in LEGAL_PROVISIONS)

        story.append(self._heading("EXECUTION"))
        story.append(self._body(
            "I declare that this is my Last Will and Testament, and I sign it willingly."
        ))
        story.append(Spacer(1, 18 * mm))
        story.append(self._body(SIGNATURE_LINE))
        story.append(self._body(f"{_name(testator)}, Testator"))
        story.append(self._body("Date: _________________"))

        story.append(self._heading("WITNESSES"))
        story.append(self._body(WITNESS_DECLARATION))
        for number in (1, 2):
            story.append(Spacer(1, 8 * mm))
            story.append(self._body(f"Witness {number}:"))
            story.append(self._body(SIGNATURE_LINE))
            story.append(self._body("Signature / Date"))
            story.append(self._body(SIGNATURE_LINE))
            story.append(self._body("Print Name"))
        return story

    def _story(self, will: Will) -> List[Any]:
        sections = will.sections
        testator = sections.get("testator")

        story: List[Any] = [
            Paragraph("LAST WILL AND TESTAMENT", self.styles["WillTitle"]),
            Paragraph(f"State Compliance: {_text(will.state_compliance)}", self.styles["WillSubtitle"]),
        ]
        story.extend(self._personal_info(testator))
        story.extend(self._family(sections))
        story.extend(self._assets(sections))
        story.extend(self._distribution(sections))
        story.extend(self._appointments(
            sections.get("executors") or [],
            "EXECUTORS",
            "I appoint the following person(s) as executor(s) of this will:",
        ))
        story.extend(self._appointments(
            sections.get("guardians") or [],
            "GUARDIANS",
            "If I have minor children at the time of my death, I appoint the "
            "following person(s) as guardian(s):",
        ))
        story.extend(self._signatures(testator))
        return story

    # =========================================================================
    # Rendering
    # =========================================================================

    @staticmethod
    def _draft_watermark(canvas, doc) -> None:
        canvas.saveState()
        canvas.setFillColor(WATERMARK)
        canvas.setFont("Helvetica-Bold", 60)
        width, height = doc.pagesize
        canvas.translate(width / 2, height / 2)
        canvas.rotate(45)
        canvas.drawCentredString(0, 0, "DRAFT")
        canvas.restoreState()

    def render(self, will: Will) -> bytes:
        """
        Render a will as PDF bytes.

        Blocking; callers on the event loop run it in a worker thread.
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=LETTER,
            topMargin=20 * mm,
            bottomMargin=20 * mm,
            leftMargin=20 * mm,
            rightMargin=20 * mm,
            title="Last Will and Testament",
        )

        if will.status == WillStatus.DRAFT:
            doc.build(
                self._story(will),
                onFirstPage=self._draft_watermark,
                onLaterPages=self._draft_watermark,
            )
        else:
            doc.build(self._story(will))

        content = buffer.getvalue()
        logger.info(f"Rendered will {will.id} ({len(content)} bytes, status {will.status.value})")
        return content


_renderer_instance: Optional[WillPdfRenderer] = None


def get_will_pdf_renderer() -> WillPdfRenderer:
    """Get or create the PDF renderer singleton."""
    global _renderer_instance

    if _renderer_instance is None:
        _renderer_instance = WillPdfRenderer()

    return _renderer_instance
