"""Identity card and driver's license extraction."""

import re
from collections.abc import Sequence
from datetime import date

from docpipe.models import (
    Address,
    BoundingBox,
    ContextualResult,
    DocumentType,
    Entity,
    EntityType,
    IDData,
    IdentityDocumentInfo,
    PersonalInfo,
    StructuredData,
    TextBlock,
    ValidationResult,
)
from docpipe.utils.logger import get_logger
from docpipe.utils.text import parse_date

from .base import ExtractionStrategy, ValidationBuilder, first_entity, labeled_block

logger = get_logger(__name__)

_DATE = r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4}|\d{4}-\d{2}-\d{2})"

FULL_NAME_RE = re.compile(
    r"^[ \t]*(?:full[ \t]+)?name[ \t]*:[ \t]*([A-Za-z][A-Za-z \t]*)",
    re.IGNORECASE | re.MULTILINE,
)
FIRST_NAME_RE = re.compile(
    r"\b(?:first|given)[ \t]+names?[ \t:]*([A-Za-z]+)", re.IGNORECASE
)
LAST_NAME_RE = re.compile(
    r"\b(?:last[ \t]+name|surname)[ \t:]*([A-Za-z]+)", re.IGNORECASE
)
DOB_RE = re.compile(
    rf"(?:date\s+of\s+birth|dob|birth\s+date)[\s:]*{_DATE}", re.IGNORECASE
)
GENDER_RE = re.compile(r"\b(?:sex|gender)[ \t:]*(male|female|[MF])\b", re.IGNORECASE)

DOCUMENT_NUMBER_PATTERNS = [
    re.compile(
        r"\b(?:license|licence|id|document)[ \t]*(?:number|#|no\.?)[ \t:#]*"
        r"([A-Z0-9-]*\d[A-Z0-9-]*)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:dl|id)[ \t:#]*([A-Z0-9-]*\d[A-Z0-9-]*)", re.IGNORECASE),
]
ISSUE_DATE_RE = re.compile(rf"(?:issued|issue\s+date|iss)[\s:]*{_DATE}", re.IGNORECASE)
EXPIRY_DATE_RE = re.compile(
    rf"(?:expires?|expiry|expiration|exp)(?:\s+date)?[\s:]*{_DATE}", re.IGNORECASE
)
CLASS_RE = re.compile(r"\bclass[ \t:]*([A-Z0-9]{1,3})\b", re.IGNORECASE)
AUTHORITY_PATTERNS = [
    re.compile(
        r"\b(?:issued\s+by|authority)[ \t:]*([A-Za-z][A-Za-z \t]*)", re.IGNORECASE
    ),
    re.compile(
        r"\b((?:department|ministry)[ \t]+of[ \t]+[A-Za-z][A-Za-z \t]*)", re.IGNORECASE
    ),
]
ADDRESS_LABEL = re.compile(r"^(?:address|addr)\b[ \t]*:?", re.IGNORECASE)
STATE_ZIP_RE = re.compile(r"^([A-Z]{2})\s+(\d{5}(?:-\d{4})?)$")
CITY_STATE_ZIP_RE = re.compile(
    r"^([A-Za-z][A-Za-z\s]*?),?\s+([A-Z]{2})\s+(\d{5}(?:-\d{4})?)"
)

DEFAULT_AUTHORITIES: dict[DocumentType, str] = {
    DocumentType.DRIVERS_LICENSE: "Department of Motor Vehicles",
}
SECURITY_FEATURES = [
    "hologram",
    "watermark",
    "rfid",
    "chip",
    "magnetic stripe",
    "uv reactive",
    "microprint",
    "raised text",
    "ghost image",
]


def split_full_name(full_name: str) -> tuple[str, str, str | None]:
    """Split a full name into first, last and optional middle names."""
    parts = full_name.split()
    if not parts:
        return "", "", None
    middle = " ".join(parts[1:-1]) if len(parts) > 2 else None
    return parts[0], parts[-1] if len(parts) > 1 else "", middle


def extract_personal_info(text: str, entities: Sequence[Entity]) -> PersonalInfo:
    first_name = last_name = ""
    middle_name = None

    name_entity = first_entity(entities, EntityType.PERSON_NAME)
    full_name = name_entity.value if name_entity else None
    if full_name is None:
        match = FULL_NAME_RE.search(text)
        full_name = match.group(1).strip() if match else None
    if full_name:
        first_name, last_name, middle_name = split_full_name(full_name)

    match = FIRST_NAME_RE.search(text)
    if match:
        first_name = match.group(1)
    match = LAST_NAME_RE.search(text)
    if match:
        last_name = match.group(1)

    dob = DOB_RE.search(text)
    gender = GENDER_RE.search(text)
    return PersonalInfo(
        first_name=first_name,
        last_name=last_name,
        middle_name=middle_name,
        date_of_birth=parse_date(dob.group(1)) if dob else None,
        gender=gender.group(1)[0].upper() if gender else None,
    )


def extract_document_number(text: str, entities: Sequence[Entity]) -> str:
    for pattern in DOCUMENT_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    document_number = first_entity(entities, EntityType.DOCUMENT_NUMBER)
    return document_number.value if document_number else ""


def extract_document_info(
    text: str, entities: Sequence[Entity], document_type: DocumentType
) -> IdentityDocumentInfo:
    issued = ISSUE_DATE_RE.search(text)
    expires = EXPIRY_DATE_RE.search(text)

    authority = None
    for pattern in AUTHORITY_PATTERNS:
        match = pattern.search(text)
        if match:
            authority = match.group(1).strip()
            break

    document_class = None
    if document_type == DocumentType.DRIVERS_LICENSE:
        match = CLASS_RE.search(text)
        document_class = match.group(1).upper() if match else None

    return IdentityDocumentInfo(
        document_number=extract_document_number(text, entities),
        issue_date=parse_date(issued.group(1)) if issued else None,
        expiry_date=parse_date(expires.group(1)) if expires else None,
        issuing_authority=authority
        or DEFAULT_AUTHORITIES.get(document_type, "Government Authority"),
        document_class=document_class,
    )


def parse_address(address_text: str) -> Address | None:
    """Split an address into street, city, state and postal code.

    Handles a multi-line block whose last line is ``City, ST ZIP`` and a
    single line of the form ``street, City, ST ZIP``.
    """
    lines = [line.strip() for line in address_text.split("\n") if line.strip()]
    if not lines:
        return None

    if len(lines) == 1:
        parts = [part.strip() for part in lines[0].split(",")]
        if len(parts) >= 3:
            match = STATE_ZIP_RE.match(parts[-1])
            if match:
                return Address(
                    street=", ".join(parts[:-2]),
                    city=parts[-2],
                    state=match.group(1),
                    postal_code=match.group(2),
                )
        return Address(street=lines[0])

    match = CITY_STATE_ZIP_RE.match(lines[-1])
    if match:
        return Address(
            street=lines[0],
            city=match.group(1).strip(),
            state=match.group(2),
            postal_code=match.group(3),
        )
    return Address(street=lines[0], city=lines[-1])


def extract_address(text: str, entities: Sequence[Entity]) -> Address | None:
    address_entity = first_entity(entities, EntityType.ADDRESS)
    if address_entity:
        return parse_address(address_entity.value)
    block = labeled_block(text.split("\n"), ADDRESS_LABEL)
    return parse_address(block) if block else None


def detect_photo_region(
    blocks: Sequence[TextBlock],
    max_chars: int = 5,
    min_width: int = 50,
    min_height: int = 50,
) -> BoundingBox | None:
    """Largest near-text-free block, which on ID layouts is the portrait."""
    candidates = [
        block.bounding_box
        for block in blocks
        if len(block.text.strip()) < max_chars
        and block.bounding_box.width > min_width
        and block.bounding_box.height > min_height
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda box: box.width * box.height)


def detect_security_features(text: str) -> tuple[str, ...]:
    lowered = text.lower()
    return tuple(feature for feature in SECURITY_FEATURES if feature in lowered)


def age_on(birth: date, today: date) -> float:
    return (today - birth).days / 365.25


class IDDocumentExtractor(ExtractionStrategy):
    """Extracts personal, document and address fields from ID cards and licenses."""

    name = "id_document"
    document_types = (DocumentType.ID_CARD, DocumentType.DRIVERS_LICENSE)

    def extract(self, context: ContextualResult) -> IDData:
        text = context.raw_ocr.text
        entities = context.context.entities
        data = IDData(
            personal_info=extract_personal_info(text, entities),
            document_info=extract_document_info(text, entities, context.document_type),
            address=extract_address(text, entities),
            photo_region=detect_photo_region(context.raw_ocr.blocks),
            security_features=detect_security_features(text),
        )
        logger.info(
            "ID document extracted: number=%s features=%d",
            data.document_info.document_number or "-",
            len(data.security_features),
        )
        return data

    def validate(self, data: StructuredData) -> ValidationResult:
        """Check identity fields, document dates and address completeness.

        Args:
            data: ID record produced by :meth:`extract`.

        Returns:
            Validation result. Security features and a detected photo each
            add 0.05 to the confidence.
        """
        if data.kind not in ("id_document", "passport"):
            return self._wrong_kind(data)
        result = ValidationBuilder(1.0)
        self._validate_identity(data, result)
        return result.build()

    def _validate_identity(self, data: IDData, result: ValidationBuilder) -> None:
        today = date.today()
        person = data.personal_info
        info = data.document_info

        if not person.first_name:
            result.error("First name is required", 0.2)
        if not person.last_name:
            result.error("Last name is required", 0.2)

        if person.date_of_birth is None:
            result.warn("Date of birth not found", 0.1)
        elif not 0 <= age_on(person.date_of_birth, today) <= 150:
            result.warn("Date of birth seems invalid", 0.1)

        if not info.document_number:
            result.error("Document number is required", 0.3)
        if info.expiry_date and info.expiry_date < today:
            result.warn("Document has expired", 0.1)
        if info.expiry_date and info.issue_date and info.expiry_date < info.issue_date:
            result.error("Expiry date cannot be before issue date", 0.2)

        if data.address is None:
            result.warn("Address information not found", 0.1)
        elif not data.address.city or not data.address.street:
            result.warn("Incomplete address information", 0.05)

        if data.security_features:
            result.bonus(0.05)
        if data.photo_region is not None:
            result.bonus(0.05)
