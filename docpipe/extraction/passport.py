"""Passport extraction: TD3 machine-readable zone, visual data and stamps.

The MRZ is two 44-character lines::

    P<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<<<<<<<<<
    L898902C36UTO7408122F1204159ZE184226B<<<<<10

Line 2 field offsets: number ``[0:9]`` (check ``[9]``), nationality
``[10:13]``, birth date ``[13:19]`` (check ``[19]``), sex ``[20]``, expiry
``[21:27]`` (check ``[27]``), personal number ``[28:42]`` (check ``[42]``),
composite check ``[43]``.
"""

import re
from collections.abc import Sequence
from datetime import date

from docpipe.models import (
    ContextualResult,
    DocumentType,
    IdentityDocumentInfo,
    MRZData,
    PassportData,
    PassportValidity,
    PersonalInfo,
    StructuredData,
    TextBlock,
    ValidationResult,
    VisaStamp,
    VisualData,
)
from docpipe.utils.logger import get_logger
from docpipe.utils.text import parse_date

from .base import ValidationBuilder
from .id_document import IDDocumentExtractor, detect_photo_region, extract_personal_info

logger = get_logger(__name__)

MRZ_MIN_LENGTH = 40
MRZ_CENTURY_PIVOT = 30
UNKNOWN = "UNKNOWN"
MIN_DOCUMENT_NUMBER_LENGTH = 6

_MRZ_LINE = re.compile(r"^[A-Z0-9<]+$")
_STAMP_DATE = re.compile(r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}")
NATIONALITY_RE = re.compile(
    r"\b(?:nationality|citizenship)[ \t:]*([A-Za-z][A-Za-z \t]*)", re.IGNORECASE
)

STAMP_KEYWORDS = ["visa", "entry", "exit", "arrival", "departure", "immigration"]
PASSPORT_SECURITY_FEATURES = [
    "chip",
    "rfid",
    "biometric",
    "hologram",
    "watermark",
    "security thread",
    "uv reactive",
    "intaglio printing",
]
DEFAULT_SECURITY_FEATURE = "standard security features"

_CHECK_WEIGHTS = (7, 3, 1)


def resolve_mrz_year(two_digit_year: int) -> int:
    """Expand a two-digit MRZ year: below 30 is 20xx, otherwise 19xx."""
    if two_digit_year < MRZ_CENTURY_PIVOT:
        return 2000 + two_digit_year
    return 1900 + two_digit_year


def parse_mrz_date(value: str) -> date | None:
    """Parse a ``YYMMDD`` MRZ date; unreadable dates yield ``None``."""
    if len(value) != 6 or not value.isdigit():
        return None
    try:
        return date(resolve_mrz_year(int(value[:2])), int(value[2:4]), int(value[4:6]))
    except ValueError:
        return None


def mrz_check_digit(field: str) -> int:
    """ICAO 9303 check digit: weighted 7-3-1 sum of character values mod 10."""
    total = 0
    for index, char in enumerate(field):
        if char.isdigit():
            value = int(char)
        elif "A" <= char <= "Z":
            value = ord(char) - ord("A") + 10
        else:
            value = 0
        total += value * _CHECK_WEIGHTS[index % 3]
    return total % 10


def _check(field: str, digit: str) -> bool:
    if digit == "<" and not field.strip("<"):
        return True
    return digit.isdigit() and int(digit) == mrz_check_digit(field)


def verify_mrz_checksums(line2: str) -> bool:
    """Verify the four field check digits and the composite check digit."""
    if len(line2) < 44:
        return False
    composite = line2[0:10] + line2[13:20] + line2[21:43]
    return (
        _check(line2[0:9], line2[9])
        and _check(line2[13:19], line2[19])
        and _check(line2[21:27], line2[27])
        and _check(line2[28:42], line2[42])
        and _check(composite, line2[43])
    )


def find_mrz_lines(text: str) -> list[str]:
    """Lines that look like MRZ once whitespace is removed."""
    candidates = ("".join(line.split()).upper() for line in text.split("\n"))
    return [
        line
        for line in candidates
        if len(line) >= MRZ_MIN_LENGTH and _MRZ_LINE.match(line)
    ]


def parse_mrz(line1: str, line2: str) -> MRZData:
    """Decode a TD3 line pair into MRZ fields."""
    name_parts = line1[5:].split("<<")
    surname = name_parts[0].replace("<", " ").strip()
    given_names = name_parts[1].replace("<", " ").strip() if len(name_parts) > 1 else ""
    personal_number = line2[28:42].replace("<", "")

    return MRZData(
        document_type=line1[0:1],
        issuing_country=line1[2:5].replace("<", ""),
        surname=surname,
        given_names=given_names,
        document_number=line2[0:9].replace("<", ""),
        nationality=line2[10:13].replace("<", ""),
        date_of_birth=parse_mrz_date(line2[13:19]),
        sex=line2[20:21],
        expiry_date=parse_mrz_date(line2[21:27]),
        personal_number=personal_number or None,
        check_digits=(
            line2[9:10],
            line2[19:20],
            line2[27:28],
            line2[42:43],
            line2[43:44],
        ),
        lines=(line1, line2),
    )


def fallback_mrz() -> MRZData:
    """Placeholder MRZ used when no machine-readable zone is found."""
    return MRZData(
        document_type="P",
        issuing_country=UNKNOWN,
        surname=UNKNOWN,
        given_names=UNKNOWN,
        document_number=UNKNOWN,
        nationality=UNKNOWN,
        date_of_birth=None,
        sex="X",
        expiry_date=None,
        personal_number=None,
        check_digits=("0", "0", "0", "0", "0"),
    )


def extract_mrz(text: str) -> MRZData:
    lines = find_mrz_lines(text)
    if len(lines) >= 2:
        return parse_mrz(lines[0], lines[1])
    logger.debug("No MRZ line pair found, using placeholder MRZ")
    return fallback_mrz()


def extract_visual_data(text: str, personal: PersonalInfo) -> VisualData:
    match = NATIONALITY_RE.search(text)
    return VisualData(
        first_name=personal.first_name,
        last_name=personal.last_name,
        nationality=match.group(1).strip() if match else None,
    )


def extract_visa_stamps(blocks: Sequence[TextBlock]) -> tuple[VisaStamp, ...]:
    stamps: list[VisaStamp] = []
    for block in blocks:
        lowered = block.text.lower()
        if not any(keyword in lowered for keyword in STAMP_KEYWORDS):
            continue
        if "entry" in lowered or "arrival" in lowered:
            stamp_type = "entry"
        elif "exit" in lowered or "departure" in lowered:
            stamp_type = "exit"
        else:
            stamp_type = "visa"
        found = _STAMP_DATE.search(block.text)
        stamps.append(
            VisaStamp(
                country="Unknown",
                stamp_type=stamp_type,
                stamp_date=parse_date(found.group(0)) if found else None,
                text=block.text,
            )
        )
    return tuple(stamps)


def detect_passport_security_features(text: str) -> tuple[str, ...]:
    lowered = text.lower()
    found = tuple(f for f in PASSPORT_SECURITY_FEATURES if f in lowered)
    return found or (DEFAULT_SECURITY_FEATURE,)


def check_digits_numeric(mrz: MRZData) -> bool:
    number, birth, expiry, _, composite = mrz.check_digits
    return all(len(d) == 1 and d.isdigit() for d in (number, birth, expiry, composite))


def check_validity(
    mrz: MRZData, visual: VisualData, today: date | None = None
) -> PassportValidity:
    """Assess the passport from its MRZ and printed name.

    ``is_valid`` requires numeric check digits, an unexpired document, a
    document number of at least six characters and matching names. The
    ICAO checksum result is reported separately in ``checksums_valid``.
    """
    today = today or date.today()
    errors: list[str] = []

    if not check_digits_numeric(mrz):
        errors.append("MRZ check digits are invalid")
    if mrz.expiry_date is None:
        errors.append("Passport expiry date could not be read")
    elif mrz.expiry_date < today:
        errors.append("Passport has expired")
    if (
        mrz.document_number == UNKNOWN
        or len(mrz.document_number) < MIN_DOCUMENT_NUMBER_LENGTH
    ):
        errors.append("Invalid passport number")

    if visual.first_name and visual.last_name:
        visual_name = f"{visual.first_name} {visual.last_name}".upper()
        mrz_name = f"{mrz.given_names} {mrz.surname}".upper()
        if (
            visual_name != mrz_name
            and mrz.surname.upper() not in visual_name
            and visual.last_name.upper() not in mrz_name
        ):
            errors.append("Name mismatch between visual and MRZ data")

    checksums_valid = bool(mrz.lines) and verify_mrz_checksums(mrz.lines[1])
    return PassportValidity(
        is_valid=not errors, errors=tuple(errors), checksums_valid=checksums_valid
    )


class PassportExtractor(IDDocumentExtractor):
    """Extracts MRZ, printed identity fields and visa stamps from passports."""

    name = "passport"
    document_types = (DocumentType.PASSPORT,)

    def extract(self, context: ContextualResult) -> PassportData:
        text = context.raw_ocr.text
        blocks = context.raw_ocr.blocks
        mrz = extract_mrz(text)
        printed = extract_personal_info(text, context.context.entities)
        visual = extract_visual_data(text, printed)

        data = PassportData(
            personal_info=PersonalInfo(
                first_name=printed.first_name,
                last_name=printed.last_name,
                middle_name=printed.middle_name,
                date_of_birth=mrz.date_of_birth or printed.date_of_birth,
                gender=mrz.sex if mrz.sex in ("M", "F") else printed.gender,
            ),
            document_info=IdentityDocumentInfo(
                document_number=mrz.document_number,
                expiry_date=mrz.expiry_date,
                issuing_authority=f"{mrz.issuing_country} Government",
            ),
            photo_region=detect_photo_region(blocks, 3, 80, 100),
            security_features=detect_passport_security_features(text),
            mrz_data=mrz,
            visual_data=visual,
            stamps=extract_visa_stamps(blocks),
            validity=check_validity(mrz, visual),
        )
        logger.info(
            "Passport extracted: number=%s valid=%s checksums=%s",
            mrz.document_number,
            data.validity.is_valid,
            data.validity.checksums_valid,
        )
        return data

    def validate(self, data: StructuredData) -> ValidationResult:
        if data.kind != "passport":
            return self._wrong_kind(data)

        result = ValidationBuilder(1.0)
        mrz = data.mrz_data

        if not data.validity.is_valid:
            result.errors_from(data.validity.errors, 0.3)
        if mrz.document_number == UNKNOWN:
            result.error("Could not extract passport number from MRZ", 0.4)
        if mrz.surname == UNKNOWN:
            result.error("Could not extract name from MRZ", 0.3)
        if not data.personal_info.first_name and not data.personal_info.last_name:
            result.warn("Could not extract visual name data", 0.1)
        if data.photo_region is None:
            result.warn("Could not detect photo region", 0.1)
        if mrz.lines and not data.validity.checksums_valid:
            result.warn(
                "MRZ checksums do not verify",
                0.0,
                "Re-scan the machine-readable zone",
            )

        if data.stamps:
            result.bonus(0.05)
        if data.security_features:
            result.bonus(0.05)
        if mrz.document_number != UNKNOWN:
            result.bonus(0.2)
        return result.build()
