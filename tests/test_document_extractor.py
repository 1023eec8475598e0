"""Tests for DocumentExtractor format dispatch and degradation."""
import pytest

from stembot.models.documents import ExtractionStrategy, UploadedBlob
from stembot.services import document_extractor
from stembot.services.document_extractor import (
    DocumentExtractor,
    UnsupportedMediaTypeError,
    normalize_media_type,
)
from stembot.services.fallback_chain import ExtractionAttempt, FallbackChain
from tests.conftest import ACADEMIC_TEXT, make_docx, make_pdf, make_png, make_xlsx

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ENGLISH_TEXT = (
    "Students who sleep fewer than six hours a night tend to report lower concentration "
    "during lectures, and their exam results are often weaker than those of classmates "
    "who keep a regular sleep schedule throughout the semester."
)


def _blob(data: bytes, media_type: str, name: str, size: int = None) -> UploadedBlob:
    return UploadedBlob(
        data=data,
        media_type=media_type,
        filename=name,
        size=len(data) if size is None else size,
    )


@pytest.fixture
def extractor() -> DocumentExtractor:
    return DocumentExtractor()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def test_normalize_media_type_strips_parameters():
    assert normalize_media_type("Text/Plain; charset=UTF-8") == "text/plain"
    assert normalize_media_type(None) == ""


def test_is_supported():
    assert DocumentExtractor.is_supported("application/pdf")
    assert DocumentExtractor.is_supported("image/png")
    assert not DocumentExtractor.is_supported("application/zip")


@pytest.mark.asyncio
async def test_unsupported_type_raises(extractor):
    with pytest.raises(UnsupportedMediaTypeError) as excinfo:
        await extractor.extract(_blob(b"PK..", "application/zip", "archive.zip"))
    assert excinfo.value.media_type == "application/zip"
    assert "Unsupported file type: application/zip" in str(excinfo.value)


@pytest.mark.asyncio
async def test_media_type_argument_overrides_blob(extractor):
    blob = _blob(ENGLISH_TEXT.encode(), "application/octet-stream", "notes")
    result = await extractor.extract(blob, media_type="text/plain")
    assert result.strategy_used == ExtractionStrategy.PLAIN_TEXT


# ---------------------------------------------------------------------------
# Format paths
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_plain_text_gets_word_count_and_language(extractor):
    result = await extractor.extract(_blob(ENGLISH_TEXT.encode(), "text/plain", "notes.txt"))

    assert result.text == ENGLISH_TEXT
    assert result.partial is False
    assert result.metadata.word_count == len(ENGLISH_TEXT.split())
    assert result.metadata.language == "en"


@pytest.mark.asyncio
async def test_short_text_language_unknown(extractor):
    result = await extractor.extract(_blob(b"sleep, score\n7, 88", "text/csv", "data.csv"))
    assert result.metadata.language == "unknown"


@pytest.mark.asyncio
async def test_invalid_utf8_is_replaced_not_fatal(extractor):
    result = await extractor.extract(_blob(b"caf\xe9 notes about sleep", "text/plain", "x.txt"))
    assert "notes about sleep" in result.text
    assert result.strategy_used == ExtractionStrategy.PLAIN_TEXT


@pytest.mark.asyncio
async def test_pdf_uses_fallback_chain(extractor):
    data = make_pdf([ACADEMIC_TEXT])
    result = await extractor.extract(_blob(data, "application/pdf", "paper.pdf"))

    assert result.strategy_used == ExtractionStrategy.PDF_PRIMARY
    assert "Methodology" in result.text
    assert result.metadata.page_count == 1
    assert result.metadata.word_count > 0


@pytest.mark.asyncio
async def test_docx_paragraphs_tables_and_title(extractor):
    data = make_docx(
        ["Lab protocol for the caffeine trial.", "Participants arrive at 9am."],
        table=[["Group", "Dose"], ["A", "100mg"]],
        title="Caffeine Protocol",
    )
    result = await extractor.extract(_blob(data, DOCX, "protocol.docx"))

    assert result.strategy_used == ExtractionStrategy.DOCX
    assert "Lab protocol for the caffeine trial." in result.text
    assert "Group | Dose" in result.text
    assert "A | 100mg" in result.text
    assert result.metadata.title == "Caffeine Protocol"


@pytest.mark.asyncio
async def test_empty_docx_is_partial(extractor):
    result = await extractor.extract(_blob(make_docx([]), DOCX, "empty.docx"))
    assert result.text == "No text found in DOCX"
    assert result.partial is True


@pytest.mark.asyncio
async def test_spreadsheet_one_csv_block_per_sheet(extractor):
    data = make_xlsx(
        {
            "Sleep": [["student", "sleep_hours", "test_score"], ["s1", 7, 88], ["s2", 5, 71]],
            "Notes": [["collected in week 3"]],
        }
    )
    result = await extractor.extract(_blob(data, XLSX, "sleep.xlsx"))

    assert result.strategy_used == ExtractionStrategy.SPREADSHEET
    assert "Sheet: Sleep\nstudent,sleep_hours,test_score\ns1,7,88\ns2,5,71" in result.text
    assert "Sheet: Notes\ncollected in week 3" in result.text


@pytest.mark.asyncio
async def test_empty_spreadsheet_is_partial(extractor):
    result = await extractor.extract(_blob(make_xlsx({"Empty": []}), XLSX, "empty.xlsx"))
    assert result.text == "No data found in spreadsheet"
    assert result.partial is True


@pytest.mark.asyncio
async def test_legacy_word_is_described_not_parsed(extractor):
    blob = _blob(b"\xd0\xcf\x11\xe0" + b"\x00" * 2044, "application/msword", "old.doc")
    result = await extractor.extract(blob)

    assert result.strategy_used == ExtractionStrategy.LEGACY_WORD
    assert result.partial is True
    assert "Document: old.doc" in result.text
    assert "Size: 2.0 KB" in result.text
    assert "(.doc)" in result.text


@pytest.mark.asyncio
async def test_image_ocr_text(extractor, monkeypatch):
    seen = []

    def fake_ocr(image, lang=None):
        seen.append(image.mode)
        return "Trial 3: 42 correct responses"

    monkeypatch.setattr(document_extractor.pytesseract, "image_to_string", fake_ocr)
    result = await extractor.extract(_blob(make_png(), "image/png", "whiteboard.png"))

    assert result.strategy_used == ExtractionStrategy.IMAGE_OCR
    assert result.text == "Image OCR Results:\nTrial 3: 42 correct responses"
    assert seen == ["L"]


@pytest.mark.asyncio
async def test_image_without_text_is_partial(extractor, monkeypatch):
    monkeypatch.setattr(document_extractor.pytesseract, "image_to_string", lambda image, lang=None: "  ")
    result = await extractor.extract(_blob(make_png(), "image/png", "blank.png"))

    assert result.partial is True
    assert "no readable text found" in result.text
    assert "Image Type: image/png" in result.text


def test_wide_images_are_downscaled_for_ocr():
    from PIL import Image

    prepared = document_extractor._prepare_for_ocr(Image.new("RGB", (4000, 1000), "white"))
    assert prepared.size == (2000, 500)
    assert prepared.mode == "L"


# ---------------------------------------------------------------------------
# Degradation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_parser_exception_becomes_placeholder(extractor):
    result = await extractor.extract(_blob(b"definitely not a zip", DOCX, "broken.docx"))

    assert result.strategy_used == ExtractionStrategy.FALLBACK
    assert result.partial is True
    assert result.text.startswith("Document Processing Status:")
    assert "broken.docx" in result.text
    assert "successfully uploaded" in result.text
    assert "File is not a zip file" in result.text


@pytest.mark.asyncio
async def test_placeholder_carries_parser_error_message(extractor, monkeypatch):
    def corrupt(stream):
        raise RuntimeError("corrupt table stream")

    monkeypatch.setattr(document_extractor, "DocxDocument", corrupt)

    result = await extractor.extract(_blob(b"PK\x03\x04", DOCX, "tables.docx"))

    assert result.partial is True
    assert result.text.startswith("Document Processing Status: corrupt table stream\n")


@pytest.mark.asyncio
async def test_oversized_upload_skips_parsers():
    """A 60 MB declared size must not reach any parser."""
    calls = []

    async def should_not_run(data: bytes) -> ExtractionAttempt:
        calls.append(data)
        return ExtractionAttempt(text="parsed")

    extractor = DocumentExtractor(pdf_chain=FallbackChain([(ExtractionStrategy.PDF_PRIMARY, should_not_run)]))
    blob = _blob(b"%PDF-1.4 stub", "application/pdf", "huge.pdf", size=60 * 1024 * 1024)

    result = await extractor.extract(blob)

    assert calls == []
    assert result.strategy_used == ExtractionStrategy.SIZE_GUARD
    assert result.partial is True
    assert "huge.pdf" in result.text
    assert "50 MB" in result.text
