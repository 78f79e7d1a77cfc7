"""Tests for the extraction pipeline and its failure routing."""

import asyncio

import pytest

from labpanel.exceptions import FallbackExtractionError, InsufficientTextError, PersistenceError
from labpanel.models.schemas import BiomarkerStatus, ExtractionMethod, LabPanelCreate, PAGE_SEPARATOR
from labpanel.services.pattern_extractor import PatternExtractor
from labpanel.services.processing_service import ProcessingService
from labpanel.services.text_aggregator import aggregate_pages

from .fakes import FakeDatabaseService, FakeExtractor, FakeOCR, FakeRasterizer, SpyExtractor


@pytest.fixture
def fallback():
    return SpyExtractor(PatternExtractor())


@pytest.fixture
def panel():
    return LabPanelCreate(user_id="user-1", panel_name="Annual checkup", lab_provider="Quest")


class TestExtract:
    def test_ai_success_skips_fallback(self, ai_result, fallback):
        primary = FakeExtractor(result=ai_result)
        service = ProcessingService(primary, fallback)

        result = service.extract(aggregate_pages(["HDL Cholesterol 55 mg/dL 40-60"]))

        assert result is ai_result
        assert len(primary.calls) == 1
        assert fallback.calls == []

    def test_scenario_a_ai_unavailable(self, scenario_a_text, gemini_down, fallback):
        service = ProcessingService(FakeExtractor(error=gemini_down), fallback)

        result = service.extract(aggregate_pages([scenario_a_text]))

        assert result.method is ExtractionMethod.PATTERN_FALLBACK
        assert [(b.name, b.status) for b in result.biomarkers] == [
            ("Glucose", BiomarkerStatus.NORMAL),
            ("Cholesterol", BiomarkerStatus.HIGH),
        ]
        assert len(fallback.calls) == 1

    def test_scenario_c_short_text(self, ai_result, fallback):
        primary = FakeExtractor(result=ai_result)
        service = ProcessingService(primary, fallback)

        with pytest.raises(InsufficientTextError):
            service.extract(aggregate_pages(["0123456789"]))

        assert primary.calls == []
        assert fallback.calls == []

    def test_both_strategies_fail(self, gemini_down, fallback):
        service = ProcessingService(FakeExtractor(error=gemini_down), fallback)

        with pytest.raises(FallbackExtractionError) as exc_info:
            service.extract(aggregate_pages(["Patient notes without any measurements at all."]))

        assert exc_info.value.primary_error is gemini_down
        assert exc_info.value.__cause__ is gemini_down
        assert isinstance(exc_info.value.cause, FallbackExtractionError)
        assert str(exc_info.value) == (
            "Both Gemini and fallback failed to extract biomarkers: "
            "Pattern matching found no biomarkers in the OCR text"
        )
        assert len(fallback.calls) == 1

    def test_other_errors_are_not_recovered(self, fallback):
        service = ProcessingService(FakeExtractor(error=RuntimeError("bug")), fallback)

        with pytest.raises(RuntimeError):
            service.extract(aggregate_pages(["Glucose: 95 mg/dL (70-100)"]))

        assert fallback.calls == []


class TestProcessText:
    def test_success_contract(self, scenario_a_text, gemini_down):
        service = ProcessingService(FakeExtractor(error=gemini_down))

        result = asyncio.run(service.process_text(scenario_a_text))

        assert result.success is True
        assert result.extraction_method == "pattern-matching"
        assert result.panel_id is None
        assert result.patient == {}
        assert [b["name"] for b in result.biomarkers] == ["Glucose", "Cholesterol"]
        assert result.biomarkers[1]["status"] == "high"
        assert result.biomarkers[0]["referenceMin"] == 70
        assert result.total_text_length == len(scenario_a_text)

    def test_failure_contract(self, gemini_down):
        service = ProcessingService(FakeExtractor(error=gemini_down))

        result = asyncio.run(service.process_text("Nothing measurable here, only prose."))

        assert result.success is False
        assert "Both Gemini and fallback failed" in result.error
        assert "Pattern matching found no biomarkers" in result.error
        assert result.biomarkers == []
        assert result.extraction_method is None

    def test_persists_once_when_panel_given(self, ai_result, panel):
        db = FakeDatabaseService(panel_id=7)
        service = ProcessingService(FakeExtractor(result=ai_result), db_service=db)

        result = asyncio.run(service.process_text("HDL Cholesterol 55 mg/dL 40-60", panel))

        assert len(db.saved) == 1
        assert db.saved[0] == (panel, ai_result)
        assert result.panel_id == 7
        assert result.extraction_method == "ai"
        assert result.patient == {"firstName": "Jane", "lastName": "Doe"}
        assert result.biomarkers == [{
            "id": 1, "name": "HDL", "value": 55.0, "unit": "mg/dL", "referenceMin": 40.0,
            "referenceMax": 60.0, "status": "normal", "category": "Lipid",
        }]

    def test_nothing_persisted_on_failure(self, gemini_down, panel):
        db = FakeDatabaseService()
        service = ProcessingService(FakeExtractor(error=gemini_down), db_service=db)

        result = asyncio.run(service.process_text("too short", panel))

        assert result.success is False
        assert db.saved == []

    def test_persistence_error_is_reported(self, ai_result, panel):
        class BrokenDatabase(FakeDatabaseService):
            async def save_lab_panel(self, panel, result):
                raise PersistenceError("Failed to insert lab panel", cause=OSError("connection refused"))

        service = ProcessingService(FakeExtractor(result=ai_result), db_service=BrokenDatabase())

        result = asyncio.run(service.process_text("HDL Cholesterol 55 mg/dL 40-60", panel))

        assert result.success is False
        assert result.error == "Failed to insert lab panel: connection refused"
        assert result.biomarkers == []


class TestProcessPdf:
    def test_multi_page_document(self, gemini_down, panel):
        rasterizer = FakeRasterizer(page_count=3)
        ocr = FakeOCR({
            "page-0": "Glucose: 95 mg/dL (70-100)",
            "page-1": "",
            "page-2": "Cholesterol: 210 mg/dL (125-200)",
        })
        primary = FakeExtractor(error=gemini_down)
        db = FakeDatabaseService()
        service = ProcessingService(primary, ocr_service=ocr, rasterizer=rasterizer, db_service=db)

        result = asyncio.run(service.process_pdf("/tmp/report.pdf", panel))

        assert rasterizer.paths == ["/tmp/report.pdf"]
        assert primary.calls == ["Glucose: 95 mg/dL (70-100)" + PAGE_SEPARATOR + "Cholesterol: 210 mg/dL (125-200)"]
        assert result.success is True
        assert result.pages_processed == 2
        assert result.panel_id == 42
        assert [b["name"] for b in result.biomarkers] == ["Glucose", "Cholesterol"]
        assert len(db.saved) == 1

    def test_blank_scan(self, ai_result, panel):
        primary = FakeExtractor(result=ai_result)
        db = FakeDatabaseService()
        service = ProcessingService(
            primary,
            ocr_service=FakeOCR({"page-0": ""}),
            rasterizer=FakeRasterizer(page_count=1),
            db_service=db,
        )

        result = asyncio.run(service.process_pdf("/tmp/blank.pdf", panel))

        assert result.success is False
        assert "insufficient text" in result.error
        assert primary.calls == []
        assert db.saved == []
