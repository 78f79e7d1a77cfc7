"""
FastAPI Lab Panel Extraction API
Main application entry point
"""
import logging
import os
from datetime import date, datetime
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from labpanel import __version__
from labpanel.config import settings
from labpanel.models.schemas import ExtractTextRequest, LabPanelCreate, ProcessingResult
from labpanel.services.database_service import DatabaseService
from labpanel.services.gemini_service import GeminiService
from labpanel.services.ocr_service import VisionOCRService
from labpanel.services.pattern_extractor import PatternExtractor
from labpanel.services.processing_service import ProcessingService
from labpanel.services.rasterizer import PdfRasterizer

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def build_processing_service(db_service: DatabaseService) -> ProcessingService:
    """Wire the production collaborators from settings"""
    return ProcessingService(
        extractor=GeminiService(
            api_key=settings.GEMINI_API_KEY,
            models=settings.GEMINI_MODELS,
            max_prompt_chars=settings.MAX_PROMPT_CHARS,
        ),
        fallback_extractor=PatternExtractor(),
        ocr_service=VisionOCRService(max_retries=settings.MAX_RETRIES),
        rasterizer=PdfRasterizer(max_pdf_pages=settings.MAX_PDF_PAGES),
        db_service=db_service,
        batch_size=settings.BATCH_SIZE,
        min_text_length=settings.MIN_TEXT_LENGTH,
    )


def get_db_service(request: Request) -> DatabaseService:
    return request.app.state.db_service


def get_processing_service(request: Request) -> ProcessingService:
    return request.app.state.processing_service


def save_uploaded_pdf(file: UploadFile, user_id: str) -> tuple[str, str]:
    """Save uploaded PDF to disk and return filename and filepath"""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filename = f"lab_report_{user_id}_{timestamp}.pdf"
    file_path = os.path.join(settings.UPLOAD_DIR, filename)

    # Save file
    with open(file_path, "wb") as buffer:
        content = file.file.read()
        buffer.write(content)

    logger.info(f"Saved PDF: {filename} ({len(content) / (1024*1024):.2f} MB)")
    return filename, file_path


def result_response(result: ProcessingResult) -> JSONResponse:
    status_code = 200 if result.success else 500
    return JSONResponse(status_code=status_code, content=result.model_dump(by_alias=True, mode="json"))


def create_app(processing_service: Optional[ProcessingService] = None,
               db_service: Optional[DatabaseService] = None) -> FastAPI:
    app = FastAPI(
        title="Lab Panel Extraction API",
        description="FastAPI service for extracting biomarkers from lab report PDFs using OCR + Gemini AI",
        version=__version__
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_service = db_service
    app.state.processing_service = processing_service

    @app.on_event("startup")
    async def startup_event():
        """Build services and initialize database tables on startup"""
        if app.state.db_service is None:
            app.state.db_service = DatabaseService(settings.DATABASE_URL)
        if app.state.processing_service is None:
            app.state.processing_service = build_processing_service(app.state.db_service)

        try:
            await app.state.db_service.create_tables()
            logger.info("Database tables initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {str(e)}")
            raise

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {
            "message": "Lab Panel Extraction API is running",
            "version": __version__,
            "status": "active"
        }

    @app.get("/health")
    async def health_check(db_service: DatabaseService = Depends(get_db_service)):
        """Health check with database connection test"""
        try:
            async with await db_service.get_connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute("SELECT 1")

            return {
                "status": "healthy",
                "database": "connected",
                "service": "Lab Panel Extraction API",
                "timestamp": datetime.now().isoformat()
            }
        except Exception as e:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "database": "disconnected",
                    "error": str(e),
                    "timestamp": datetime.now().isoformat()
                }
            )

    @app.post("/process-lab-report", response_model=ProcessingResult)
    async def process_lab_report(
        file: UploadFile = File(...),
        user_id: str = Form(...),
        panel_name: str = Form("Lab Report"),
        collection_date: Optional[date] = Form(None),
        lab_provider: Optional[str] = Form(None),
        processing_service: ProcessingService = Depends(get_processing_service),
    ):
        """
        Upload a lab report PDF, extract its biomarkers and store them as a lab panel

        Args:
            file: PDF file to process
            user_id: Owner of the lab panel
            panel_name: Display name of the panel
            collection_date: Sample collection date, defaults to today
            lab_provider: Laboratory that produced the report

        Returns:
            ProcessingResult with the stored biomarkers and patient details
        """
        if not file.filename or not file.filename.lower().endswith('.pdf'):
            raise HTTPException(status_code=400, detail="Only PDF files are supported")

        try:
            _, file_path = save_uploaded_pdf(file, user_id)
            panel = LabPanelCreate(
                user_id=user_id,
                panel_name=panel_name or "Lab Report",
                lab_provider=lab_provider or None,
                collection_date=collection_date or date.today(),
                source_path=file_path,
            )
            result = await processing_service.process_pdf(file_path, panel)

        except Exception as e:
            logger.error(f"Error in process_lab_report: {str(e)}")
            result = ProcessingResult(success=False, error=f"Processing failed: {str(e)}")

        return result_response(result)

    @app.post("/extract", response_model=ProcessingResult)
    async def extract_text(
        body: ExtractTextRequest,
        processing_service: ProcessingService = Depends(get_processing_service),
    ):
        """Extract biomarkers from already OCR'd text without storing them"""
        try:
            result = await processing_service.process_text(body.text)

        except Exception as e:
            logger.error(f"Error in extract_text: {str(e)}")
            result = ProcessingResult(success=False, error=f"Processing failed: {str(e)}")

        return result_response(result)

    @app.get("/panels/{panel_id}")
    async def get_lab_panel(panel_id: int, db_service: DatabaseService = Depends(get_db_service)):
        """Get a lab panel with its biomarkers"""
        try:
            panel = await db_service.get_lab_panel(panel_id)
        except Exception as e:
            logger.error(f"Error getting lab panel: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Failed to retrieve lab panel: {str(e)}")

        if not panel:
            raise HTTPException(status_code=404, detail="Lab panel not found")
        return panel

    @app.get("/users/{user_id}/panels")
    async def get_user_panels(user_id: str, db_service: DatabaseService = Depends(get_db_service)):
        """Get all lab panels for a user"""
        try:
            panels = await db_service.get_user_panels(user_id)
        except Exception as e:
            logger.error(f"Error getting user panels: {str(e)}")
            raise HTTPException(status_code=500, detail=f"Failed to retrieve lab panels: {str(e)}")

        return {
            "user_id": user_id,
            "panels": panels,
            "total": len(panels)
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
