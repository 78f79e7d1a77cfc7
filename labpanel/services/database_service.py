"""
Database service using psycopg for PostgreSQL operations
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import psycopg
from psycopg.rows import dict_row

from labpanel.exceptions import PersistenceError
from labpanel.models.schemas import ExtractionResult, LabPanelCreate

logger = logging.getLogger(__name__)


class DatabaseService:
    def __init__(self, connection_string: str):
        self.connection_string = connection_string

    async def get_connection(self):
        """Get database connection"""
        return await psycopg.AsyncConnection.connect(self.connection_string)

    async def create_tables(self):
        """Create required tables if they don't exist"""
        async with await self.get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("""
                    CREATE TABLE IF NOT EXISTS lab_panels (
                        id SERIAL PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        panel_name TEXT NOT NULL,
                        lab_provider TEXT,
                        collection_date DATE,
                        source_type TEXT DEFAULT 'ocr_processed',
                        source_file_path TEXT,
                        extraction_method TEXT,
                        processing_status TEXT DEFAULT 'processing',
                        patient_first_name TEXT,
                        patient_last_name TEXT,
                        patient_date_of_birth TEXT,
                        patient_gender TEXT,
                        processed_at TIMESTAMP,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                await cur.execute("""
                    CREATE TABLE IF NOT EXISTS biomarkers (
                        id SERIAL PRIMARY KEY,
                        lab_panel_id INTEGER NOT NULL REFERENCES lab_panels(id) ON DELETE CASCADE,
                        marker_name TEXT NOT NULL,
                        marker_category TEXT DEFAULT 'General',
                        value DOUBLE PRECISION NOT NULL,
                        unit TEXT,
                        reference_range_min DOUBLE PRECISION,
                        reference_range_max DOUBLE PRECISION,
                        status TEXT DEFAULT 'normal',
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    )
                """)

                await conn.commit()
                logger.info("Database tables created/verified successfully")

    async def save_lab_panel(self, panel: LabPanelCreate,
                             result: ExtractionResult) -> Tuple[int, List[Dict[str, Any]]]:
        """Insert one lab panel and all of its biomarkers in a single transaction.

        Patient details read from the report are stored on the panel row.
        Returns the new panel id and the inserted biomarker rows.
        """
        patient = result.patient
        try:
            async with await self.get_connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(
                        """INSERT INTO lab_panels (user_id, panel_name, lab_provider, collection_date,
                               source_type, source_file_path, extraction_method, processing_status,
                               patient_first_name, patient_last_name, patient_date_of_birth, patient_gender,
                               processed_at)
                           VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, CURRENT_TIMESTAMP)
                           RETURNING id""",
                        (panel.user_id, panel.panel_name, panel.lab_provider, panel.collection_date,
                         'ocr_processed', panel.source_path, result.method.api_label, 'completed',
                         patient.first_name, patient.last_name, patient.date_of_birth, patient.gender)
                    )
                    panel_id = (await cur.fetchone())["id"]

                    rows = []
                    for biomarker in result.biomarkers:
                        await cur.execute(
                            """INSERT INTO biomarkers (lab_panel_id, marker_name, marker_category, value, unit,
                                   reference_range_min, reference_range_max, status)
                               VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                               RETURNING *""",
                            (panel_id, biomarker.name, biomarker.category, biomarker.value, biomarker.unit,
                             biomarker.reference_min, biomarker.reference_max, biomarker.status.value)
                        )
                        rows.append(await cur.fetchone())

                    await conn.commit()
        except psycopg.Error as e:
            logger.error(f"Failed to save lab panel for user {panel.user_id}: {str(e)}")
            raise PersistenceError("Failed to insert lab panel", cause=e) from e

        logger.info(f"Lab panel {panel_id} created with {len(rows)} biomarkers")
        return panel_id, rows

    async def get_lab_panel(self, panel_id: int) -> Optional[Dict[str, Any]]:
        """Get a lab panel with its biomarkers"""
        async with await self.get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute("SELECT * FROM lab_panels WHERE id = %s", (panel_id,))
                panel = await cur.fetchone()
                if not panel:
                    return None

                await cur.execute(
                    "SELECT * FROM biomarkers WHERE lab_panel_id = %s ORDER BY id",
                    (panel_id,)
                )
                panel["biomarkers"] = await cur.fetchall()
                return panel

    async def get_user_panels(self, user_id: str) -> List[Dict[str, Any]]:
        """Get all lab panels for a user, newest collection first"""
        async with await self.get_connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """SELECT p.*, COUNT(b.id) AS biomarker_count
                       FROM lab_panels p
                       LEFT JOIN biomarkers b ON b.lab_panel_id = p.id
                       WHERE p.user_id = %s
                       GROUP BY p.id
                       ORDER BY p.collection_date DESC NULLS LAST, p.id DESC""",
                    (user_id,)
                )
                return await cur.fetchall()
