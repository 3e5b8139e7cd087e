# app.py: Student report service
# - One report per student/window/subject, assembled from nine record sources
# - Partial source failures degrade the report instead of failing it
# - CSV export and optional LLM summary

import logging
import sqlite3
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import Response

import db
from engines.fanout import ReportSuperseded
from engines.validation import ReportInputError, StudentNotFound
from env_validation import validate_environment
from exporters import report_to_csv
from report_service import ReportService
from schemas import StudentReport

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def _lifespan(_: FastAPI):
    try:
        validate_environment()
        db.init()
        logger.info(
            "Report service ready (db=%s, source_timeout=%s)",
            db.DB_PATH,
            SERVICE.source_timeout,
        )
        yield
    except Exception as e:
        logger.error("Failed to initialize application: %s", str(e), exc_info=True)
        raise


app = FastAPI(title="Student Report Service", version=VERSION, lifespan=_lifespan)

SERVICE = ReportService.from_env()


async def _build(
    student_id: str,
    window_start: Optional[str],
    window_end: Optional[str],
    subject: Optional[str],
    now: Optional[str],
    selection_key: Optional[str],
    include_summary: bool,
) -> StudentReport:
    try:
        return await SERVICE.build_report(
            student_id,
            window_start=window_start,
            window_end=window_end,
            subject=subject,
            now=now,
            selection_key=selection_key,
            include_summary=include_summary,
        )
    except ReportInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StudentNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ReportSuperseded as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.get("/")
def root():
    return {"service": "student-report", "version": VERSION}


@app.get("/health")
def health():
    try:
        database = db.ping()
    except sqlite3.Error as exc:
        logger.warning("Health check could not reach the database: %s", exc)
        database = False
    return {"status": "ok" if database else "degraded", "database": database}


@app.get("/students/{student_id}/report", response_model=StudentReport)
async def student_report(
    student_id: str,
    window_start: Optional[str] = None,
    window_end: Optional[str] = None,
    subject: Optional[str] = None,
    now: Optional[str] = None,
    selection_key: Optional[str] = None,
    include_summary: bool = False,
):
    return await _build(student_id, window_start, window_end, subject, now, selection_key, include_summary)


@app.get("/students/{student_id}/report/export")
async def student_report_export(
    student_id: str,
    window_start: Optional[str] = None,
    window_end: Optional[str] = None,
    subject: Optional[str] = None,
    now: Optional[str] = None,
    selection_key: Optional[str] = None,
    include_summary: bool = False,
):
    report = await _build(student_id, window_start, window_end, subject, now, selection_key, include_summary)
    filename = f"report_{report.student.id}_{report.window.start.isoformat()}_{report.window.end.isoformat()}.csv"
    return Response(
        content=report_to_csv(report),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
