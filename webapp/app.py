"""
ID Card Verification Web API - FastAPI Backend
==============================================
Endpoints:
1. POST /api/scan   - read name / registration number from an ID card photo,
                      optionally verify against a claimed name
2. POST /api/verify - compare a claimed name with an already-extracted one
3. GET  /health

Image storage and verification records are the caller's concern; uploads
are processed in memory and discarded.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime

from fastapi import FastAPI, File, UploadFile, Form, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from id_ocr import IDOCRPipeline, validate_scan_result, mask_id_number  # noqa: E402
from name_matcher import verify_against_reference  # noqa: E402
from scan_types import OCREngineError  # noqa: E402

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Student ID Verification API",
    description="OCR of student ID cards with fuzzy name verification",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ALLOWED_TYPES = ["image/jpeg", "image/png", "image/jpg", "image/webp"]

# Swapped out in tests for a pipeline with a fake engine
pipeline = IDOCRPipeline()


@app.post("/api/scan")
def scan_id_card(
    file: UploadFile = File(...),
    reference_name: Optional[str] = Form(default=None)
):
    """
    Extract the cardholder name from an ID card photo.

    - **file**: Image file (JPEG, PNG, WebP)
    - **reference_name**: Optional claimed name to verify against

    The registration number is returned masked.
    """
    if file.content_type not in ALLOWED_TYPES:
        raise HTTPException(
            status_code=400,
            detail="Invalid file type. Allowed: JPEG, PNG, WebP"
        )

    start_time = datetime.now()
    try:
        result = pipeline.extract(file.file.read())
    except OCREngineError as e:
        logger.error(f"OCR engine failure: {e}")
        raise HTTPException(status_code=503, detail=f"OCR engine unavailable: {e}")

    if result.error_code == "decode_failed":
        raise HTTPException(status_code=400, detail=result.error)

    scan = result.to_dict()
    scan["registration_number"] = mask_id_number(result.registration_number)

    response = {"scan": scan}
    if reference_name:
        match = verify_against_reference(reference_name, result.name or "")
        response["match"] = match.to_dict()
        response["verified"] = validate_scan_result(result) and match.match

    response["metadata"] = {
        "filename": file.filename,
        "processing_time_seconds": round((datetime.now() - start_time).total_seconds(), 2),
        "timestamp": datetime.now().isoformat()
    }
    return response


@app.post("/api/verify")
def verify_name(
    reference_name: str = Form(...),
    extracted_name: str = Form(...)
):
    """Fuzzy-compare a claimed name with a name read from a card."""
    return verify_against_reference(reference_name, extracted_name).to_dict()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
