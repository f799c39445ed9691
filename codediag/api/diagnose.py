import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from codediag.ai.gemini import GenerationError, get_generator
from codediag.services.diagnosis import DiagnosisBuilder, DiagnosisError, DiagnosisRequest
from codediag.services.oem import ReferenceStoreError, get_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["diagnose"])


def get_builder(
    generator=Depends(get_generator),
    store=Depends(get_store),
) -> DiagnosisBuilder:
    return DiagnosisBuilder(generator, store)


@router.post("/diagnose")
async def diagnose(body: DiagnosisRequest, builder: DiagnosisBuilder = Depends(get_builder)):
    try:
        result = await builder.build_and_run(body)
    except DiagnosisError as e:
        if e.status_code >= 500:
            logger.error("[diagnose] %s", e.error)
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    except ReferenceStoreError:
        logger.exception("[diagnose] code database unavailable")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Code database is unavailable. Try again later."},
        )
    except GenerationError:
        logger.exception("[diagnose] model call failed")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Diagnosis service is unavailable. Try again later."},
        )
    return result
