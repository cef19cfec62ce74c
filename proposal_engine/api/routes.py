import asyncio
import logging

from fastapi import APIRouter, HTTPException, UploadFile, File

from proposal_engine import config
from proposal_engine.models.schemas import (
    AnalyzeRequest,
    CostRequest,
    DatasetValidationRequest,
    FieldValidationRequest,
    PreviewRequest,
    Proposal,
    ProposalRequest,
    SelectionRequest,
    ValidationContext,
)
from proposal_engine.services.cost_calculation import calculate_capex, calculate_opex
from proposal_engine.services.errors import ProposalEngineError, UnsupportedSectorError
from proposal_engine.services.file_extraction import extract_import_content
from proposal_engine.services.proposal_builder import generate_proposal, get_generation_steps
from proposal_engine.services.smart_flags import analyze_proposal
from proposal_engine.services.smart_import import analyze_file, create_import_preview
from proposal_engine.services.smart_validation import (
    get_smart_suggestions,
    has_blocking_errors,
    validate_consistency,
    validate_dataset,
    validate_field,
)
from proposal_engine.services.technology_catalog import find_technology, get_technologies, list_sectors
from proposal_engine.services.technology_selection import select_technologies

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve_technologies(sector: str, names: list[str]) -> list:
    catalog = config.get_reference_data().technology_catalog
    technologies = []
    for name in names:
        tech = find_technology(sector, name, catalog)
        if tech is None:
            raise HTTPException(status_code=400, detail=f"Unknown technology for {sector}: {name}")
        technologies.append(tech)
    return technologies


# ---------------------------------------------------------------------------
# Health & catalog
# ---------------------------------------------------------------------------


@api_router.get("/health")
async def health():
    return {"status": "ok", "app": config.APP_NAME}


@api_router.get("/sectors")
async def get_sectors():
    return {"sectors": list_sectors(config.get_reference_data().technology_catalog)}


@api_router.get("/technologies/{sector}")
async def get_sector_technologies(sector: str):
    try:
        technologies = get_technologies(sector, config.get_reference_data().technology_catalog)
        return [t.model_dump(by_alias=True) for t in technologies]
    except UnsupportedSectorError as e:
        raise HTTPException(status_code=404, detail=str(e))


# ---------------------------------------------------------------------------
# Costs & technology selection
# ---------------------------------------------------------------------------


@api_router.post("/costs/capex")
async def post_capex(body: CostRequest):
    try:
        rates = config.get_reference_data().cost_rates
        technologies = _resolve_technologies(body.sector, body.technologies)
        return calculate_capex(body.flow, technologies, body.sector, rates).model_dump(by_alias=True)
    except HTTPException:
        raise
    except ProposalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error calculating CapEx: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to calculate CapEx")


@api_router.post("/costs/opex")
async def post_opex(body: CostRequest):
    try:
        rates = config.get_reference_data().cost_rates
        technologies = _resolve_technologies(body.sector, body.technologies)
        return calculate_opex(body.flow, technologies, body.sector, rates).model_dump(by_alias=True)
    except HTTPException:
        raise
    except ProposalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error calculating OpEx: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to calculate OpEx")


@api_router.post("/technologies/select")
async def post_select_technologies(body: SelectionRequest):
    try:
        reference = config.get_reference_data()
        result = select_technologies(
            body.sector,
            body.design_flow,
            body.organic_load,
            population=body.population,
            target_efficiency=body.target_efficiency,
            catalog=reference.technology_catalog,
            thresholds=reference.selection_thresholds,
        )
        return result.model_dump(by_alias=True)
    except ProposalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error selecting technologies: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to select technologies")


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


@api_router.post("/proposals/generate")
async def post_generate_proposal(body: ProposalRequest):
    try:
        proposal = generate_proposal(body.sector, body.technical_data, config.get_reference_data())
        return proposal.model_dump(by_alias=True)
    except ProposalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error generating proposal: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to generate proposal")


@api_router.get("/proposals/steps")
async def get_proposal_steps():
    return [step.model_dump(by_alias=True) for step in get_generation_steps()]


@api_router.post("/proposals/flags")
async def post_proposal_flags(body: Proposal):
    try:
        flags = analyze_proposal(body, config.get_reference_data().flag_thresholds)
        return [flag.model_dump(by_alias=True) for flag in flags]
    except Exception as e:
        logger.error("Error analyzing proposal flags: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to analyze proposal")


# ---------------------------------------------------------------------------
# Smart import
# ---------------------------------------------------------------------------


@api_router.post("/import/analyze")
async def post_import_analyze(body: AnalyzeRequest):
    try:
        reference = config.get_reference_data()
        analysis = analyze_file(body.file_name, body.content, reference.field_patterns, reference.import_thresholds)
        return analysis.model_dump(by_alias=True)
    except Exception as e:
        logger.error("Error analyzing import content: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to analyze content")


@api_router.post("/import/preview")
async def post_import_preview(body: PreviewRequest):
    try:
        reference = config.get_reference_data()
        preview = create_import_preview(
            body.analysis, body.existing_data, reference.field_patterns, reference.import_thresholds,
        )
        return preview.model_dump(by_alias=True)
    except Exception as e:
        logger.error("Error building import preview: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to build import preview")


@api_router.post("/import/upload")
async def post_import_upload(file: UploadFile = File(...)):
    try:
        if not file.filename:
            raise HTTPException(status_code=400, detail="No file uploaded")

        file_bytes = await file.read()
        if len(file_bytes) > config.MAX_UPLOAD_BYTES:
            raise HTTPException(
                status_code=400,
                detail=f"File exceeds {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit",
            )

        content = await asyncio.to_thread(
            extract_import_content, file_bytes, file.filename, file.content_type or "",
        )
        if content is None or content == "":
            logger.info("Smart import: no content extracted from %s", file.filename)
            raise HTTPException(status_code=400, detail="No readable content found in file")

        reference = config.get_reference_data()
        analysis = await asyncio.to_thread(
            analyze_file, file.filename, content, reference.field_patterns, reference.import_thresholds,
        )
        return analysis.model_dump(by_alias=True)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Error importing file: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to import file")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@api_router.post("/validation/field")
async def post_validate_field(body: FieldValidationRequest):
    try:
        reference = config.get_reference_data()
        result = validate_field(
            body.field_id, body.value, body.context,
            reference.engineering_ranges, reference.validation_thresholds,
        )
        return result.model_dump(by_alias=True)
    except ProposalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error validating field: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to validate field")


@api_router.post("/validation/consistency")
async def post_validate_consistency(body: DatasetValidationRequest):
    try:
        results = validate_consistency(body.data, body.context, config.get_reference_data().validation_thresholds)
        return [r.model_dump(by_alias=True) for r in results]
    except Exception as e:
        logger.error("Error checking consistency: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to check consistency")


@api_router.post("/validation/dataset")
async def post_validate_dataset(body: DatasetValidationRequest):
    try:
        reference = config.get_reference_data()
        context: ValidationContext = body.context
        results = validate_dataset(
            body.data, context, reference.engineering_ranges, reference.validation_thresholds,
        )
        suggestions = get_smart_suggestions(
            body.data, context, reference.engineering_ranges, reference.validation_thresholds,
        )
        return {
            "results": [r.model_dump(by_alias=True) for r in results],
            "hasBlockingErrors": has_blocking_errors(results),
            "suggestions": suggestions,
        }
    except ProposalEngineError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error("Error validating dataset: %s", str(e))
        raise HTTPException(status_code=500, detail="Failed to validate dataset")
