"""Design-rule check endpoint for block combinations."""

import logging

from fastapi import APIRouter, HTTPException, status

from phaestus.api.schemas import DRCRequest, DRCResponse
from phaestus.catalog import get_block
from phaestus.drc.validator import (
    calculate_total_power,
    format_drc_result,
    validate_block_combination,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["drc"])


@router.post("/drc", response_model=DRCResponse)
async def run_drc(body: DRCRequest) -> DRCResponse:
    """Validate a block list (definitions, or slugs from the default catalog)."""
    if not body.blocks and not body.slugs:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide 'blocks' or 'slugs'",
        )

    blocks = list(body.blocks)
    unknown = []
    for slug in body.slugs:
        block = get_block(slug)
        if block is None:
            unknown.append(slug)
        else:
            blocks.append(block)

    result = validate_block_combination(blocks)
    logger.info(
        f"API: DRC over {len(blocks)} blocks: valid={result.valid} "
        f"errors={len(result.errors)} warnings={len(result.warnings)}"
    )
    return DRCResponse(
        valid=result.valid,
        errors=result.errors,
        warnings=result.warnings,
        summary=format_drc_result(result),
        total_power=calculate_total_power(blocks),
        unknown_slugs=unknown,
    )
