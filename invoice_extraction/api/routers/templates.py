from fastapi import APIRouter, HTTPException
from ..deps import LearnRequest, LearnResponse, TemplateResponse
from ...services.storage.templates import get_template_store

router = APIRouter(prefix="/templates", tags=["templates"])


@router.post("/learn", response_model=LearnResponse)
async def learn(req: LearnRequest):
    """
    Learn field regions from a user-confirmed page.

    The merged template is stored under every identity key given.
    """
    try:
        learned = get_template_store().learn(
            req.fragments, req.image_width, req.image_height, req.confirmed, req.identity_keys
        )
        if learned is None:
            return LearnResponse(learned=False)
        template = next(iter(learned.values()))
        return LearnResponse(
            learned=True,
            keys=list(learned),
            regions=list(template.regions.values()),
        )
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{key}", response_model=TemplateResponse)
async def get_template(key: str):
    template = get_template_store().get(key)
    if template is None:
        raise HTTPException(status_code=404, detail=f"No template for '{key}'")
    return TemplateResponse(key=key, regions=list(template.regions.values()))
