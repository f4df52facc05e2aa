# linestamp/routes/presets.py
from fastapi import APIRouter, Depends

from linestamp.core.errors import NotFoundError
from linestamp.routes.helpers import get_store
from linestamp.services.auth import get_current_user

router = APIRouter(prefix="/presets", tags=["presets"])


@router.get("/list")
def list_presets(user=Depends(get_current_user), store=Depends(get_store)):
    # config is only returned by /presets/{id}
    return {
        "presets": [
            {
                "id": p["id"],
                "label": p.get("label"),
                "description": p.get("description"),
                "thumbnailUrl": p.get("thumbnailUrl", ""),
            }
            for p in store.list_presets()
        ]
    }


@router.get("/{preset_id}")
def get_preset(preset_id: str, user=Depends(get_current_user), store=Depends(get_store)):
    preset = store.get_preset(preset_id)
    if preset is None:
        raise NotFoundError("Preset not found")
    return preset
