# medscan/routers/places.py
from fastapi import APIRouter, Depends

from medscan import ai
from medscan.deps import get_ai_client
from medscan.models import PlaceSearchRequest
from medscan.places import rank_places

router = APIRouter(tags=["places"])

NO_RESULTS_MESSAGE = (
    "No places found nearby. Try increasing the radius or checking the location."
)


@router.post("/places/search")
async def search_places(req: PlaceSearchRequest, client=Depends(get_ai_client)):
    places = await ai.find_nearby_places(
        req.lat or 0,
        req.lng or 0,
        req.filterType,
        req.radiusKm,
        manual_location=(req.manualLocation or "").strip() or None,
        client=client,
    )
    ranked = rank_places(places)
    return {
        "places": [p.model_dump(mode="json") for p in ranked],
        "message": None if ranked else NO_RESULTS_MESSAGE,
    }
