# medscan/places.py
from typing import List
from urllib.parse import quote_plus

from medscan.models import CarePlace, PlaceFilter

MAPS_SEARCH_URL = "https://www.google.com/maps/search/?api=1&query="


def describe_filter(place_filter: PlaceFilter) -> str:
    if place_filter == PlaceFilter.HOSPITAL:
        return "hospitals and clinics"
    if place_filter == PlaceFilter.PHARMACY:
        return "pharmacies"
    return "hospitals, clinics and pharmacies"


def build_maps_url(name: str, address: str = "") -> str:
    query = f"{name} {address}".strip()
    return MAPS_SEARCH_URL + quote_plus(query)


def _rank_key(place: CarePlace):
    # places with a priority score come first, best score first,
    # then everything by distance
    has_priority = place.priorityScore is not None
    return (
        0 if has_priority else 1,
        -(place.priorityScore or 0),
        place.distanceKm,
    )


def rank_places(places: List[CarePlace]) -> List[CarePlace]:
    ranked = sorted(places, key=_rank_key)
    if ranked and not any(p.isTopRecommendation for p in ranked):
        ranked[0] = ranked[0].model_copy(update={"isTopRecommendation": True})
    return ranked
