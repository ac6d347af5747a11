"""Region router.

Endpoint:
  GET /api/geo — {countryCode, isInEU} for the calling visitor

Always 200. Failures come back as {countryCode: null, isInEU: false}.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, Response

from dietitian.deps import Classifier
from dietitian.models.geo import GeoClassification

router = APIRouter()

# 1h shared cache, serve stale for 30 min while revalidating
GEO_CACHE_CONTROL = "public, s-maxage=3600, stale-while-revalidate=1800"


@router.get("/geo", response_model=GeoClassification)
async def get_geo(request: Request, response: Response, classifier: Classifier):
    result = await classifier.classify(request.headers)
    response.headers["Cache-Control"] = GEO_CACHE_CONTROL
    return result
