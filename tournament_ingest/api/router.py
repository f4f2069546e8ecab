from fastapi import APIRouter

from tournament_ingest.api.routes import candidate_facts, cron, health, scores, sources, tournaments

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(sources.router, prefix="/sources", tags=["sources"])
api_router.include_router(tournaments.router, prefix="/tournaments", tags=["tournaments"])
api_router.include_router(candidate_facts.router, prefix="/candidate-facts", tags=["candidate-facts"])
api_router.include_router(scores.router, prefix="/scores", tags=["scores"])
api_router.include_router(cron.router, prefix="/cron", tags=["cron"])
