from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from dotcompliance.core.config import CORS_ORIGINS
from dotcompliance.core.reporting import configure_logging
from dotcompliance.db.session import engine, dispose_engine
from dotcompliance.models.base import Base
from dotcompliance.models import models  # noqa: F401
from dotcompliance.api import (
    activity, admin, auth, cafs, drivers, equipment, inspections, organizations, roles, staff,
)

app = FastAPI(title="DOT Compliance Back Office", version="0.1.0")

class NoCacheMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith("/api"):
            response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        return response

app.add_middleware(NoCacheMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(organizations.router)
app.include_router(drivers.router)
app.include_router(equipment.router)
app.include_router(roles.router)
app.include_router(staff.router)
app.include_router(inspections.router)
app.include_router(cafs.router)
app.include_router(activity.router)
app.include_router(admin.router)


@app.on_event("startup")
def startup():
    configure_logging()
    Base.metadata.create_all(bind=engine)


@app.on_event("shutdown")
def shutdown():
    dispose_engine()


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=5000)
