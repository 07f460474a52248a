import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from caseace.analytics.router import router as analytics_router
from caseace.appointments.router import router as appointments_router
from caseace.auth.router import router as auth_router
from caseace.billing.router import router as billing_router
from caseace.cases.router import router as cases_router
from caseace.communications.router import router as communications_router
from caseace.config import settings
from caseace.documents.router import case_router as case_documents_router
from caseace.documents.router import router as documents_router
from caseace.middleware import CorrelationIDMiddleware
from caseace.notifications.router import router as notifications_router
from caseace.tasks.router import case_router as case_tasks_router
from caseace.tasks.router import router as tasks_router
from caseace.time_tracking.router import router as time_tracking_router
from caseace.users.router import router as users_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: bootstrap the first partner if needed
    from caseace.auth.service import bootstrap_partner

    await bootstrap_partner()
    yield


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.backend_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])
app.include_router(cases_router, prefix="/api/cases", tags=["Cases"])
app.include_router(case_tasks_router, prefix="/api/cases", tags=["Tasks"])
app.include_router(case_documents_router, prefix="/api/cases", tags=["Documents"])
app.include_router(communications_router, prefix="/api/cases", tags=["Communications"])
app.include_router(tasks_router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(time_tracking_router, prefix="/api/time-tracking", tags=["Time Tracking"])
app.include_router(billing_router, prefix="/api/billing", tags=["Billing"])
app.include_router(appointments_router, prefix="/api/appointments", tags=["Appointments"])
app.include_router(documents_router, prefix="/api/documents", tags=["Documents"])
app.include_router(notifications_router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(analytics_router, prefix="/api/analytics", tags=["Analytics"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "version": settings.app_version}
