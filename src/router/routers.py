# src/router/routers.py

from fastapi import FastAPI
from src.modules.appointments.appointments_controller import router as appointments_router
from src.modules.rides.rides_controller import router as rides_router
from src.modules.ride_status.ride_status_controller import router as ride_status_router
from src.modules.notifications.notifications_controller import router as notifications_router
from src.modules.earnings.earnings_controller import router as earnings_router

def include_routers(app: FastAPI) -> None:
    """Include all API routers in the FastAPI application."""
    app.include_router(appointments_router)
    app.include_router(rides_router)
    app.include_router(ride_status_router)
    app.include_router(notifications_router)
    app.include_router(earnings_router)
