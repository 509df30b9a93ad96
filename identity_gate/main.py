from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

from . import config
from .routers import auth

app = FastAPI(
    title="Identity Gate",
    description="Sign-In With Ethereum sessions backing the onboarding gate for identity-gated actions.",
    version="0.1.0",
)

# --- CORS Configuration ---
# The session travels as a cookie, so credentials must be allowed for the listed origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)


@app.get("/", tags=["Health Check"])
def read_root():
    """Root endpoint for health check."""
    return {"status": "ok", "message": "Identity gate is running."}


# --- Server Startup (for local development) ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("identity_gate.main:app", host="0.0.0.0", port=8000, reload=True)
