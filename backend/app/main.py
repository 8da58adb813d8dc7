"""FastAPI backend application."""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import uvicorn
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from backend.app.config import PipelineSettings
from backend.app.errors import ExtractionCancelled, FetchError
from backend.app.models import ExtractRequest, ExtractResponse
from backend.agents.brand_extractor import BrandExtractionAgent
from backend.agents.provider_chain import ExtractionContext
from backend.app.logger import logger, LOG_FILE

app = FastAPI(
    title="Brand Profile Extraction API",
    description="API for extracting a confidence-scored brand profile from a website",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global agent (initialized on startup)
brand_extractor = None


@app.on_event("startup")
async def startup_event():
    """Initialize the agent on startup."""
    global brand_extractor
    brand_extractor = BrandExtractionAgent(PipelineSettings.from_env())


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Brand Profile Extraction API",
        "version": "0.1.0",
        "endpoints": ["/extract", "/health"]
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.post("/extract", response_model=ExtractResponse)
def extract_brand(request: ExtractRequest):
    """Extract a brand profile from a website URL."""
    if brand_extractor is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    context = ExtractionContext.with_timeout(request.deadline_seconds)
    try:
        logger.info(f"Extracting brand from URL: {request.url}")
        result = brand_extractor.extract_with_trail(request.url, context)
        logger.info(
            f"Brand extraction completed: {len(result.attempts)} provider attempts, "
            f"vision={result.vision_provider or 'none'}"
        )
        return ExtractResponse(
            brand_profile=result.profile,
            attempts=result.attempts if request.include_attempts else [],
        )
    except FetchError as e:
        logger.error(f"Fetch failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except ExtractionCancelled as e:
        logger.warning(f"Extraction cancelled: {e}")
        raise HTTPException(status_code=504, detail=f"Extraction cancelled: {e}")
    except Exception as e:
        logger.error(f"Error extracting brand: {str(e)}", exc_info=True)
        raise HTTPException(
            status_code=500,
            detail=f"Error extracting brand: {str(e)}"
        )


def main():
    """Main entry point for running the backend server."""
    logger.info("Starting Brand Profile Extraction API server...")
    logger.info(f"Log file: {LOG_FILE.absolute()}")
    uvicorn.run(
        "backend.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="warning"
    )


if __name__ == "__main__":
    main()
