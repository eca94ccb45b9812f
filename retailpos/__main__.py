"""
Run the RetailPOS API with uvicorn.

    python -m retailpos
"""
import uvicorn

from retailpos.core.config import settings


def main() -> None:
    uvicorn.run(
        "retailpos.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.ENVIRONMENT == "development",
    )


if __name__ == "__main__":
    main()
