import uvicorn

from coachbook.core import config

if __name__ == "__main__":
    uvicorn.run(
        "coachbook.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=config.APP_ENV == "development"
    )
