"""
chatON Backend Runner
Run with: python run.py
"""

import uvicorn
from chaton.config import settings
from chaton.utils.logging_config import setup_logging


if __name__ == "__main__":
    setup_logging(
        log_level=settings.LOG_LEVEL,
        log_dir=settings.LOG_DIR,
        file_output=settings.LOG_TO_FILE
    )

    print(f"""
    chatON - two-party real-time chat

    Starting server at http://{settings.HOST}:{settings.PORT}

    API Documentation: http://localhost:{settings.PORT}/docs
    """)

    uvicorn.run(
        "chaton.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
