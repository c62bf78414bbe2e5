import os

import uvicorn


def main():
    uvicorn.run(
        "apiwatch.api.main:app",
        host=os.getenv("APIWATCH_HOST", "127.0.0.1"),
        port=int(os.getenv("APIWATCH_PORT", "8000")),
        reload=os.getenv("APIWATCH_RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    main()
