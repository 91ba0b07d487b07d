"""Run the Flat Viewer API with uvicorn: ``python -m flat_viewer``."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "flat_viewer.server:fastapi_app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
