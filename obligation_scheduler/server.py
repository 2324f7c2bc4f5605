"""Run the API with uvicorn."""

import uvicorn


def main():
    uvicorn.run(
        "obligation_scheduler.main:app",
        host="0.0.0.0",
        port=8000,
        log_level="info",
    )


if __name__ == "__main__":
    main()
