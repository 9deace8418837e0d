import os

import uvicorn

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8000))
    # Single worker by default: the constraint list cache lives in-process,
    # so every extra worker holds its own copy.
    workers = int(os.environ.get("WEB_CONCURRENCY", 1))
    uvicorn.run(
        "preorder_tracker.app.main:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
    )
