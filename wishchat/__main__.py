from __future__ import annotations

import os

import uvicorn


def main() -> None:
    """Serve the webhook app on PORT (default 5000)."""
    port = int(os.getenv("PORT", "5000"))
    uvicorn.run("wishchat.asgi:app", host=os.getenv("HOST", "0.0.0.0"), port=port)


if __name__ == "__main__":
    main()
