"""
Service starter: reads SERVICE env var and starts the sentinel.
Used by Docker/Railway. The admin bot runs inside the sentinel process.
"""
import os
import sys
import uvicorn

SERVICE = os.environ.get("SERVICE", "liquidation")
PORT = int(os.environ.get("PORT", 8005))

SERVICES = {
    "liquidation": "agents.liquidation.main:app",
}


def main():
    if SERVICE not in SERVICES:
        print(f"ERROR: Unknown service '{SERVICE}'. Options: {', '.join(SERVICES.keys())}")
        sys.exit(1)

    print(f"Starting {SERVICE} on port {PORT}...")
    uvicorn.run(
        SERVICES[SERVICE],
        host="0.0.0.0",
        port=PORT,
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
