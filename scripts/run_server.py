"""
Run TrustSafe Server

Helper script to start the FastAPI trust & safety service.
"""

import uvicorn
from trustsafe.config import config


def main():
    """Start the API server."""
    print("=" * 60)
    print("  TrustSafe - Trust & Safety Engine")
    print("  Starting FastAPI server...")
    print("=" * 60)
    print(f"\n🌐 Service will run at: http://{config.host}:{config.port}")
    print(f"📊 API docs available at: http://{config.host}:{config.port}/docs")
    print("\nPress Ctrl+C to stop\n")

    uvicorn.run(
        "trustsafe.server:app",
        host=config.host,
        port=config.port,
        reload=True,
        log_level="info",
    )


if __name__ == "__main__":
    main()
