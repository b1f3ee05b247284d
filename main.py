import asyncio
import argparse
import logging
import uvicorn
from core.config import LOG_LEVEL
from constants import APP_NAME


async def main():
    parser = argparse.ArgumentParser(description=APP_NAME)
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8000, help="REST API port")
    parser.add_argument("--log-level", default=LOG_LEVEL, help="Root log level (DEBUG, INFO, ...)")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    # 로깅 설정 이후에 앱 생성
    from api.rest import create_app
    rest_app = create_app()

    config = uvicorn.Config(rest_app, host=args.host, port=args.port, log_level=args.log_level.lower())
    server = uvicorn.Server(config)
    logging.getLogger(__name__).info(f"REST API starting on {args.host}:{args.port}")
    await server.serve()

if __name__ == "__main__":
    asyncio.run(main())
