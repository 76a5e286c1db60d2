"""python -m redis_presence 로 HTTP 서버 실행"""

import uvicorn

from .dependencies import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "redis_presence.server:app",
        host=config.host,
        port=config.port,
        log_level=config.logging_config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
