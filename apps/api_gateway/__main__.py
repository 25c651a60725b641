"""
Запуск API Gateway: python -m apps.api_gateway
"""

from __future__ import annotations

import uvicorn

from speech_relay.common.config import get_settings


def main() -> None:
    s = get_settings()
    uvicorn.run(
        "apps.api_gateway.main:app",
        host=s.api_host,
        port=int(s.api_port),
        log_config=None,
    )


if __name__ == "__main__":
    main()
